"""
MigrationWorker - Drains the migration request queue.

One request is processed at a time: the oldest PENDING request is claimed
(IN_WORK), the user is extracted by MigrationCreator and restored by
MigrationRunner, and the request is marked SUCCESS with the resulting alias
or ERROR. The archive is removed afterwards in both cases.

Deployment constraint: run a single worker per request queue. Claiming is a
read-then-update without a row lock, so two workers could claim the same
request.

Usage:
    >>> worker = MigrationWorker(requests, creator, runner, from_alias="acme", to_region="eu")
    >>> worker.register_signals()
    >>> await worker.run()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from tenantmigrate.creator import MigrationCreator
from tenantmigrate.exceptions import ErrorKind, MigrationError
from tenantmigrate.models import MigrationRequest
from tenantmigrate.observability import Tracer, create_tracer
from tenantmigrate.observability.attributes import ATTR_REQUEST_ID, ATTR_TO_ALIAS
from tenantmigrate.repositories.requests import MigrationRequestRepository
from tenantmigrate.runner import MigrationRunner

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 300.0


class MigrationWorker:
    """
    Polling loop over the request queue.

    Attributes:
        from_alias: Source tenant of every request.
        from_region: Region of the source tenant.
        to_region: Destination region.
        to_alias: Tenant to merge into; empty creates a new portal.
        poll_interval_seconds: Idle wait between polls of an empty queue.
    """

    def __init__(
        self,
        requests: MigrationRequestRepository,
        creator: MigrationCreator,
        runner: MigrationRunner,
        *,
        from_alias: str,
        from_region: str = "",
        to_region: str = "",
        to_alias: str = "",
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._requests = requests
        self._creator = creator
        self._runner = runner
        self.from_alias = from_alias
        self.from_region = from_region
        self.to_region = to_region
        self.to_alias = to_alias
        self.poll_interval_seconds = poll_interval_seconds
        self._stop_event = asyncio.Event()
        self._running = False
        self._signals_registered = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Process requests until stop() is called."""
        self._running = True
        self._stop_event.clear()
        logger.info(
            "Migration worker started (from %s, to region %r, poll every %.0fs)",
            self.from_alias,
            self.to_region,
            self.poll_interval_seconds,
        )
        try:
            while not self._stop_event.is_set():
                try:
                    request = await self.process_next()
                except Exception as e:
                    logger.error(
                        "Migration poll cycle failed, retrying after %.0fs: %s",
                        self.poll_interval_seconds,
                        e,
                        exc_info=True,
                        extra={"error_type": type(e).__name__},
                    )
                    request = None
                if request is None:
                    await self._idle()
        finally:
            self._running = False
            logger.info("Migration worker stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the current request; interrupts the idle wait."""
        self._stop_event.set()

    async def _idle(self) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), self.poll_interval_seconds)

    async def process_next(self) -> MigrationRequest | None:
        """
        Claim and process the oldest pending request.

        Returns:
            The request in its final state, or None if the queue was empty.
        """
        request = await self._requests.claim_next_pending()
        if request is None:
            return None

        with self._tracer.span(
            "tenantmigrate.worker.process",
            {ATTR_REQUEST_ID: request.id, ATTR_TO_ALIAS: self.to_alias},
        ):
            logger.info("Processing migration request %d for %s", request.id, request.email)
            archive_path: str | None = None
            try:
                created = await self._creator.create(
                    self.from_alias,
                    request.email,
                    self.to_region,
                    self.to_alias or None,
                    from_region=self.from_region,
                )
                archive_path = created.archive_path
                restored = await self._runner.run(
                    archive_path,
                    self.to_region,
                    self.from_alias,
                    self.to_alias or None,
                    created.total_size,
                    from_region=self.from_region,
                )
                await self._requests.complete(request.id, restored.alias)
                logger.info("Migration request %d succeeded: %s", request.id, restored.alias)
            except Exception as e:
                kind = e.kind if isinstance(e, MigrationError) else ErrorKind.INTERNAL
                logger.log(
                    kind.log_level,
                    "Migration request %d failed: %s",
                    request.id,
                    e,
                    exc_info=True,
                    extra={"error_kind": kind.value, "error_type": type(e).__name__},
                )
                await self._requests.fail(request.id)
            finally:
                if archive_path is not None:
                    await asyncio.to_thread(Path(archive_path).unlink, True)

        return await self._requests.get(request.id)

    def register_signals(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Stop the worker on SIGTERM and SIGINT."""
        if self._signals_registered:
            logger.warning("Signal handlers already registered")
            return

        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                # Windows doesn't fully support add_signal_handler
                logger.warning("Signal handling not supported for %s on this platform", sig.name)
        self._signals_registered = True

    def unregister_signals(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if not self._signals_registered:
            return
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError, ValueError):
                loop.remove_signal_handler(sig)
        self._signals_registered = False

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, stopping after the current request", sig.name)
        self.stop()


__all__ = ["MigrationWorker", "DEFAULT_POLL_INTERVAL_SECONDS"]
