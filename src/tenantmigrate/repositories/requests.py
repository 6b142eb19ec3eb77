"""
MigrationRequestRepository - Data access for the migration request queue.

Requests are created by the portal's API layer and mutated only by the
migration worker. Rows are never deleted; the table doubles as the audit
trail of migrations.

State machine:
    PENDING -> IN_WORK -> SUCCESS
                  |
                  +----> ERROR

Claiming is a read-then-update without a row lock. Running a single worker
per queue is a deployment constraint.

Usage:
    >>> repo = SQLMigrationRequestRepository(engine)
    >>> request_id = await repo.create("alice@example.com")
    >>> request = await repo.claim_next_pending()
    >>> await repo.complete(request.id, "alice")
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from tenantmigrate.exceptions import InvalidStatusTransitionError, RequestNotFoundError
from tenantmigrate.models import MigrationRequest, MigrationStatus
from tenantmigrate.observability import Tracer, create_tracer
from tenantmigrate.observability.attributes import ATTR_DB_SYSTEM, ATTR_REQUEST_ID
from tenantmigrate.stores._connection import execute_with_connection
from tenantmigrate.stores.tables import insert_row, statement

logger = logging.getLogger(__name__)

_COLUMNS = "id, email, status, request_date, start_date, end_date, alias"


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _to_datetime(value: Any) -> datetime | None:
    # SQLite hands timestamps back as text
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@runtime_checkable
class MigrationRequestRepository(Protocol):
    """
    Protocol for the durable migration request queue.
    """

    async def create(self, email: str) -> int:
        """
        Queue a new PENDING request.

        Returns:
            The request id
        """
        ...

    async def get(self, request_id: int) -> MigrationRequest | None:
        ...

    async def claim_next_pending(self) -> MigrationRequest | None:
        """
        Move the oldest PENDING request to IN_WORK and return it.

        Returns:
            The claimed request, or None if the queue is empty
        """
        ...

    async def complete(self, request_id: int, alias: str) -> None:
        """
        Record the resulting alias and mark the request SUCCESS.

        Raises:
            RequestNotFoundError: If the request does not exist
            InvalidStatusTransitionError: If the request is not IN_WORK
        """
        ...

    async def fail(self, request_id: int) -> None:
        """
        Mark the request ERROR.

        Raises:
            RequestNotFoundError: If the request does not exist
            InvalidStatusTransitionError: If the request is not IN_WORK
        """
        ...


def _check_transition(request: MigrationRequest, target: MigrationStatus) -> None:
    if not request.status.can_transition_to(target):
        raise InvalidStatusTransitionError(request.id, request.status, target)


class SQLMigrationRequestRepository:
    """
    SQL implementation of MigrationRequestRepository.

    Persists requests to the `migration_requests` table using portable SQL.

    Example:
        >>> repo = SQLMigrationRequestRepository(engine)
        >>> request = await repo.claim_next_pending()
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ):
        """
        Initialize the repository.

        Args:
            conn: Database connection or engine
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._conn = conn

    def _db_system(self) -> str:
        return self._conn.dialect.name

    async def create(self, email: str) -> int:
        with self._tracer.span(
            "tenantmigrate.request_repo.create",
            {ATTR_DB_SYSTEM: self._db_system()},
        ):
            async with execute_with_connection(self._conn, transactional=True) as conn:
                request_id = await insert_row(
                    conn,
                    "migration_requests",
                    {
                        "email": email,
                        "status": MigrationStatus.PENDING.value,
                        "request_date": _now(),
                    },
                    returning="id",
                )
            logger.info("Queued migration request %s for %s", request_id, email)
            return int(request_id)

    async def get(self, request_id: int) -> MigrationRequest | None:
        with self._tracer.span(
            "tenantmigrate.request_repo.get",
            {ATTR_REQUEST_ID: request_id, ATTR_DB_SYSTEM: self._db_system()},
        ):
            query = text(f"SELECT {_COLUMNS} FROM migration_requests WHERE id = :id")

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, {"id": request_id})
                row = result.fetchone()

            if row is None:
                return None

            return self._row_to_request(row)

    async def claim_next_pending(self) -> MigrationRequest | None:
        with self._tracer.span(
            "tenantmigrate.request_repo.claim_next_pending",
            {ATTR_DB_SYSTEM: self._db_system()},
        ):
            query = text(f"""
                SELECT {_COLUMNS}
                FROM migration_requests
                WHERE status = :status
                ORDER BY request_date, id
                LIMIT 1
            """)

            async with execute_with_connection(self._conn, transactional=True) as conn:
                result = await conn.execute(query, {"status": MigrationStatus.PENDING.value})
                row = result.fetchone()
                if row is None:
                    return None

                request = self._row_to_request(row)
                request.status = MigrationStatus.IN_WORK
                request.start_date = _now()
                params = {
                    "id": request.id,
                    "status": request.status.value,
                    "start_date": request.start_date,
                    "pending": MigrationStatus.PENDING.value,
                }
                await conn.execute(
                    statement(
                        "UPDATE migration_requests SET status = :status, start_date = :start_date "
                        "WHERE id = :id AND status = :pending",
                        params,
                    ),
                    params,
                )

            return request

    async def complete(self, request_id: int, alias: str) -> None:
        await self._finish(request_id, MigrationStatus.SUCCESS, alias)

    async def fail(self, request_id: int) -> None:
        await self._finish(request_id, MigrationStatus.ERROR, None)

    async def _finish(self, request_id: int, target: MigrationStatus, alias: str | None) -> None:
        with self._tracer.span(
            "tenantmigrate.request_repo.finish",
            {
                ATTR_REQUEST_ID: request_id,
                "request.status": target.value,
                ATTR_DB_SYSTEM: self._db_system(),
            },
        ):
            request = await self.get(request_id)
            if request is None:
                raise RequestNotFoundError(request_id)
            _check_transition(request, target)

            params: dict[str, Any] = {
                "id": request_id,
                "status": target.value,
                "end_date": _now(),
            }
            assignments = "status = :status, end_date = :end_date"
            if alias is not None:
                assignments += ", alias = :alias"
                params["alias"] = alias

            async with execute_with_connection(self._conn, transactional=True) as conn:
                await conn.execute(
                    statement(f"UPDATE migration_requests SET {assignments} WHERE id = :id", params),
                    params,
                )

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _row_to_request(self, row: Sequence[Any]) -> MigrationRequest:
        return MigrationRequest(
            id=int(row[0]),
            email=row[1],
            status=MigrationStatus(row[2]),
            request_date=_to_datetime(row[3]),
            start_date=_to_datetime(row[4]),
            end_date=_to_datetime(row[5]),
            alias=row[6],
        )


class InMemoryMigrationRequestRepository:
    """
    In-memory implementation of MigrationRequestRepository for tests.
    """

    def __init__(self) -> None:
        self._requests: dict[int, MigrationRequest] = {}
        self._next_id = 1

    async def create(self, email: str) -> int:
        request = MigrationRequest(id=self._next_id, email=email, request_date=_now())
        self._requests[request.id] = request
        self._next_id += 1
        return request.id

    async def get(self, request_id: int) -> MigrationRequest | None:
        return self._requests.get(request_id)

    async def claim_next_pending(self) -> MigrationRequest | None:
        pending = [r for r in self._requests.values() if r.status is MigrationStatus.PENDING]
        if not pending:
            return None
        request = min(pending, key=lambda r: (r.request_date or datetime.min, r.id))
        request.status = MigrationStatus.IN_WORK
        request.start_date = _now()
        return request

    async def complete(self, request_id: int, alias: str) -> None:
        request = self._require(request_id)
        _check_transition(request, MigrationStatus.SUCCESS)
        request.status = MigrationStatus.SUCCESS
        request.alias = alias
        request.end_date = _now()

    async def fail(self, request_id: int) -> None:
        request = self._require(request_id)
        _check_transition(request, MigrationStatus.ERROR)
        request.status = MigrationStatus.ERROR
        request.end_date = _now()

    def _require(self, request_id: int) -> MigrationRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    @property
    def requests(self) -> list[MigrationRequest]:
        return list(self._requests.values())


__all__ = [
    "MigrationRequestRepository",
    "SQLMigrationRequestRepository",
    "InMemoryMigrationRequestRepository",
    "RequestNotFoundError",
]
