"""
Bounded retries for table replay and blob copies.

A migration touches two regions and a blob store, any of which can hiccup
for a moment. Steps that are safe to repeat go through ``retry_async``: it
re-runs the step on transient errors, sleeping a little longer each time,
and raises ``RetryError`` once the attempts run out. Anything that is not
transient (bad data, missing mappings) surfaces on the first failure.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from tenantmigrate.exceptions import RetryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

FailureHook = Callable[[Exception], Awaitable[None] | None]

# Errors a fresh attempt may get past
TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    OSError,
    SQLAlchemyError,
)


@dataclass(frozen=True)
class RetryConfig:
    """
    How often and how patiently a step is repeated.

    The wait before attempt ``n + 1`` is ``initial_delay * exponential_base ** n``,
    clipped to ``max_delay`` and spread by ``jitter`` (a fraction of the wait)
    so parallel copies do not hammer a store in lockstep.
    """

    max_attempts: int = 5
    initial_delay: float = 0.5
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        problems = []
        if self.max_attempts < 1:
            problems.append(f"max_attempts={self.max_attempts} (need at least one attempt)")
        if self.initial_delay < 0:
            problems.append(f"initial_delay={self.initial_delay} (negative)")
        if self.max_delay < self.initial_delay:
            problems.append(f"max_delay={self.max_delay} (below initial_delay={self.initial_delay})")
        if self.exponential_base <= 1.0:
            problems.append(f"exponential_base={self.exponential_base} (must grow)")
        if not 0.0 <= self.jitter <= 1.0:
            problems.append(f"jitter={self.jitter} (outside 0..1)")
        if problems:
            raise ValueError("Invalid retry settings: " + ", ".join(problems))

    @classmethod
    def for_step(cls, attempts: int, delay: float) -> "RetryConfig":
        """Settings for a migration step repeated ``attempts`` times, starting at ``delay`` seconds."""
        return cls(max_attempts=attempts, initial_delay=delay, max_delay=max(cls.max_delay, delay))


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after the zero-based ``attempt`` failed."""
    base = min(config.initial_delay * config.exponential_base**attempt, config.max_delay)
    spread = base * config.jitter
    return max(0.0, base + random.uniform(-spread, spread))  # nosec B311


async def _run_hook(hook: FailureHook | None, error: Exception) -> None:
    if hook is None:
        return
    outcome = hook(error)
    if asyncio.iscoroutine(outcome):
        await outcome


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    retryable_exceptions: tuple[type[Exception], ...] = TRANSIENT_EXCEPTIONS,
    operation_name: str = "operation",
    on_failure: FailureHook | None = None,
) -> T:
    """
    Await ``operation`` until it succeeds or ``config.max_attempts`` is spent.

    ``on_failure`` sees every retryable error before the next attempt starts,
    so a step can throw away whatever a half-finished attempt left behind
    (the restore uses it to roll back pending id mappings). It may be a plain
    function or a coroutine function.

    Raises:
        RetryError: carrying the attempt count and the final error
    """
    config = config or RetryConfig()
    attempt = 0

    while True:
        attempt += 1
        try:
            result = await operation()
        except retryable_exceptions as e:
            await _run_hook(on_failure, e)

            if attempt >= config.max_attempts:
                logger.error(
                    "Giving up on %s after %d attempts: %s",
                    operation_name,
                    attempt,
                    e,
                    extra={"error_type": type(e).__name__, "attempts": attempt},
                )
                raise RetryError(operation_name, attempt, e) from e

            delay = calculate_backoff(attempt - 1, config)
            logger.warning(
                "%s failed (attempt %d of %d), trying again in %.2fs: %s",
                operation_name,
                attempt,
                config.max_attempts,
                delay,
                e,
                extra={"error_type": type(e).__name__},
            )
            await asyncio.sleep(delay)
            continue

        if attempt > 1:
            logger.info("%s went through on attempt %d", operation_name, attempt)
        return result


__all__ = [
    "TRANSIENT_EXCEPTIONS",
    "RetryConfig",
    "calculate_backoff",
    "retry_async",
]
