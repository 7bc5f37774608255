"""
Retry with exponential backoff and jitter for database operations.

Only transient storage failures are retried: dropped connections, lock
timeouts, optimistic-concurrency conflicts and per-attempt timeouts. Domain
errors and integrity violations propagate on the first attempt.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from questline.exceptions import TransientStorageError

if TYPE_CHECKING:
    from questline.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    StaleDataError,
    asyncio.TimeoutError,
    TransientStorageError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for one retried unit of work."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    attempt_timeout: float | None = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            attempt_timeout=settings.db_attempt_timeout_seconds,
        )


def is_transient(exc: BaseException) -> bool:
    """True if ``exc`` is worth retrying."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, TRANSIENT_ERRORS)


def compute_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Backoff before retrying after failed attempt number ``attempt`` (1-based).

    ``min(base * 2**(attempt-1) + uniform(0, base), max_delay)``
    """
    delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, base_delay)  # noqa: S311
    return min(delay, max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    attempt_timeout: float | None = None,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    name: str = "db_operation",
) -> T:
    """Run ``operation`` until it succeeds or the attempt budget is spent.

    Non-retryable errors are raised immediately. After ``max_attempts``
    transient failures the last error is re-raised unmodified, so callers can
    tell "gave up" apart from "failed immediately" by the exception type.
    """
    if max_attempts < 1:
        msg = "max_attempts must be at least 1"
        raise ValueError(msg)

    attempt = 1
    while True:
        try:
            if attempt_timeout is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=attempt_timeout)
        except Exception as exc:
            if not is_retryable(exc) or attempt >= max_attempts:
                raise
            delay = compute_delay(attempt, base_delay, max_delay)
            logger.warning(
                "retrying_transient_failure",
                operation=name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay=round(delay, 3),
                error=type(exc).__name__,
            )
            await sleep(delay)
            attempt += 1


async def run_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    name: str = "db_operation",
) -> T:
    """``with_retry`` driven by a ``RetryPolicy``."""
    return await with_retry(
        operation,
        max_attempts=policy.max_attempts,
        base_delay=policy.base_delay,
        max_delay=policy.max_delay,
        attempt_timeout=policy.attempt_timeout,
        name=name,
    )
