"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Error fragments that mark a commit as safe to retry
TRANSIENT_ERRORS = (
    "database is locked",
    "database table is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient(exc: Exception) -> bool:
    """Whether a driver error is a lock or connection hiccup."""
    message = str(exc).lower()
    return any(fragment in message for fragment in TRANSIENT_ERRORS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    SQLite raises "database is locked" when registration bursts collide with
    a WAL checkpoint; PostgreSQL drops pooled connections under load.

    Args:
        coro_func: Async callable producing the operation (e.g. session.commit)
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)

    Raises:
        OperationalError: If all retries fail or the error is not transient
    """
    for attempt in range(1, max_retries + 1):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if attempt == max_retries or not is_transient(e):
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"Database transient error, retrying in {delay}s "
                f"(attempt {attempt}/{max_retries})"
            )
            await asyncio.sleep(delay)
    raise RuntimeError("retry_on_lock called with max_retries < 1")
