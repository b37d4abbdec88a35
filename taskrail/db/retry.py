"""
Retry of database writes that fail on transient connection errors.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from taskrail.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CONNECTION_ERROR_PHRASES = (
    "closed",
    "lost connection",
    "can't connect",
    "connection refused",
    "timeout",
    "broken pipe",
    "transport",
    "database is locked",
)


def is_connection_error(error: Exception) -> bool:
    """Check whether a database error looks transient."""
    message = str(error).lower()
    return any(phrase in message for phrase in CONNECTION_ERROR_PHRASES)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempts and exponential backoff for a database write."""
    max_attempts: int = 3
    initial_delay: float = 0.5
    backoff_factor: float = 2.0

    def delays(self) -> Iterator[float]:
        """Sleep before each retry; one fewer than ``max_attempts``."""
        delay = self.initial_delay
        for _ in range(max(self.max_attempts, 1) - 1):
            yield delay
            delay *= self.backoff_factor


DEFAULT_RETRY_POLICY = RetryPolicy()


async def retry_on_db_error(
    func: Callable[..., T],
    *args: Any,
    policy: Optional[RetryPolicy] = None,
    **kwargs: Any,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying transient connection errors.

    Any other database error is raised on the first attempt.

    Args:
        func: Async function performing the write
        *args: Positional arguments to pass to func
        policy: Attempts and backoff, ``DEFAULT_RETRY_POLICY`` when omitted
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result of the function call

    Raises:
        The last database error once attempts are exhausted
    """
    policy = policy or DEFAULT_RETRY_POLICY
    delays = policy.delays()
    attempt = 1

    while True:
        try:
            return await func(*args, **kwargs)
        except (OperationalError, DBAPIError) as e:
            delay = next(delays, None) if is_connection_error(e) else None
            if delay is None:
                raise

            logger.warning(
                f"Database write failed (attempt {attempt}/{policy.max_attempts}): {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            attempt += 1

