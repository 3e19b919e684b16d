"""Bounded exponential backoff for pool exhaustion."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from survey_db.engine import PoolExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_pool_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    base_delay: float = 0.2,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying on :class:`PoolExhaustedError`.

    Waits ``base_delay``, then twice that, and so on between tries.  The
    error from the final attempt propagates.
    """
    attempts = max(1, attempts)
    attempt = 1
    while True:
        try:
            return await fn(*args, **kwargs)
        except PoolExhaustedError:
            if attempt >= attempts:
                logger.error("Pool still exhausted after %d attempts", attempt)
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Pool exhausted (attempt %d/%d), retrying in %.2fs",
                attempt, attempts, delay,
            )
            await asyncio.sleep(delay)
            attempt += 1


class RetryPolicy:
    """Retry settings carried by a session.

    Args:
        attempts: total tries, including the first
        base_delay: seconds before the first retry
    """

    def __init__(self, attempts: int = 3, base_delay: float = 0.2) -> None:
        self.attempts = attempts
        self.base_delay = base_delay

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        return await with_pool_retry(
            fn, *args, attempts=self.attempts, base_delay=self.base_delay, **kwargs
        )
