"""
Retry policy for sync runs: fixed exponential back-off, no jitter and no
classification of errors (every exception is retried the same way).
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    label: Optional[str] = None,
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Before retry ``n`` (1-based failed attempt) sleeps
    ``base_delay * 2 ** (n - 1)`` seconds. Once attempts are exhausted the
    last exception is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts, values below 1 count as 1
        base_delay: Delay before the first retry in seconds
        sleep: Sleep coroutine, injectable for tests
        label: Name used in log messages
    """
    attempts = max(1, max_attempts)
    label = label or getattr(operation, "__name__", "operation")

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= attempts:
                logger.error(f"{label}: all {attempts} attempts failed, last error: {e}")
                raise

            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"{label}: attempt {attempt}/{attempts} failed ({e}), retrying in {delay:g}s"
            )
            await sleep(delay)

