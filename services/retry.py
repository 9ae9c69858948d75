"""Retry helper with capped attempts and exponential backoff."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay after failed attempt ``attempt`` (1-based): base, 2*base, 4*base..."""
    return base_delay * (2 ** (attempt - 1))


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    is_retryable: Callable[[Exception], bool] = lambda exc: True,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """Run ``operation(attempt)`` until it succeeds or attempts run out.

    Errors rejected by ``is_retryable`` propagate immediately. When every
    attempt fails the last error is re-raised.
    """
    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")

    attempt = 1
    while True:
        try:
            return await operation(attempt)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not is_retryable(exc):
                raise
            logger.warning("%s attempt %d/%d failed: %s", description, attempt, max_attempts, exc)
            if attempt >= max_attempts:
                logger.warning("All %d %s attempts failed", max_attempts, description)
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.info("Waiting %.1fs before retrying %s", delay, description)
            await sleep(delay)
            attempt += 1
