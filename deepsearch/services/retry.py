from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from deepsearch.services.failures import is_retryable

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    label: str = "call",
) -> T:
    """Run `fn`, retrying retryable failures with exponential backoff.

    Used by I/O adapters only; the agent loop itself never retries.
    """
    delay = max(initial_delay, 0.0)
    attempts = max(int(max_retries), 0) + 1

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as exc:
            if attempt == attempts or not should_retry(exc):
                raise
            logger.debug(f"{label} attempt {attempt} failed ({exc}); retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
            delay = min(delay * backoff_factor, max_delay)

    raise RuntimeError("unreachable")  # pragma: no cover
