"""Retry and concurrency helpers shared by the fetch waves."""

import logging
import asyncio
import contextlib
from functools import wraps
from typing import TypeVar, Callable

logger = logging.getLogger(__name__)

T = TypeVar('T')


def async_retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
    max_delay: float | None = None,
):
    """
    Retry a coroutine on the given exceptions, doubling the wait each time.

    The wait starts at `initial_delay` and never exceeds `max_delay` when one
    is set. After `max_retries` attempts the last exception propagates, so
    callers decide what an exhausted retry means (MALPageSource turns a
    timeout into PageUnavailable).

    Example:
        @async_retry_with_backoff(exceptions=(httpx.TimeoutException,), max_delay=5.0)
        async def _request(self, url):
            return await self.client.get(url)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            for attempt in range(1, max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.error(f"{func.__qualname__} gave up after {max_retries} attempts: {e}")
                        raise
                    logger.warning(
                        f"{func.__qualname__} attempt {attempt}/{max_retries} failed: {e}; "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    delay *= backoff_factor
                    if max_delay is not None:
                        delay = min(delay, max_delay)
            raise RuntimeError(f"{func.__qualname__} called with max_retries={max_retries}")

        return wrapper
    return decorator


def concurrency_limiter(max_workers: int | None):
    """Semaphore bounding one wave of workers; no bound when max_workers is falsy."""
    return asyncio.Semaphore(max_workers) if max_workers else contextlib.nullcontext()
