"""Exponential backoff with jitter for transient failures."""

import asyncio
import random

from studymate.logging_config import get_logger

log = get_logger(__name__)

BASE_DELAY = 1.0
MAX_DELAY = 30.0
JITTER_RATIO = 0.1


def get_backoff_delay(
    retry_count: int,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
) -> float:
    """Return the delay in seconds before the next attempt.

    ``min(base_delay * 2**retry_count, max_delay)`` plus up to 10% random
    jitter so that many clients don't retry in lockstep. The result never
    exceeds ``max_delay * 1.1``.
    """
    delay = min(base_delay * (2 ** max(retry_count, 0)), max_delay)
    return delay + random.uniform(0, JITTER_RATIO * delay)


async def retry_with_backoff(
    func,
    *args,
    max_retries: int = 2,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
    retryable_exceptions: tuple = (Exception,),
    **kwargs,
):
    """Await ``func(*args, **kwargs)``, retrying on the given exceptions.

    Args:
        func: Coroutine function to call.
        max_retries: Maximum number of retry attempts after the initial call.
        base_delay: Initial delay in seconds between retries.
        max_delay: Maximum delay cap in seconds (before jitter).
        retryable_exceptions: Tuple of exception types to retry on.
    """
    name = getattr(func, "__qualname__", repr(func))
    last_exc = None
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            last_exc = e
            if attempt < max_retries:
                delay = get_backoff_delay(attempt, base_delay, max_delay)
                log.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    name, attempt + 1, max_retries + 1, e, delay,
                )
                await asyncio.sleep(delay)
            else:
                log.error(
                    "%s failed after %d attempts: %s",
                    name, max_retries + 1, e,
                )
    raise last_exc
