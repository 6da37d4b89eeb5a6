"""Retry logic with linear backoff.

Delay before retry n is ``base_delay * n`` (1s, 2s, 3s … for base 1s).
Errors outside ``retry_on``, and errors flagged ``retryable=False``, propagate
immediately.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.errors import ExhaustedRetriesError, UpstreamError
from app.orchestrator.schemas import RetryNotice

T = TypeVar("T")
logger = logging.getLogger(__name__)

RetryCallback = Callable[[RetryNotice], Awaitable[None] | None]


def backoff_delays(base_delay: float, max_attempts: int) -> list[float]:
    """Delays inserted between attempts; one fewer than the attempt count."""
    return [base_delay * attempt for attempt in range(1, max_attempts)]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    *,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (UpstreamError,),
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``max_attempts`` times.

    Before every retry ``on_retry`` receives a RetryNotice naming the attempt
    about to start. Raises ExhaustedRetriesError (chained from the last error)
    once all attempts fail.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delays = backoff_delays(base_delay, max_attempts)
    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if not getattr(e, "retryable", True):
                raise
            last_error = e
            if attempt == max_attempts:
                break

            delay = delays[attempt - 1]
            logger.warning(
                "Retry %d/%d in %.1fs | %s",
                attempt + 1, max_attempts, delay, str(e)[:200],
            )
            if on_retry is not None:
                notice = RetryNotice(
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(e)[:200],
                )
                result = on_retry(notice)
                if inspect.isawaitable(result):
                    await result
            await sleep(delay)

    logger.error("All %d attempts failed | %s", max_attempts, str(last_error)[:200])
    raise ExhaustedRetriesError(max_attempts, last_error) from last_error
