"""core.retry

Reusable retry utilities with exponential back-off + optional jitter.
Designed to run in the **core** layer and depends only on Python stdlib + Pydantic.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import secrets
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

P = ParamSpec('P')
T = TypeVar('T')

logger = logging.getLogger(__name__)


class RetryStrategy(BaseModel):
    """Configuration for exponential back-off retry with optional jitter."""

    max_retries: int = Field(default=3, ge=0, description='Attempts after the first call')
    initial_delay_ms: int = Field(default=1000, ge=0, description='Delay before the first retry')
    max_delay_ms: int = Field(default=10_000, ge=0, description='Upper bound for any sleep interval')
    jitter: bool = Field(default=True, description='Add up to 10% random jitter to each interval')

    model_config = {
        'frozen': True,
    }

    def compute_delay(self, attempt_number: int) -> float:
        """Return the sleep (milliseconds) after the given failed attempt (1-indexed)."""
        delay = min(self.initial_delay_ms * (2 ** (attempt_number - 1)), self.max_delay_ms)

        if self.jitter:
            delay += delay * secrets.randbelow(11) / 100

        return float(min(delay, self.max_delay_ms))


def with_retry(
    strategy: RetryStrategy | None = None,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry decorator for coroutine functions.

    Parameters
    ----------
    strategy
        Retry policy. Defaults to RetryStrategy() if None.
    sleep
        Awaitable sleep taking *seconds*; swapped out in tests.

    Every exception triggers a retry unless it carries ``retryable = False``.
    When attempts run out the last exception is re-raised unchanged.

    """
    retry_strategy = strategy or RetryStrategy()

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            total_attempts = retry_strategy.max_retries + 1
            for attempt_number in range(1, total_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if attempt_number == total_attempts or not getattr(exc, 'retryable', True):
                        raise
                    delay_ms = retry_strategy.compute_delay(attempt_number)
                    logger.debug(
                        f'Attempt {attempt_number}/{total_attempts} failed ({exc}); retrying in {delay_ms:.0f}ms'
                    )
                    await sleep(delay_ms / 1000)

            # Unreachable: the final attempt either returns or raises
            raise AssertionError('retry loop exited without a result')

        return wrapper

    return decorator
