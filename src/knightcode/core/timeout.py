"""core.timeout

Deadline decorator for coroutine functions.

The wrapped call runs as a task under `asyncio.wait_for`; when the deadline
passes the task is cancelled and the caller gets `OperationTimeoutError`.
Each call gets its own, fresh deadline, so stacking `with_retry` on top gives
every attempt a full timeout window.
"""

from __future__ import annotations

import asyncio
import functools
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from knightcode.core.exceptions import OperationTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

P = ParamSpec('P')
T = TypeVar('T')


def with_timeout(timeout_ms: float) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Fail with `OperationTimeoutError` if *func* has not settled within *timeout_ms*."""
    if timeout_ms <= 0:
        raise ValueError(f'timeout_ms must be positive, got {timeout_ms}')

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_ms / 1000)
            except TimeoutError as exc:
                raise OperationTimeoutError(f'Operation timed out after {timeout_ms:g}ms') from exc

        return wrapper

    return decorator
