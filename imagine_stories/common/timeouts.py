from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from imagine_stories.common.errors import StageTimeoutError

T = TypeVar("T")


async def with_timeout(operation: Awaitable[T], seconds: float, message: str) -> T:
    """
    Await ``operation`` for at most ``seconds``.

    On expiry the operation is abandoned and StageTimeoutError(message) is
    raised; a result that arrives later is dropped with the cancelled task.
    The operation's own exceptions pass through untouched.
    """
    try:
        return await asyncio.wait_for(operation, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise StageTimeoutError(message) from exc
