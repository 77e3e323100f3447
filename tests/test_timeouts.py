import asyncio

import pytest

from imagine_stories.common.errors import StageTimeoutError
from imagine_stories.common.timeouts import with_timeout


def _pending_tasks():
    current = asyncio.current_task()
    return [t for t in asyncio.all_tasks() if t is not current and not t.done()]


async def _value(v, delay=0.0):
    await asyncio.sleep(delay)
    return v


async def test_returns_result_before_deadline():
    assert await with_timeout(_value("done"), 1.0, "too slow") == "done"
    assert _pending_tasks() == []


async def test_raises_stage_timeout_with_message():
    with pytest.raises(StageTimeoutError) as info:
        await with_timeout(_value("late", delay=5), 0.01, "The story took too long.")
    assert info.value.message == "The story took too long."
    assert info.value.status_code == 504
    assert _pending_tasks() == []


async def test_late_result_is_discarded():
    seen = []

    async def slow():
        await asyncio.sleep(0.05)
        seen.append("finished")
        return "late"

    with pytest.raises(StageTimeoutError):
        await with_timeout(slow(), 0.01, "timed out")
    await asyncio.sleep(0.1)
    assert seen == []


async def test_operation_errors_pass_through():
    async def boom():
        raise RuntimeError("upstream exploded")

    with pytest.raises(RuntimeError, match="upstream exploded"):
        await with_timeout(boom(), 1.0, "timed out")
    assert _pending_tasks() == []
