import asyncio

import pytest

from data_management_operations import PerformanceTimer


def test_successful_and_failed_operations_are_recorded():
    timer = PerformanceTimer(enable_logging=False)

    with timer.time_operation_sync("get", {"index": "things"}) as timing:
        pass
    with pytest.raises(RuntimeError):
        with timer.time_operation_sync("get"):
            raise RuntimeError("boom")

    history = timer.get_timing_history()
    assert [t.success for t in history] == [True, False]
    assert timing.metadata == {"index": "things"}
    assert timing.execution_time >= 0

    stats = timer.get_operation_stats("get")
    assert stats.total_operations == 2
    assert stats.successful_operations == 1
    assert timer.get_operation_stats("search") is None


@pytest.mark.asyncio
async def test_async_timing():
    timer = PerformanceTimer(enable_logging=False)

    async with timer.time_operation("search"):
        await asyncio.sleep(0)

    assert list(timer.get_summary()) == ["search"]


def test_history_is_bounded_and_clearable():
    timer = PerformanceTimer(enable_logging=False, history_size=3)
    for _ in range(5):
        with timer.time_operation_sync("index"):
            pass

    assert len(timer.get_timing_history()) == 3
    timer.clear_history()
    assert timer.get_timing_history() == []


def test_disabled_timer_records_nothing():
    timer = PerformanceTimer(enabled=False)

    with timer.time_operation_sync("index") as timing:
        pass

    assert timing is not None
    assert timer.get_timing_history() == []
