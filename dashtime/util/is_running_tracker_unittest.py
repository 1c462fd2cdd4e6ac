"""Tests for IsRunningTracker."""

import asyncio
import threading

import pytest

from dashtime.util.is_running_tracker import IsRunningTracker


@pytest.fixture
def tracker() -> IsRunningTracker:
    """Fixture to create an IsRunningTracker instance."""
    return IsRunningTracker()


def test_initialization(tracker: IsRunningTracker) -> None:
    """Tests that IsRunningTracker initializes with is_running as False."""
    assert not tracker.is_running


def test_basic_sequence(tracker: IsRunningTracker) -> None:
    """Tests a basic sequence of operations."""
    tracker.start()
    assert tracker.is_running
    tracker.stop()
    assert not tracker.is_running
    tracker.set(True)
    assert tracker.is_running
    tracker.set(False)
    assert not tracker.is_running


@pytest.mark.asyncio
async def test_task_or_stopped_returns_result(
    tracker: IsRunningTracker,
) -> None:
    tracker.start()

    async def compute() -> int:
        await asyncio.sleep(0)
        return 42

    assert await tracker.task_or_stopped(compute()) == 42


@pytest.mark.asyncio
async def test_task_or_stopped_when_not_running_skips_call(
    tracker: IsRunningTracker,
) -> None:
    called = False

    async def compute() -> int:
        nonlocal called
        called = True
        return 1

    assert await tracker.task_or_stopped(compute()) is None
    assert not called


@pytest.mark.asyncio
async def test_task_or_stopped_propagates_exception(
    tracker: IsRunningTracker,
) -> None:
    tracker.start()

    async def fail() -> None:
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await tracker.task_or_stopped(fail())


@pytest.mark.asyncio
async def test_stop_cancels_pending_call(tracker: IsRunningTracker) -> None:
    tracker.start()
    cancelled = asyncio.Event()

    async def hang() -> int:
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return 1

    waiter = asyncio.create_task(tracker.task_or_stopped(hang()))
    await asyncio.sleep(0.01)
    tracker.stop()

    assert await asyncio.wait_for(waiter, timeout=1) is None
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_stop_from_other_thread_wakes_waiter(
    tracker: IsRunningTracker,
) -> None:
    tracker.start()
    waiter = asyncio.create_task(tracker.wait_until_stopped())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    thread = threading.Thread(target=tracker.stop)
    thread.start()
    thread.join()

    await asyncio.wait_for(waiter, timeout=1)
    assert not tracker.is_running


@pytest.mark.asyncio
async def test_wait_until_stopped_returns_immediately_when_stopped(
    tracker: IsRunningTracker,
) -> None:
    await asyncio.wait_for(tracker.wait_until_stopped(), timeout=1)
