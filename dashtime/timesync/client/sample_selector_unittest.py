"""Tests for the sample reduction policies."""

import asyncio
import datetime
from collections.abc import Callable
from typing import Awaitable

import pytest

from dashtime.config import ClientConfig
from dashtime.timesync.client.sample_selector import (
    AveragingSelector,
    MinimumLatencySelector,
    create_selector,
)
from dashtime.timesync.common.clock_sample import ClockSample
from dashtime.timesync.common.errors import (
    SynchronizationFailed,
    TimeSyncError,
    TransportError,
)
from dashtime.timesync.common.fake_monotonic_clock import FakeMonotonicClock

UTC = datetime.timezone.utc
REMOTE = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)
MS = 1_000_000


def make_sample(
    rtt_ms: int, remote_offset_ms: int = 0, capture_tick_ns: int = 0
) -> ClockSample:
    return ClockSample(
        remote_time=REMOTE + datetime.timedelta(milliseconds=remote_offset_ms),
        round_trip_ns=rtt_ms * MS,
        local_capture_tick_ns=capture_tick_ns,
    )


def scripted_acquire(
    outcomes: list[ClockSample | Exception],
) -> tuple[Callable[[], Awaitable[ClockSample]], list[int]]:
    """Returns an acquire function handing out |outcomes| in issue order."""
    calls: list[int] = []

    async def acquire() -> ClockSample:
        index = len(calls)
        calls.append(index)
        outcome = outcomes[index]
        # Later-issued samples finish first, to prove issue order is kept.
        await asyncio.sleep(0.001 * (len(outcomes) - index))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return acquire, calls


class TestMinimumLatencyReduce:
    def test_chooses_lowest_round_trip(self) -> None:
        samples = [
            make_sample(50, remote_offset_ms=1),
            make_sample(10, remote_offset_ms=2),
            make_sample(30, remote_offset_ms=3),
        ]

        anchor = MinimumLatencySelector().reduce(samples)

        assert anchor == samples[1].to_anchor()
        assert anchor.sample_latency_ns == 10 * MS

    def test_tie_goes_to_first_in_issue_order(self) -> None:
        samples = [
            make_sample(40, remote_offset_ms=1),
            make_sample(10, remote_offset_ms=2),
            make_sample(10, remote_offset_ms=3),
        ]

        anchor = MinimumLatencySelector().reduce(samples)

        assert anchor.reference_time == samples[1].remote_time

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError):
            MinimumLatencySelector().reduce([])


@pytest.mark.asyncio
class TestMinimumLatencySelect:
    async def test_waits_for_all_samples_then_selects(self) -> None:
        samples = [make_sample(50), make_sample(10, 5), make_sample(30)]
        acquire, calls = scripted_acquire(list(samples))

        anchor = await MinimumLatencySelector(sample_count=3).select(acquire)

        assert len(calls) == 3
        assert anchor == samples[1].to_anchor()

    async def test_partial_failure_tolerated(self) -> None:
        good = make_sample(30)
        acquire, _ = scripted_acquire(
            [TransportError("down"), good, TransportError("down")]
        )

        anchor = await MinimumLatencySelector(sample_count=3).select(acquire)

        assert anchor == good.to_anchor()

    async def test_all_failed_raises_synchronization_failed(self) -> None:
        errors: list[ClockSample | Exception] = [
            TransportError("a"),
            TransportError("b"),
            TransportError("c"),
        ]
        acquire, _ = scripted_acquire(errors)

        with pytest.raises(SynchronizationFailed) as info:
            await MinimumLatencySelector(sample_count=3).select(acquire)

        assert list(info.value.errors) == errors
        assert isinstance(info.value, TimeSyncError)

    async def test_unexpected_errors_propagate(self) -> None:
        acquire, _ = scripted_acquire([make_sample(10), RuntimeError("bug")])

        with pytest.raises(RuntimeError, match="bug"):
            await MinimumLatencySelector(sample_count=2).select(acquire)


class TestAveragingReduce:
    def test_averages_offsets_and_anchors_at_current_tick(self) -> None:
        clock = FakeMonotonicClock(start_ns=10_000 * MS)
        # Same remote instant observed at different capture ticks: offsets
        # differ by 0, 2 and 4 ms, so the mean is 2 ms.
        samples = [
            make_sample(10, capture_tick_ns=1_000 * MS),
            make_sample(20, capture_tick_ns=998 * MS),
            make_sample(30, capture_tick_ns=996 * MS),
        ]

        anchor = AveragingSelector(monotonic_clock=clock).reduce(samples)

        assert anchor.capture_tick_ns == clock()
        # 9 s after the first sample was captured, plus the 2 ms mean offset.
        expected = REMOTE + datetime.timedelta(seconds=9, milliseconds=2)
        assert anchor.reference_time == expected
        assert anchor.sample_latency_ns == 20 * MS

    def test_single_sample_matches_its_own_timeline(self) -> None:
        clock = FakeMonotonicClock(start_ns=5_000 * MS)
        sample = make_sample(10, capture_tick_ns=4_000 * MS)

        anchor = AveragingSelector(monotonic_clock=clock).reduce([sample])

        assert anchor.time_at(6_000 * MS) == sample.to_anchor().time_at(
            6_000 * MS
        )

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError):
            AveragingSelector().reduce([])


@pytest.mark.asyncio
class TestAveragingSelect:
    async def test_runs_all_batches(self) -> None:
        clock = FakeMonotonicClock()
        samples: list[ClockSample | Exception] = [
            make_sample(10, capture_tick_ns=clock()) for _ in range(6)
        ]
        acquire, calls = scripted_acquire(samples)

        await AveragingSelector(
            batch_count=2, batch_size=3, monotonic_clock=clock
        ).select(acquire)

        assert len(calls) == 6

    async def test_failed_batch_tolerated(self) -> None:
        clock = FakeMonotonicClock()
        good = make_sample(10, capture_tick_ns=clock())
        acquire, _ = scripted_acquire(
            [TransportError("x"), TransportError("y"), good, good]
        )

        anchor = await AveragingSelector(
            batch_count=2, batch_size=2, monotonic_clock=clock
        ).select(acquire)

        assert anchor.reference_time == REMOTE

    async def test_all_failed_raises_synchronization_failed(self) -> None:
        acquire, _ = scripted_acquire([TransportError("x")] * 4)

        with pytest.raises(SynchronizationFailed):
            await AveragingSelector(batch_count=2, batch_size=2).select(
                acquire
            )


def test_create_selector_defaults_to_minimum_latency() -> None:
    selector = create_selector(ClientConfig(base_url="http://host/"))
    assert isinstance(selector, MinimumLatencySelector)


def test_create_selector_averaging() -> None:
    config = ClientConfig(
        base_url="http://host/", selection_policy="averaging"
    )
    assert isinstance(create_selector(config), AveragingSelector)


@pytest.mark.parametrize("count", [0, -1])
def test_invalid_counts_rejected(count: int) -> None:
    with pytest.raises(ValueError):
        MinimumLatencySelector(sample_count=count)
    with pytest.raises(ValueError):
        AveragingSelector(batch_count=count)
