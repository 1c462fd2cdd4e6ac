"""Tests for ClockSample."""

import datetime

import pytest

from dashtime.timesync.common.clock_sample import ClockSample
from dashtime.timesync.common.time_formats import to_unix_nanoseconds

UTC = datetime.timezone.utc
REMOTE = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


def test_to_anchor_binds_remote_time_to_capture_tick() -> None:
    sample = ClockSample(
        REMOTE, round_trip_ns=20_000_000, local_capture_tick_ns=7_000
    )
    anchor = sample.to_anchor()

    assert anchor.reference_time == REMOTE
    assert anchor.capture_tick_ns == 7_000
    assert anchor.sample_latency_ns == 20_000_000


def test_monotonic_offset() -> None:
    sample = ClockSample(REMOTE, round_trip_ns=0, local_capture_tick_ns=1_000)
    assert sample.monotonic_offset_ns == to_unix_nanoseconds(REMOTE) - 1_000


def test_negative_round_trip_rejected() -> None:
    with pytest.raises(ValueError):
        ClockSample(REMOTE, round_trip_ns=-1, local_capture_tick_ns=0)
