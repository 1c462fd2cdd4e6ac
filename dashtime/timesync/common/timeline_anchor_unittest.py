"""Tests for TimelineAnchor."""

import dataclasses
import datetime

import pytest

from dashtime.timesync.common.timeline_anchor import TimelineAnchor

UTC = datetime.timezone.utc
REFERENCE = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


def test_time_at_capture_tick_is_reference_time() -> None:
    anchor = TimelineAnchor(REFERENCE, capture_tick_ns=5_000_000_000)
    assert anchor.time_at(5_000_000_000) == REFERENCE


def test_time_at_adds_elapsed_monotonic_time() -> None:
    anchor = TimelineAnchor(REFERENCE, capture_tick_ns=5_000_000_000)
    assert anchor.time_at(6_500_000_000) == REFERENCE + datetime.timedelta(
        seconds=1.5
    )


def test_time_at_before_capture_goes_backwards() -> None:
    anchor = TimelineAnchor(REFERENCE, capture_tick_ns=5_000_000_000)
    assert anchor.time_at(4_999_000_000) == REFERENCE - datetime.timedelta(
        milliseconds=1
    )


def test_anchor_is_immutable() -> None:
    anchor = TimelineAnchor(REFERENCE, capture_tick_ns=0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        anchor.capture_tick_ns = 1  # type: ignore[misc]


def test_sample_latency() -> None:
    anchor = TimelineAnchor(REFERENCE, 0, sample_latency_ns=12_000_000)
    assert anchor.sample_latency == datetime.timedelta(milliseconds=12)


def test_naive_reference_time_rejected() -> None:
    with pytest.raises(ValueError):
        TimelineAnchor(datetime.datetime(2024, 3, 1), capture_tick_ns=0)


def test_negative_latency_rejected() -> None:
    with pytest.raises(ValueError):
        TimelineAnchor(REFERENCE, 0, sample_latency_ns=-1)
