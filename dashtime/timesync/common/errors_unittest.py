"""Tests for the time synchronization exceptions."""

from dashtime.timesync.common.errors import (
    MalformedResponse,
    SynchronizationFailed,
    TimeSyncError,
    TransportError,
)


def test_hierarchy() -> None:
    assert issubclass(TransportError, TimeSyncError)
    assert issubclass(MalformedResponse, TransportError)
    assert issubclass(SynchronizationFailed, TimeSyncError)
    assert not issubclass(SynchronizationFailed, TransportError)


def test_synchronization_failed_lists_causes() -> None:
    causes = [TransportError("timed out"), MalformedResponse("too long")]

    error = SynchronizationFailed("All 2 time samples failed.", causes)

    assert error.errors == tuple(causes)
    assert str(error) == (
        "All 2 time samples failed. (timed out; too long)"
    )


def test_synchronization_failed_without_causes() -> None:
    error = SynchronizationFailed("Nothing was attempted.", [])

    assert error.errors == ()
    assert str(error) == "Nothing was attempted."
