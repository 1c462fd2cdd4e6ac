"""Time synchronization for dashtime clients and servers."""

from dashtime.timesync.common.clock_sample import ClockSample
from dashtime.timesync.common.errors import (
    MalformedResponse,
    SynchronizationFailed,
    TimeSyncError,
    TransportError,
)
from dashtime.timesync.common.time_source import TimeSource
from dashtime.timesync.common.timeline_anchor import TimelineAnchor

__all__ = [
    "ClockSample",
    "MalformedResponse",
    "SynchronizationFailed",
    "TimeSource",
    "TimeSyncError",
    "TimelineAnchor",
    "TransportError",
]
