"""Client-side components for dashtime time synchronization."""

from dashtime.timesync.client.clock_sample_acquirer import (
    ClockSampleAcquirer,
    TimeEndpoint,
    build_endpoint_url,
)
from dashtime.timesync.client.sample_selector import (
    AveragingSelector,
    MinimumLatencySelector,
    SampleSelector,
)
from dashtime.timesync.client.synchronized_time_source import (
    SynchronizedTimeSource,
)

__all__ = [
    "AveragingSelector",
    "ClockSampleAcquirer",
    "MinimumLatencySelector",
    "SampleSelector",
    "SynchronizedTimeSource",
    "TimeEndpoint",
    "build_endpoint_url",
]
