"""Defines ClockSample, one bias-corrected reading of a remote clock."""

import dataclasses
import datetime

from dashtime.timesync.common.time_formats import to_unix_nanoseconds
from dashtime.timesync.common.timeline_anchor import TimelineAnchor


@dataclasses.dataclass(frozen=True)
class ClockSample:
    """
    A remote clock reading paired with the local monotonic tick at which it is
    estimated to have been taken.

    The remote party stamps its response somewhere between our request being
    sent and the response arriving. Assuming both network legs take equal
    time, that moment is half a round trip after the send, so
    `local_capture_tick_ns` is `send_tick + round_trip_ns // 2`.

    Attributes:
        remote_time: The instant reported by the remote party, in UTC.
        round_trip_ns: Monotonic time between sending the request and
            receiving the full response body.
        local_capture_tick_ns: Monotonic tick corresponding to `remote_time`.
    """

    remote_time: datetime.datetime
    round_trip_ns: int
    local_capture_tick_ns: int

    def __post_init__(self) -> None:
        """Performs post-initialization validation."""
        if self.remote_time.tzinfo is None:
            raise ValueError("remote_time must be timezone-aware.")
        if self.round_trip_ns < 0:
            raise ValueError("round_trip_ns must not be negative.")

    @property
    def monotonic_offset_ns(self) -> int:
        """
        Offset between the remote timeline (Unix nanoseconds) and the local
        monotonic clock. Comparable across samples taken against the same
        monotonic clock, which is what makes averaging meaningful.
        """
        remote_ns = to_unix_nanoseconds(self.remote_time)
        return remote_ns - self.local_capture_tick_ns

    def to_anchor(self) -> TimelineAnchor:
        """Returns the TimelineAnchor this sample establishes on its own."""
        return TimelineAnchor(
            reference_time=self.remote_time,
            capture_tick_ns=self.local_capture_tick_ns,
            sample_latency_ns=self.round_trip_ns,
        )
