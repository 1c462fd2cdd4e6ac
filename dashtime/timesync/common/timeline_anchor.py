"""Defines TimelineAnchor, the immutable result of a synchronization round."""

import dataclasses
import datetime


@dataclasses.dataclass(frozen=True)
class TimelineAnchor:
    """
    Binds a trusted wall-clock instant to the monotonic clock reading taken
    when that instant was true.

    The current synchronized time is derived as
    `reference_time + (current_tick - capture_tick_ns)`, which follows the
    trusted timeline independently of any later change to the local wall
    clock. Instances are never mutated; a refresh replaces the whole anchor.

    Attributes:
        reference_time: Timezone-aware UTC instant this anchor represents.
        capture_tick_ns: Monotonic clock reading, in nanoseconds, at which
            `reference_time` was the true time.
        sample_latency_ns: Round trip time of the exchange that produced this
            anchor (mean round trip when several samples were averaged).
    """

    reference_time: datetime.datetime
    capture_tick_ns: int
    sample_latency_ns: int = 0

    def __post_init__(self) -> None:
        """Performs post-initialization validation."""
        if not isinstance(self.reference_time, datetime.datetime):
            raise TypeError("reference_time must be a datetime.datetime.")
        if self.reference_time.tzinfo is None:
            raise ValueError("reference_time must be timezone-aware.")
        if self.sample_latency_ns < 0:
            raise ValueError("sample_latency_ns must not be negative.")

    def time_at(self, tick_ns: int) -> datetime.datetime:
        """
        Returns the synchronized time at monotonic reading |tick_ns|.

        Args:
            tick_ns: A reading of the same monotonic clock used to capture
                this anchor.
        """
        elapsed_ns = tick_ns - self.capture_tick_ns
        return self.reference_time + datetime.timedelta(
            microseconds=elapsed_ns / 1_000
        )

    @property
    def sample_latency(self) -> datetime.timedelta:
        """The sample latency as a timedelta."""
        return datetime.timedelta(microseconds=self.sample_latency_ns / 1_000)
