"""
Reduces concurrently acquired ClockSamples to a single TimelineAnchor.

Two policies are provided:
  - `MinimumLatencySelector`: keeps the sample with the smallest round trip.
    A low round trip bounds the error of the symmetric-latency assumption, so
    this minimizes worst-case bias. This is the default.
  - `AveragingSelector`: averages the offsets of several batches of samples.
    This suppresses variance from any single outlier, at the cost of also
    smoothing away an accurate very-low-latency sample.

Every round waits for all of its samples to settle before reducing them.
Individual sample failures are tolerated as long as one sample succeeds.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence

from dashtime.config import ClientConfig
from dashtime.timesync.common.clock_sample import ClockSample
from dashtime.timesync.common.errors import (
    SynchronizationFailed,
    TimeSyncError,
)
from dashtime.timesync.common.monotonic_clock import (
    MonotonicClock,
    default_monotonic_clock,
)
from dashtime.timesync.common.time_formats import from_unix_nanoseconds
from dashtime.timesync.common.timeline_anchor import TimelineAnchor

logger = logging.getLogger(__name__)

AcquireFn = Callable[[], Awaitable[ClockSample]]


class SampleSelector(ABC):
    """Abstract base class for sample reduction policies."""

    async def select(self, acquire: AcquireFn) -> TimelineAnchor:
        """
        Runs one synchronization round and reduces it to an anchor.

        Args:
            acquire: Performs one exchange. Called once per sample.

        Returns:
            The anchor produced by this policy.

        Raises:
            SynchronizationFailed: If every sample in the round failed.
        """
        samples = await self._acquire_round(acquire)
        return self.reduce(samples)

    @abstractmethod
    async def _acquire_round(self, acquire: AcquireFn) -> list[ClockSample]:
        """Acquires the samples of one round, in issue order."""

    @abstractmethod
    def reduce(self, samples: Sequence[ClockSample]) -> TimelineAnchor:
        """
        Reduces |samples| to one anchor.

        Args:
            samples: At least one sample, in issue order.

        Raises:
            ValueError: If |samples| is empty.
        """

    @staticmethod
    async def _fan_out(
        acquire: AcquireFn, count: int
    ) -> tuple[list[ClockSample], list[TimeSyncError]]:
        """
        Runs |count| acquisitions concurrently and waits for all of them.

        Returns:
            The successful samples and the failures, each in issue order.

        Raises:
            Any exception that is not a TimeSyncError.
        """
        results = await asyncio.gather(
            *(acquire() for _ in range(count)), return_exceptions=True
        )

        samples: list[ClockSample] = []
        errors: list[TimeSyncError] = []
        for result in results:
            if isinstance(result, TimeSyncError):
                errors.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                samples.append(result)

        for error in errors:
            logger.warning("Discarding failed time sample: %s", error)

        return samples, errors


class MinimumLatencySelector(SampleSelector):
    """
    Issues several samples concurrently and keeps the one with the smallest
    round trip. Ties go to the first such sample in issue order.
    """

    def __init__(self, sample_count: int = 3) -> None:
        """
        Args:
            sample_count: Number of concurrent samples per round.
        """
        if sample_count < 1:
            raise ValueError("sample_count must be at least 1.")
        self.__sample_count = sample_count

    async def _acquire_round(self, acquire: AcquireFn) -> list[ClockSample]:
        samples, errors = await self._fan_out(acquire, self.__sample_count)
        if not samples:
            raise SynchronizationFailed(
                f"All {self.__sample_count} time samples failed.", errors
            )
        return samples

    def reduce(self, samples: Sequence[ClockSample]) -> TimelineAnchor:
        if not samples:
            raise ValueError("Cannot select from zero samples.")

        # min() returns the first minimal element, giving the tie-break.
        best = min(samples, key=lambda sample: sample.round_trip_ns)
        return best.to_anchor()


class AveragingSelector(SampleSelector):
    """
    Issues several sequential batches of concurrent samples and averages the
    offset between the remote timeline and the local monotonic clock across
    all successful samples. The result is anchored at the current tick.
    """

    def __init__(
        self,
        batch_count: int = 3,
        batch_size: int = 3,
        monotonic_clock: MonotonicClock = default_monotonic_clock,
    ) -> None:
        """
        Args:
            batch_count: Number of batches, run one after another.
            batch_size: Number of concurrent samples per batch.
            monotonic_clock: Clock the samples were measured on.
        """
        if batch_count < 1:
            raise ValueError("batch_count must be at least 1.")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1.")
        self.__batch_count = batch_count
        self.__batch_size = batch_size
        self.__monotonic_clock = monotonic_clock

    async def _acquire_round(self, acquire: AcquireFn) -> list[ClockSample]:
        samples: list[ClockSample] = []
        errors: list[TimeSyncError] = []
        for _ in range(self.__batch_count):
            batch_samples, batch_errors = await self._fan_out(
                acquire, self.__batch_size
            )
            samples.extend(batch_samples)
            errors.extend(batch_errors)

        if not samples:
            total = self.__batch_count * self.__batch_size
            raise SynchronizationFailed(
                f"All {total} time samples failed.", errors
            )
        return samples

    def reduce(self, samples: Sequence[ClockSample]) -> TimelineAnchor:
        if not samples:
            raise ValueError("Cannot average zero samples.")

        count = len(samples)
        mean_offset_ns = (
            sum(sample.monotonic_offset_ns for sample in samples) // count
        )
        mean_latency_ns = (
            sum(sample.round_trip_ns for sample in samples) // count
        )

        now_tick = self.__monotonic_clock()
        return TimelineAnchor(
            reference_time=from_unix_nanoseconds(now_tick + mean_offset_ns),
            capture_tick_ns=now_tick,
            sample_latency_ns=mean_latency_ns,
        )


def create_selector(
    config: ClientConfig,
    monotonic_clock: MonotonicClock = default_monotonic_clock,
) -> SampleSelector:
    """Creates the SampleSelector described by |config|."""
    if config.selection_policy == "averaging":
        return AveragingSelector(
            batch_count=config.batch_count,
            batch_size=config.sample_count,
            monotonic_clock=monotonic_clock,
        )
    return MinimumLatencySelector(sample_count=config.sample_count)
