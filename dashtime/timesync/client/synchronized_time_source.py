"""Client-side TimeSource that follows a dashtime server's timeline."""

import asyncio
import datetime
import logging
from types import TracebackType
from typing import Optional, Type

import httpx

from dashtime.config import ClientConfig
from dashtime.threading.atomic import Atomic
from dashtime.timesync.client.clock_sample_acquirer import (
    ClockSampleAcquirer,
    TimeEndpoint,
    build_endpoint_url,
)
from dashtime.timesync.client.sample_selector import (
    SampleSelector,
    create_selector,
)
from dashtime.timesync.common.errors import TimeSyncError
from dashtime.timesync.common.monotonic_clock import (
    MonotonicClock,
    default_monotonic_clock,
)
from dashtime.timesync.common.time_source import TimeSource
from dashtime.timesync.common.timeline_anchor import TimelineAnchor
from dashtime.util.is_running_tracker import IsRunningTracker

logger = logging.getLogger(__name__)


# pylint: disable=too-many-instance-attributes # State for the refresh loop.
class SynchronizedTimeSource(TimeSource):
    """
    Obtains a reference time from a dashtime server and supplies it, in
    RTT-adjusted form, to callers. Refreshes periodically in the background
    to keep in sync over time.

    Instances only exist in the synchronized state: `create` fails if the
    first synchronization cannot be established. After that, background
    refreshes may fail; the last good anchor keeps being served and simply
    drifts with the local monotonic clock until a refresh succeeds.

    `now` is thread-safe and never blocks on I/O. All other methods must be
    called from the event loop `create` ran on.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        anchor: TimelineAnchor,
        acquirer: ClockSampleAcquirer,
        selector: SampleSelector,
        *,
        refresh_interval_seconds: float,
        monotonic_clock: MonotonicClock = default_monotonic_clock,
        owned_http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initializes an already synchronized instance. Prefer `create`.

        Args:
            anchor: Result of the initial synchronization.
            acquirer: Used for background refreshes.
            selector: Reduction policy for background refreshes.
            refresh_interval_seconds: Time between background refreshes.
            monotonic_clock: Clock |anchor| was captured against.
            owned_http_client: HTTP client to close on `stop`, if any.
        """
        if refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive.")

        self.__anchor = Atomic[TimelineAnchor](anchor)
        self.__acquirer = acquirer
        self.__selector = selector
        self.__refresh_interval_seconds = refresh_interval_seconds
        self.__monotonic_clock = monotonic_clock
        self.__owned_http_client = owned_http_client

        self.__is_running = IsRunningTracker()
        self.__refresh_task: asyncio.Task[None] | None = None

    @classmethod
    async def create(
        cls,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        selector: SampleSelector | None = None,
        monotonic_clock: MonotonicClock = default_monotonic_clock,
    ) -> "SynchronizedTimeSource":
        """
        Synchronizes with the time server described by |config| and returns
        an instance that keeps tracking it. Returns once synchronization has
        been established.

        Args:
            config: Server location, sampling and refresh settings.
            http_client: Client to use. If None, one is created and closed
                again by `stop`.
            selector: Reduction policy. Defaults to the one in |config|.
            monotonic_clock: Clock to anchor against.

        Raises:
            TimeSyncError: If the initial synchronization failed. No instance
                is created in that case.
        """
        endpoint = TimeEndpoint(config.endpoint)
        url = build_endpoint_url(config.base_url, endpoint)
        if selector is None:
            selector = create_selector(config, monotonic_clock)

        owned_http_client = None
        if http_client is None:
            owned_http_client = httpx.AsyncClient()
            http_client = owned_http_client

        acquirer = ClockSampleAcquirer(
            http_client,
            url,
            endpoint=endpoint,
            timeout_seconds=config.sample_timeout_seconds,
            monotonic_clock=monotonic_clock,
        )

        try:
            if config.warm_up:
                # Connection, DNS and TLS setup would otherwise inflate the
                # first RTT. The result is thrown away.
                await acquirer.acquire()

            anchor = await selector.select(acquirer.acquire)
        except BaseException:
            if owned_http_client is not None:
                await owned_http_client.aclose()
            raise

        logger.info(
            "Synchronized with %s: true time %s, RTT %.3f ms.",
            url,
            anchor.reference_time.isoformat(),
            anchor.sample_latency_ns / 1_000_000,
        )

        instance = cls(
            anchor,
            acquirer,
            selector,
            refresh_interval_seconds=config.refresh_interval_seconds,
            monotonic_clock=monotonic_clock,
            owned_http_client=owned_http_client,
        )
        instance.__start()
        return instance

    @property
    def anchor(self) -> TimelineAnchor:
        """The anchor `now` is currently derived from."""
        return self.__anchor.get()

    @property
    def is_running(self) -> bool:
        """Whether background refreshes are still running."""
        return self.__is_running.is_running

    def now(self) -> datetime.datetime:
        """
        Returns the current synchronized time as a UTC datetime.

        Derived purely from the current anchor and the monotonic clock, so it
        never touches the network and is unaffected by local wall-clock
        changes.
        """
        anchor = self.__anchor.get()
        return anchor.time_at(self.__monotonic_clock())

    def get_current_time(self) -> datetime.datetime:
        return self.now()

    async def refresh(self) -> TimelineAnchor:
        """
        Runs one synchronization round and swaps in the resulting anchor.

        Returns:
            The new anchor.

        Raises:
            TimeSyncError: If the round failed. The held anchor is unchanged.
        """
        anchor = await self.__selector.select(self.__acquirer.acquire)
        self.__swap_anchor(anchor)
        return anchor

    async def stop(self) -> None:
        """
        Stops background refreshes, abandoning any in-flight exchange, and
        waits for the refresh task to exit. Safe to call more than once.

        `now` keeps working afterwards, drifting with the monotonic clock.
        """
        self.__is_running.stop()

        task = self.__refresh_task
        self.__refresh_task = None
        if task is not None:
            await task

        if self.__owned_http_client is not None:
            client = self.__owned_http_client
            self.__owned_http_client = None
            await client.aclose()

    async def __aenter__(self) -> "SynchronizedTimeSource":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    def __start(self) -> None:
        assert self.__refresh_task is None, "Refresh loop already started."
        self.__is_running.start()
        self.__refresh_task = asyncio.create_task(self.__run_refresh_loop())

    def __swap_anchor(self, anchor: TimelineAnchor) -> None:
        previous = self.__anchor.exchange(anchor)

        # How far the new timeline is from where the old one had drifted to.
        correction = anchor.reference_time - previous.time_at(
            anchor.capture_tick_ns
        )
        logger.info(
            "Resynchronized: true time %s, RTT %.3f ms, correction %.3f ms.",
            anchor.reference_time.isoformat(),
            anchor.sample_latency_ns / 1_000_000,
            correction / datetime.timedelta(milliseconds=1),
        )

    async def __run_refresh_loop(self) -> None:
        """
        Refreshes the anchor every `refresh_interval_seconds` until stopped.
        Failed refreshes, whatever the error, are logged and retried at the
        next interval.
        """
        while self.__is_running.get():
            await self.__is_running.task_or_stopped(
                asyncio.sleep(self.__refresh_interval_seconds)
            )
            if not self.__is_running.get():
                break

            try:
                anchor = await self.__is_running.task_or_stopped(
                    self.__selector.select(self.__acquirer.acquire)
                )
            except TimeSyncError as e:
                # Keep ticking on the previous anchor.
                logger.warning(
                    "Background time synchronization failed: %s", e
                )
                continue
            # pylint: disable=broad-exception-caught # Ensures loop continues
            except Exception:
                logger.exception(
                    "Unexpected error during background time synchronization."
                )
                continue

            if anchor is None:
                break

            self.__swap_anchor(anchor)

        logger.debug("Stopping background time refreshes due to signal.")
