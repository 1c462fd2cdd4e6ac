"""NTP corrected TimeSource used by the dashtime HTTP server."""

import asyncio
import datetime
import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from functools import partial

import ntplib  # type: ignore[import-untyped]

from dashtime.config import ServerConfig
from dashtime.threading.atomic import Atomic
from dashtime.timesync.common.constants import (
    kDefaultNtpServer,
    kNtpPort,
    kNtpVersion,
    kRefreshIntervalSeconds,
)
from dashtime.timesync.common.errors import TransportError
from dashtime.timesync.common.local_time_source import LocalTimeSource
from dashtime.timesync.common.time_source import TimeSource
from dashtime.util.is_running_tracker import IsRunningTracker

logger = logging.getLogger(__name__)


# pylint: disable=too-many-instance-attributes # State for the NTP loop.
class NtpTimeSource(TimeSource):
    """
    Corrects the local wall clock by the offset reported by an NTP server.

    Startup never blocks on the network: until the first query succeeds the
    offset is zero and the local clock is served as-is. A failed query keeps
    the previous offset.

    NOTE: `get_current_time` is thread-safe. `start_async` and `stop` must be
    called from the same event loop.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        server: str = kDefaultNtpServer,
        *,
        refresh_interval_seconds: float = kRefreshIntervalSeconds,
        ntp_port: int = kNtpPort,
        ntp_version: int = kNtpVersion,
        timeout_seconds: float = 5.0,
        local_clock: TimeSource | None = None,
    ) -> None:
        """
        Initializes the NtpTimeSource.

        Args:
            server: Host name or address of the NTP server.
            refresh_interval_seconds: Time between NTP queries.
            ntp_port: Port of the NTP server.
            ntp_version: NTP protocol version to request.
            timeout_seconds: Timeout for one NTP query.
            local_clock: Clock the offset is applied to. Defaults to the
                local system clock.
        """
        if not server:
            raise ValueError("server must not be empty.")
        if refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive.")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive.")

        self.__server = server
        self.__refresh_interval_seconds = refresh_interval_seconds
        self.__ntp_port = ntp_port
        self.__ntp_version = ntp_version
        self.__timeout_seconds = timeout_seconds
        self.__local_clock = (
            local_clock if local_clock is not None else LocalTimeSource()
        )

        self.__offset_seconds = Atomic[float](0.0)
        self.__ntp_client = ntplib.NTPClient()
        self.__io_thread = ThreadPoolExecutor(max_workers=1)
        self.__is_running = IsRunningTracker()
        self.__sync_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls, config: ServerConfig, local_clock: TimeSource | None = None
    ) -> "NtpTimeSource":
        """Creates an instance querying the NTP server named by |config|."""
        return cls(
            config.ntp_server,
            refresh_interval_seconds=config.ntp_refresh_interval_seconds,
            ntp_port=config.ntp_port,
            timeout_seconds=config.ntp_timeout_seconds,
            local_clock=local_clock,
        )

    @property
    def offset_seconds(self) -> float:
        """Most recent offset reported by the NTP server, in seconds."""
        return self.__offset_seconds.get()

    @property
    def is_running(self) -> bool:
        return self.__is_running.get()

    def get_current_time(self) -> datetime.datetime:
        offset = datetime.timedelta(seconds=self.__offset_seconds.get())
        return self.__local_clock.get_current_time() + offset

    def start_async(self) -> None:
        """
        Starts synchronizing in the background on the running event loop.
        Returns immediately. May only be called once.
        """
        assert not self.__is_running.get(), "NtpTimeSource already running."
        assert self.__sync_task is None, "NtpTimeSource cannot be restarted."

        self.__is_running.start()
        self.__sync_task = asyncio.create_task(self.__run_sync_loop())

    async def stop(self) -> None:
        """Stops synchronizing and waits for the loop to exit."""
        self.__is_running.stop()

        task = self.__sync_task
        if task is not None and not task.done():
            await task

        # An NTP query already handed to the worker thread is abandoned.
        self.__io_thread.shutdown(wait=False, cancel_futures=True)

    async def __run_sync_loop(self) -> None:
        while self.__is_running.get():
            try:
                await self.__is_running.task_or_stopped(self.__synchronize())
            # pylint: disable=broad-exception-caught # Ensures loop continues
            except Exception as e:
                logger.error(
                    "NTP synchronization with %s failed: %s", self.__server, e
                )

            await self.__is_running.task_or_stopped(
                asyncio.sleep(self.__refresh_interval_seconds)
            )

        logger.debug("Stopping NTP synchronization due to signal.")

    async def __synchronize(self) -> None:
        loop = asyncio.get_running_loop()

        addresses = await loop.getaddrinfo(
            self.__server, self.__ntp_port, type=socket.SOCK_DGRAM
        )
        if not addresses:
            raise TransportError(
                f"NTP server '{self.__server}' did not resolve to an address."
            )
        address = addresses[0][4][0]

        response = await loop.run_in_executor(
            self.__io_thread,
            partial(
                self.__ntp_client.request,
                address,
                version=self.__ntp_version,
                port=self.__ntp_port,
                timeout=self.__timeout_seconds,
            ),
        )

        self.__offset_seconds.set(response.offset)
        logger.info(
            "Time synchronized from NTP. New offset: %.3f seconds. "
            "True time: %s.",
            response.offset,
            self.get_current_time().isoformat(),
        )
