"""Acquires bias-corrected ClockSamples from a dashtime HTTP time server."""

import asyncio
import datetime
import logging
import re
from enum import Enum

import httpx

from dashtime.timesync.common.clock_sample import ClockSample
from dashtime.timesync.common.constants import (
    kMaxResponseBytes,
    kSampleTimeoutSeconds,
)
from dashtime.timesync.common.errors import MalformedResponse, TransportError
from dashtime.timesync.common.monotonic_clock import (
    MonotonicClock,
    default_monotonic_clock,
)
from dashtime.timesync.common.time_formats import (
    from_utc_ticks,
    parse_xs_datetime,
)

logger = logging.getLogger(__name__)

_kTicksPattern = re.compile(r"^[0-9]+$")


class TimeEndpoint(Enum):
    """The time server endpoints a sample can be acquired from."""

    UTC_TICKS = "utcticks"
    XS_DATETIME = "xsdatetime"


def build_endpoint_url(
    base_url: str | httpx.URL, endpoint: TimeEndpoint
) -> httpx.URL:
    """
    Appends |endpoint| to the path of |base_url|.

    The query string of |base_url| is preserved, so debugging parameters such
    as `offsetSeconds` reach the server on every request.

    Examples:
        http://host:8080/?offsetSeconds=5
            -> http://host:8080/utcticks?offsetSeconds=5
        http://host/time -> http://host/time/utcticks
    """
    url = httpx.URL(base_url)
    path = url.path
    if not path.endswith("/"):
        path += "/"
    return url.copy_with(path=path + endpoint.value)


class ClockSampleAcquirer:
    """
    Performs single request/response exchanges against a time server and turns
    each into a ClockSample.

    The round trip is measured on the monotonic clock from just before the
    request is issued until the full body has been received. Assuming equal
    latency on both legs, the server stamped its response half a round trip
    after the request was sent; that tick becomes the sample's capture tick.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str | httpx.URL,
        *,
        endpoint: TimeEndpoint = TimeEndpoint.UTC_TICKS,
        timeout_seconds: float = kSampleTimeoutSeconds,
        monotonic_clock: MonotonicClock = default_monotonic_clock,
    ) -> None:
        """
        Initializes the acquirer.

        Args:
            http_client: Client used for all exchanges. Not owned.
            url: Full URL of the time endpoint, see `build_endpoint_url`.
            endpoint: Which payload format |url| responds with.
            timeout_seconds: Upper bound for one whole exchange.
            monotonic_clock: Clock the round trip and capture tick are
                measured on.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive.")

        self.__http_client = http_client
        self.__url = httpx.URL(url)
        self.__endpoint = endpoint
        self.__timeout_seconds = timeout_seconds
        self.__monotonic_clock = monotonic_clock

    @property
    def url(self) -> httpx.URL:
        """The URL samples are acquired from."""
        return self.__url

    async def acquire(self) -> ClockSample:
        """
        Performs one exchange with the time server.

        Returns:
            The bias-corrected sample.

        Raises:
            TransportError: On network failure, timeout or non-success status.
            MalformedResponse: If the body is missing a length, is larger than
                `kMaxResponseBytes`, or cannot be parsed.
        """
        send_tick = self.__monotonic_clock()
        try:
            body = await asyncio.wait_for(
                self.__exchange(), timeout=self.__timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Time request to {self.__url} timed out after "
                f"{self.__timeout_seconds} seconds."
            ) from e
        receive_tick = self.__monotonic_clock()

        remote_time = self.__parse(body)

        round_trip_ns = max(receive_tick - send_tick, 0)
        sample = ClockSample(
            remote_time=remote_time,
            round_trip_ns=round_trip_ns,
            local_capture_tick_ns=send_tick + round_trip_ns // 2,
        )
        logger.debug(
            "Sampled %s: remote time %s, RTT %.3f ms.",
            self.__url,
            sample.remote_time.isoformat(),
            round_trip_ns / 1_000_000,
        )
        return sample

    async def __exchange(self) -> bytes:
        """Issues the GET and returns the validated body."""
        try:
            async with self.__http_client.stream(
                "GET", self.__url, timeout=self.__timeout_seconds
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        f"Time server {self.__url} responded with HTTP "
                        f"{response.status_code}."
                    )

                # Checked before reading so oversized bodies are never parsed.
                self.__check_content_length(response)

                body = await response.aread()
        except httpx.HTTPError as e:
            raise TransportError(
                f"Time request to {self.__url} failed: {e!r}"
            ) from e

        if len(body) > kMaxResponseBytes:
            raise MalformedResponse(
                f"Received successful response that was suspiciously long "
                f"({len(body)} bytes)."
            )
        return body

    def __check_content_length(self, response: httpx.Response) -> None:
        header = response.headers.get("content-length")
        if header is None:
            raise MalformedResponse(
                "Received successful response that was suspiciously lacking "
                "a length."
            )

        try:
            length = int(header)
        except ValueError as e:
            raise MalformedResponse(
                f"Received invalid Content-Length '{header}'."
            ) from e

        if length > kMaxResponseBytes:
            raise MalformedResponse(
                f"Received successful response that was suspiciously long "
                f"({length} bytes)."
            )

    def __parse(self, body: bytes) -> datetime.datetime:
        try:
            text = body.decode("ascii").strip().strip('"')
        except UnicodeDecodeError as e:
            raise MalformedResponse(
                "Received successful response that was not ASCII text."
            ) from e

        try:
            if self.__endpoint is TimeEndpoint.UTC_TICKS:
                if _kTicksPattern.match(text) is None:
                    raise ValueError(f"'{text}' is not a tick count.")
                return from_utc_ticks(int(text))
            return parse_xs_datetime(text)
        except ValueError as e:
            raise MalformedResponse(
                f"Received successful response that did not contain a valid "
                f"{self.__endpoint.value} value: {e}"
            ) from e
