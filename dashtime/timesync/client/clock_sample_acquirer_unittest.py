"""Tests for ClockSampleAcquirer."""

import asyncio
import datetime
from typing import AsyncIterator

import httpx
import pytest
import pytest_asyncio

from dashtime.timesync.client.clock_sample_acquirer import (
    ClockSampleAcquirer,
    TimeEndpoint,
    build_endpoint_url,
)
from dashtime.timesync.common.errors import MalformedResponse, TransportError
from dashtime.timesync.common.fake_monotonic_clock import FakeMonotonicClock
from dashtime.timesync.common.time_formats import to_utc_ticks

UTC = datetime.timezone.utc
SERVER_TIME = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)
URL = "http://timeserver.test/utcticks"


@pytest.fixture
def clock() -> FakeMonotonicClock:
    return FakeMonotonicClock(start_ns=1_000_000_000)


@pytest.fixture
def responses() -> list[httpx.Response]:
    """Responses the mock server hands out, in order."""
    return []


@pytest.fixture
def requests_seen() -> list[httpx.Request]:
    return []


@pytest_asyncio.fixture
async def http_client(
    clock: FakeMonotonicClock,
    responses: list[httpx.Response],
    requests_seen: list[httpx.Request],
) -> AsyncIterator[httpx.AsyncClient]:
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        clock.advance_ms(20)
        return responses.pop(0)

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler)
    ) as client:
        yield client


def make_acquirer(
    http_client: httpx.AsyncClient,
    clock: FakeMonotonicClock,
    endpoint: TimeEndpoint = TimeEndpoint.UTC_TICKS,
    url: str = URL,
) -> ClockSampleAcquirer:
    return ClockSampleAcquirer(
        http_client, url, endpoint=endpoint, monotonic_clock=clock
    )


class TestBuildEndpointUrl:
    def test_appends_endpoint_to_root(self) -> None:
        url = build_endpoint_url("http://host:8080/", TimeEndpoint.UTC_TICKS)
        assert str(url) == "http://host:8080/utcticks"

    def test_appends_endpoint_without_trailing_slash(self) -> None:
        url = build_endpoint_url("http://host/time", TimeEndpoint.XS_DATETIME)
        assert str(url) == "http://host/time/xsdatetime"

    def test_preserves_query_string(self) -> None:
        url = build_endpoint_url(
            "http://host:8080/?offsetSeconds=5", TimeEndpoint.UTC_TICKS
        )
        assert url.path == "/utcticks"
        assert url.params["offsetSeconds"] == "5"


@pytest.mark.asyncio
class TestAcquireSuccess:
    async def test_parses_ticks_and_measures_round_trip(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(
            httpx.Response(200, text=str(to_utc_ticks(SERVER_TIME)))
        )

        sample = await make_acquirer(http_client, clock).acquire()

        assert sample.remote_time == SERVER_TIME
        assert sample.round_trip_ns == 20_000_000

    async def test_capture_tick_is_half_round_trip_after_send(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(
            httpx.Response(200, text=str(to_utc_ticks(SERVER_TIME)))
        )

        sample = await make_acquirer(http_client, clock).acquire()

        assert sample.local_capture_tick_ns == 1_010_000_000
        # At receipt the estimate is the remote time plus half the RTT.
        assert sample.to_anchor().time_at(clock()) == (
            SERVER_TIME + datetime.timedelta(milliseconds=10)
        )

    async def test_parses_xs_datetime(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(httpx.Response(200, text="2024-03-01T12:00:00.250Z"))

        sample = await make_acquirer(
            http_client, clock, endpoint=TimeEndpoint.XS_DATETIME
        ).acquire()

        assert sample.remote_time == SERVER_TIME + datetime.timedelta(
            milliseconds=250
        )

    async def test_accepts_json_quoted_value(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(
            httpx.Response(200, text='"2024-03-01T12:00:00.000Z"')
        )

        sample = await make_acquirer(
            http_client, clock, endpoint=TimeEndpoint.XS_DATETIME
        ).acquire()

        assert sample.remote_time == SERVER_TIME

    async def test_requests_configured_url(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
        requests_seen: list[httpx.Request],
    ) -> None:
        responses.append(
            httpx.Response(200, text=str(to_utc_ticks(SERVER_TIME)))
        )
        url = build_endpoint_url(
            "http://timeserver.test/?offsetSeconds=-2.5",
            TimeEndpoint.UTC_TICKS,
        )

        await make_acquirer(http_client, clock, url=str(url)).acquire()

        assert requests_seen[0].method == "GET"
        assert requests_seen[0].url.path == "/utcticks"
        assert requests_seen[0].url.params["offsetSeconds"] == "-2.5"


@pytest.mark.asyncio
class TestAcquireFailures:
    async def test_oversized_body_rejected_without_parsing(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
        mocker,
    ) -> None:
        parse_ticks = mocker.patch(
            "dashtime.timesync.client.clock_sample_acquirer.from_utc_ticks"
        )
        responses.append(httpx.Response(200, content=b"1" * 200))

        with pytest.raises(MalformedResponse):
            await make_acquirer(http_client, clock).acquire()

        parse_ticks.assert_not_called()

    async def test_missing_content_length_rejected(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(
            httpx.Response(200, stream=httpx.ByteStream(b"12345"))
        )

        with pytest.raises(MalformedResponse, match="lacking a length"):
            await make_acquirer(http_client, clock).acquire()

    async def test_unparsable_body_rejected(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(httpx.Response(200, text="twelve o'clock"))

        with pytest.raises(MalformedResponse):
            await make_acquirer(http_client, clock).acquire()

    @pytest.mark.parametrize("body", ["-5", "1_000", "+12", "12.5"])
    async def test_non_digit_ticks_rejected(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
        body: str,
    ) -> None:
        responses.append(httpx.Response(200, text=body))

        with pytest.raises(MalformedResponse):
            await make_acquirer(http_client, clock).acquire()

    async def test_malformed_response_is_a_transport_error(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
    ) -> None:
        responses.append(httpx.Response(200, content=b"\xff\xfe"))

        with pytest.raises(TransportError):
            await make_acquirer(http_client, clock).acquire()

    @pytest.mark.parametrize("status_code", [400, 404, 500, 503])
    async def test_non_success_status_rejected(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        responses: list[httpx.Response],
        status_code: int,
    ) -> None:
        responses.append(httpx.Response(status_code, text="nope"))

        with pytest.raises(TransportError, match=str(status_code)) as info:
            await make_acquirer(http_client, clock).acquire()
        assert not isinstance(info.value, MalformedResponse)

    async def test_connection_error_becomes_transport_error(
        self, clock: FakeMonotonicClock
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(TransportError) as info:
                await make_acquirer(client, clock).acquire()

        assert isinstance(info.value.__cause__, httpx.ConnectError)

    async def test_slow_server_times_out(
        self, clock: FakeMonotonicClock
    ) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, text="1")

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler)
        ) as client:
            acquirer = ClockSampleAcquirer(
                client, URL, timeout_seconds=0.05, monotonic_clock=clock
            )
            with pytest.raises(TransportError, match="timed out"):
                await acquirer.acquire()


def test_non_positive_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        ClockSampleAcquirer(
            httpx.AsyncClient(), URL, timeout_seconds=0
        )
