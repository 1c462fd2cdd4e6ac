"""Tests for SynchronizedTimeSource."""

import asyncio
import datetime
import threading
import time
from collections.abc import Sequence
from typing import AsyncIterator

import httpx
import pytest
import pytest_asyncio

from dashtime.config import ClientConfig
from dashtime.timesync.client.sample_selector import (
    AcquireFn,
    SampleSelector,
)
from dashtime.timesync.client.synchronized_time_source import (
    SynchronizedTimeSource,
)
from dashtime.timesync.common.clock_sample import ClockSample
from dashtime.timesync.common.errors import (
    SynchronizationFailed,
    TransportError,
)
from dashtime.timesync.common.fake_monotonic_clock import FakeMonotonicClock
from dashtime.timesync.common.time_formats import to_utc_ticks
from dashtime.timesync.common.timeline_anchor import TimelineAnchor

UTC = datetime.timezone.utc
SERVER_EPOCH = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)
HTTP_CLIENT_CLASS = (
    "dashtime.timesync.client.synchronized_time_source.httpx.AsyncClient"
)


class FakeTimeServer:
    """
    Serves /utcticks from a timeline driven by the fake monotonic clock, with
    symmetric network latency on both legs.
    """

    def __init__(self, clock: FakeMonotonicClock) -> None:
        self.clock = clock
        self.start_tick = clock()
        self.skew = datetime.timedelta()
        self.one_way_latency_ms = 5.0
        self.failing = False
        self.request_count = 0

    def true_time(self, tick_ns: int) -> datetime.datetime:
        elapsed = datetime.timedelta(
            microseconds=(tick_ns - self.start_tick) / 1_000
        )
        return SERVER_EPOCH + self.skew + elapsed

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.request_count += 1
        self.clock.advance_ms(self.one_way_latency_ms)
        if self.failing:
            response = httpx.Response(503, text="unavailable")
        else:
            ticks = to_utc_ticks(self.true_time(self.clock()))
            response = httpx.Response(200, text=str(ticks))
        self.clock.advance_ms(self.one_way_latency_ms)
        return response


@pytest.fixture
def clock() -> FakeMonotonicClock:
    return FakeMonotonicClock()


@pytest.fixture
def server(clock: FakeMonotonicClock) -> FakeTimeServer:
    return FakeTimeServer(clock)


@pytest_asyncio.fixture
async def http_client(
    server: FakeTimeServer,
) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(server.handle)
    ) as client:
        yield client


def make_config(**kwargs) -> ClientConfig:
    values = {
        "base_url": "http://timeserver.test/",
        "refresh_interval_seconds": 60.0,
        "sample_timeout_seconds": 5.0,
        # One sample per batch keeps the fake server's clock advances
        # strictly sequential.
        "sample_count": 1,
    }
    values.update(kwargs)
    return ClientConfig(**values)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "Condition never became true."
        await asyncio.sleep(0.005)


class ScriptedSelector(SampleSelector):
    """Returns a fixed anchor first, then hangs until cancelled."""

    def __init__(self, anchor: TimelineAnchor) -> None:
        self.anchor = anchor
        self.rounds = 0
        self.round_started = asyncio.Event()
        self.cancelled = asyncio.Event()

    async def _acquire_round(self, acquire: AcquireFn) -> list[ClockSample]:
        raise NotImplementedError()

    async def select(self, acquire: AcquireFn) -> TimelineAnchor:
        self.rounds += 1
        if self.rounds == 1:
            return self.anchor
        self.round_started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled.set()
            raise
        return self.anchor

    def reduce(self, samples: Sequence[ClockSample]) -> TimelineAnchor:
        raise NotImplementedError()


class UnexpectedErrorSelector(SampleSelector):
    """Returns a fixed anchor, except on round 2 which raises StreamClosed."""

    def __init__(self, anchor: TimelineAnchor) -> None:
        self.anchor = anchor
        self.rounds = 0

    async def _acquire_round(self, acquire: AcquireFn) -> list[ClockSample]:
        raise NotImplementedError()

    async def select(self, acquire: AcquireFn) -> TimelineAnchor:
        self.rounds += 1
        if self.rounds == 2:
            raise httpx.StreamClosed()
        return self.anchor

    def reduce(self, samples: Sequence[ClockSample]) -> TimelineAnchor:
        raise NotImplementedError()


@pytest.mark.asyncio
class TestCreate:
    async def test_now_matches_server_timeline_after_sync(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        server.skew = datetime.timedelta(hours=-3, milliseconds=17)

        source = await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        )
        try:
            assert source.now() == server.true_time(clock())
            assert source.get_current_time() == source.now()
        finally:
            await source.stop()

    async def test_warm_up_then_concurrent_samples(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        source = await SynchronizedTimeSource.create(
            make_config(sample_count=3),
            http_client=http_client,
            monotonic_clock=clock,
        )
        await source.stop()

        assert server.request_count == 4

    async def test_without_warm_up(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        source = await SynchronizedTimeSource.create(
            make_config(warm_up=False, sample_count=3),
            http_client=http_client,
            monotonic_clock=clock,
        )
        await source.stop()

        assert server.request_count == 3

    async def test_averaging_policy_tracks_server(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        server.skew = datetime.timedelta(seconds=42)

        source = await SynchronizedTimeSource.create(
            make_config(selection_policy="averaging"),
            http_client=http_client,
            monotonic_clock=clock,
        )
        try:
            assert server.request_count == 4
            assert source.now() == server.true_time(clock())
        finally:
            await source.stop()

    async def test_initial_failure_propagates(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        server.failing = True

        with pytest.raises(TransportError):
            await SynchronizedTimeSource.create(
                make_config(), http_client=http_client, monotonic_clock=clock
            )

    async def test_initial_round_failure_propagates(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        server.failing = True

        with pytest.raises(SynchronizationFailed):
            await SynchronizedTimeSource.create(
                make_config(warm_up=False),
                http_client=http_client,
                monotonic_clock=clock,
            )

    async def test_owned_client_closed_on_failure(
        self, server: FakeTimeServer, clock: FakeMonotonicClock, mocker
    ) -> None:
        server.failing = True
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(server.handle)
        )
        mocker.patch(HTTP_CLIENT_CLASS, return_value=client)

        with pytest.raises(TransportError):
            await SynchronizedTimeSource.create(
                make_config(), monotonic_clock=clock
            )

        assert client.is_closed

    async def test_owned_client_closed_on_stop(
        self, server: FakeTimeServer, clock: FakeMonotonicClock, mocker
    ) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(server.handle)
        )
        mocker.patch(HTTP_CLIENT_CLASS, return_value=client)

        source = await SynchronizedTimeSource.create(
            make_config(), monotonic_clock=clock
        )
        assert not client.is_closed
        await source.stop()

        assert client.is_closed


@pytest.mark.asyncio
class TestNow:
    async def test_advances_with_monotonic_clock_only(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
    ) -> None:
        async with await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        ) as source:
            first = source.now()
            assert source.now() == first

            clock.advance_ms(5)
            assert source.now() - first == datetime.timedelta(milliseconds=5)

    async def test_unaffected_by_wall_clock_jump(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
        mocker,
    ) -> None:
        async with await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        ) as source:
            before = source.now()

            real_time = time.time()
            mocker.patch("time.time", return_value=real_time + 3600)
            mocker.patch(
                "time.time_ns",
                return_value=int((real_time + 3600) * 1_000_000_000),
            )

            assert source.now() == before

    async def test_callable_from_other_threads(
        self,
        http_client: httpx.AsyncClient,
        clock: FakeMonotonicClock,
    ) -> None:
        async with await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        ) as source:
            results: list[datetime.datetime] = []
            threads = [
                threading.Thread(target=lambda: results.append(source.now()))
                for _ in range(4)
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            assert results == [source.now()] * 4


@pytest.mark.asyncio
class TestRefresh:
    async def test_manual_refresh_swaps_anchor(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        async with await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        ) as source:
            server.skew = datetime.timedelta(milliseconds=250)

            anchor = await source.refresh()

            assert source.anchor is anchor
            assert source.now() == server.true_time(clock())

    async def test_manual_refresh_failure_keeps_anchor(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        async with await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        ) as source:
            anchor = source.anchor
            server.failing = True

            with pytest.raises(SynchronizationFailed):
                await source.refresh()

            assert source.anchor is anchor

    async def test_background_refresh_applies_new_anchor(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        config = make_config(
            refresh_interval_seconds=0.02, sample_timeout_seconds=0.01
        )
        async with await SynchronizedTimeSource.create(
            config, http_client=http_client, monotonic_clock=clock
        ) as source:
            initial = source.anchor
            server.skew = datetime.timedelta(seconds=2)

            await wait_for(lambda: source.anchor is not initial)

            assert source.now() == server.true_time(clock())

    async def test_background_failure_keeps_serving_prior_anchor(
        self,
        http_client: httpx.AsyncClient,
        server: FakeTimeServer,
        clock: FakeMonotonicClock,
    ) -> None:
        config = make_config(
            refresh_interval_seconds=0.02, sample_timeout_seconds=0.01
        )
        async with await SynchronizedTimeSource.create(
            config, http_client=http_client, monotonic_clock=clock
        ) as source:
            initial = source.anchor
            requests_before = server.request_count
            server.failing = True

            # Several refresh rounds fail in the background.
            await wait_for(
                lambda: server.request_count >= requests_before + 6
            )

            assert source.anchor is initial
            assert source.is_running
            previous = source.now()
            clock.advance_ms(1)
            assert source.now() == previous + datetime.timedelta(
                milliseconds=1
            )
            assert source.now() == initial.time_at(clock())

    async def test_background_refresh_survives_unexpected_error(
        self, clock: FakeMonotonicClock, caplog
    ) -> None:
        anchor = TimelineAnchor(SERVER_EPOCH, capture_tick_ns=clock())
        selector = UnexpectedErrorSelector(anchor)
        config = make_config(
            warm_up=False,
            refresh_interval_seconds=0.01,
            sample_timeout_seconds=0.005,
        )
        async with httpx.AsyncClient() as client:
            source = await SynchronizedTimeSource.create(
                config,
                http_client=client,
                selector=selector,
                monotonic_clock=clock,
            )

            await wait_for(lambda: selector.rounds > 3)

            assert source.is_running
            await asyncio.wait_for(source.stop(), timeout=1)

        assert not source.is_running
        assert (
            "Unexpected error during background time synchronization."
            in caplog.text
        )


@pytest.mark.asyncio
class TestStop:
    async def test_stop_cancels_in_flight_refresh(self) -> None:
        clock = FakeMonotonicClock()
        anchor = TimelineAnchor(SERVER_EPOCH, capture_tick_ns=clock())
        selector = ScriptedSelector(anchor)
        config = make_config(
            warm_up=False,
            refresh_interval_seconds=0.01,
            sample_timeout_seconds=0.005,
        )
        async with httpx.AsyncClient() as client:
            source = await SynchronizedTimeSource.create(
                config,
                http_client=client,
                selector=selector,
                monotonic_clock=clock,
            )
            await asyncio.wait_for(selector.round_started.wait(), timeout=1)

            await asyncio.wait_for(source.stop(), timeout=1)

        assert selector.cancelled.is_set()
        assert not source.is_running
        assert source.anchor is anchor

    async def test_stop_interrupts_refresh_wait(
        self, http_client: httpx.AsyncClient, clock: FakeMonotonicClock
    ) -> None:
        source = await SynchronizedTimeSource.create(
            make_config(refresh_interval_seconds=3600),
            http_client=http_client,
            monotonic_clock=clock,
        )

        await asyncio.wait_for(source.stop(), timeout=1)

        assert not source.is_running

    async def test_stop_is_idempotent_and_now_keeps_working(
        self, http_client: httpx.AsyncClient, clock: FakeMonotonicClock
    ) -> None:
        source = await SynchronizedTimeSource.create(
            make_config(), http_client=http_client, monotonic_clock=clock
        )
        await source.stop()
        await source.stop()

        before = source.now()
        clock.advance_ms(3)
        assert source.now() - before == datetime.timedelta(milliseconds=3)
