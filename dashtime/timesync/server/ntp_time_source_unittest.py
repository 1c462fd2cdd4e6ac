"""Tests for NtpTimeSource."""

import asyncio
import datetime
import logging
import time
from unittest.mock import MagicMock

import ntplib
import pytest

from dashtime.config import ServerConfig
from dashtime.timesync.common.constants import kNtpVersion
from dashtime.timesync.common.fake_time_source import FakeTimeSource
from dashtime.timesync.server.ntp_time_source import NtpTimeSource

UTC = datetime.timezone.utc
LOCAL_TIME = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def mock_ntp_client_fixture(mocker):
    """Fixture to mock ntplib.NTPClient."""
    mock_ntp_client = mocker.patch(
        "dashtime.timesync.server.ntp_time_source.ntplib.NTPClient"
    )
    return mock_ntp_client.return_value


@pytest.fixture
def local_clock() -> FakeTimeSource:
    return FakeTimeSource(LOCAL_TIME)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "Condition never became true."
        await asyncio.sleep(0.005)


def make_source(local_clock: FakeTimeSource, **kwargs) -> NtpTimeSource:
    kwargs.setdefault("refresh_interval_seconds", 0.01)
    return NtpTimeSource("127.0.0.1", local_clock=local_clock, **kwargs)


@pytest.mark.usefixtures("mock_ntp_client_fixture")
def test_serves_local_clock_before_first_sync(
    local_clock: FakeTimeSource,
) -> None:
    source = make_source(local_clock)

    assert source.offset_seconds == 0.0
    assert source.get_current_time() == LOCAL_TIME
    assert not source.is_running


@pytest.mark.parametrize(
    "kwargs",
    [
        {"refresh_interval_seconds": 0},
        {"timeout_seconds": -1},
    ],
)
def test_invalid_arguments_rejected(kwargs, mock_ntp_client_fixture) -> None:
    with pytest.raises(ValueError):
        NtpTimeSource("127.0.0.1", **kwargs)


def test_empty_server_rejected(mock_ntp_client_fixture) -> None:
    with pytest.raises(ValueError):
        NtpTimeSource("")


def test_from_config(mock_ntp_client_fixture) -> None:
    config = ServerConfig(
        ntp_server="ntp.example", ntp_port=1123, ntp_timeout_seconds=2.0
    )

    source = NtpTimeSource.from_config(config)

    assert source.offset_seconds == 0.0


@pytest.mark.asyncio
class TestSynchronization:
    async def test_applies_reported_offset(
        self, local_clock: FakeTimeSource, mock_ntp_client_fixture
    ) -> None:
        mock_ntp_client_fixture.request.return_value = MagicMock(offset=2.5)
        source = make_source(local_clock, ntp_port=1123, timeout_seconds=3.0)

        source.start_async()
        try:
            await wait_for(lambda: source.offset_seconds == 2.5)
        finally:
            await source.stop()

        assert source.get_current_time() == LOCAL_TIME + datetime.timedelta(
            seconds=2.5
        )
        mock_ntp_client_fixture.request.assert_called_with(
            "127.0.0.1", version=kNtpVersion, port=1123, timeout=3.0
        )

    async def test_start_does_not_wait_for_ntp(
        self, local_clock: FakeTimeSource, mock_ntp_client_fixture
    ) -> None:
        mock_ntp_client_fixture.request.side_effect = lambda *a, **k: (
            time.sleep(0.2)
        )
        source = make_source(local_clock)

        source.start_async()
        try:
            assert source.is_running
            assert source.get_current_time() == LOCAL_TIME
        finally:
            await source.stop()

    async def test_failure_keeps_previous_offset(
        self,
        local_clock: FakeTimeSource,
        mock_ntp_client_fixture,
        caplog,
    ) -> None:
        outcomes = [MagicMock(offset=-1.25)]

        def request(*args, **kwargs):
            if outcomes:
                return outcomes.pop(0)
            raise ntplib.NTPException("No response received.")

        mock_ntp_client_fixture.request.side_effect = request
        source = make_source(local_clock)

        with caplog.at_level(logging.ERROR):
            source.start_async()
            try:
                await wait_for(
                    lambda: mock_ntp_client_fixture.request.call_count >= 3
                )
                assert source.is_running
                assert source.offset_seconds == -1.25
            finally:
                await source.stop()

        assert "No response received." in caplog.text
        assert source.get_current_time() == LOCAL_TIME - datetime.timedelta(
            seconds=1.25
        )

    async def test_unresolvable_server_logged(
        self,
        local_clock: FakeTimeSource,
        mock_ntp_client_fixture,
        mocker,
        caplog,
    ) -> None:
        loop = asyncio.get_running_loop()
        getaddrinfo = mocker.patch.object(
            loop, "getaddrinfo", mocker.AsyncMock(return_value=[])
        )
        source = make_source(local_clock)

        with caplog.at_level(logging.ERROR):
            source.start_async()
            try:
                await wait_for(lambda: getaddrinfo.await_count >= 1)
                await wait_for(lambda: "did not resolve" in caplog.text)
            finally:
                await source.stop()

        mock_ntp_client_fixture.request.assert_not_called()
        assert source.offset_seconds == 0.0


@pytest.mark.asyncio
class TestStop:
    async def test_stop_interrupts_wait(
        self, local_clock: FakeTimeSource, mock_ntp_client_fixture
    ) -> None:
        mock_ntp_client_fixture.request.return_value = MagicMock(offset=0.0)
        source = make_source(local_clock, refresh_interval_seconds=3600)

        source.start_async()
        await wait_for(lambda: mock_ntp_client_fixture.request.called)
        await asyncio.wait_for(source.stop(), timeout=1)

        assert not source.is_running
        assert mock_ntp_client_fixture.request.call_count == 1

    async def test_stop_abandons_in_flight_query(
        self, local_clock: FakeTimeSource, mock_ntp_client_fixture
    ) -> None:
        mock_ntp_client_fixture.request.side_effect = lambda *a, **k: (
            time.sleep(0.5)
        )
        source = make_source(local_clock)

        source.start_async()
        await wait_for(lambda: mock_ntp_client_fixture.request.called)
        await asyncio.wait_for(source.stop(), timeout=0.25)

        assert not source.is_running
        assert source.offset_seconds == 0.0

    async def test_stop_without_start(
        self, local_clock: FakeTimeSource, mock_ntp_client_fixture
    ) -> None:
        source = make_source(local_clock)

        await source.stop()

        assert not source.is_running

    async def test_start_twice_asserts(
        self, local_clock: FakeTimeSource, mock_ntp_client_fixture
    ) -> None:
        mock_ntp_client_fixture.request.return_value = MagicMock(offset=0.0)
        source = make_source(local_clock)
        source.start_async()
        try:
            with pytest.raises(AssertionError):
                source.start_async()
        finally:
            await source.stop()
