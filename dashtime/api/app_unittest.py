"""Tests for the assembled time server application."""

import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from dashtime.api.app import create_app
from dashtime.config import ServerConfig
from dashtime.timesync.common.fake_time_source import FakeTimeSource
from dashtime.timesync.common.local_time_source import LocalTimeSource
from dashtime.timesync.common.time_formats import from_utc_ticks
from dashtime.timesync.server.ntp_time_source import NtpTimeSource

UTC = datetime.timezone.utc
NOW = datetime.datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def time_source() -> FakeTimeSource:
    return FakeTimeSource(NOW)


@pytest.fixture
def client(time_source: FakeTimeSource):
    app = create_app(ServerConfig(use_ntp=False), time_source=time_source)
    with TestClient(app) as test_client:
        yield test_client


def test_serves_time_source(client: TestClient) -> None:
    assert client.get("/xsdatetime").text == "2024-03-01T12:00:00.000Z"
    assert from_utc_ticks(int(client.get("/utcticks").text)) == NOW


def test_metrics_exposed(client: TestClient) -> None:
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "# TYPE synchronized_unixtime_seconds gauge" in response.text
    assert "synchronized_unixtime_seconds 1.7092944e+09" in response.text


def test_cors_allows_any_origin(client: TestClient) -> None:
    response = client.get(
        "/utcticks", headers={"Origin": "https://player.example"}
    )

    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_preflight(client: TestClient) -> None:
    response = client.options(
        "/xsdatetime",
        headers={
            "Origin": "https://player.example",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "x-anything",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_apps_have_independent_registries(
    time_source: FakeTimeSource,
) -> None:
    config = ServerConfig(use_ntp=False)
    first = create_app(config, time_source=time_source)
    second = create_app(config, time_source=time_source)

    with TestClient(first) as first_client:
        with TestClient(second) as second_client:
            assert first_client.get("/metrics").status_code == 200
            assert second_client.get("/metrics").status_code == 200


def test_local_clock_served_when_ntp_disabled() -> None:
    app = create_app(ServerConfig(use_ntp=False))

    with TestClient(app) as client:
        before = datetime.datetime.now(UTC)
        served = from_utc_ticks(int(client.get("/utcticks").text))
        after = datetime.datetime.now(UTC)

    assert isinstance(app.state.time_source, LocalTimeSource)
    assert before - datetime.timedelta(milliseconds=1) <= served <= after


def test_ntp_source_follows_app_lifespan(mocker) -> None:
    mock_ntp_client = mocker.patch(
        "dashtime.timesync.server.ntp_time_source.ntplib.NTPClient"
    )
    mock_ntp_client.return_value.request.return_value = MagicMock(offset=0.0)
    config = ServerConfig(
        ntp_server="127.0.0.1", ntp_refresh_interval_seconds=3600
    )
    app = create_app(config)
    time_source = app.state.time_source
    assert isinstance(time_source, NtpTimeSource)
    assert not time_source.is_running

    with TestClient(app) as client:
        assert time_source.is_running
        assert client.get("/utcticks").status_code == 200

    assert not time_source.is_running
