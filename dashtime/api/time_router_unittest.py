"""Tests for the time endpoints."""

import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dashtime.api.time_router import create_time_router
from dashtime.timesync.common.fake_time_source import FakeTimeSource
from dashtime.timesync.common.time_formats import (
    parse_xs_datetime,
    to_utc_ticks,
)

UTC = datetime.timezone.utc

# The time source is frozen at a specific moment in time.
DEFAULT_TIME = datetime.datetime(1999, 6, 5, 4, 3, 2, tzinfo=UTC)
DEFAULT_TICKS = 630_641_521_820_000_000


@pytest.fixture
def time_source() -> FakeTimeSource:
    return FakeTimeSource(DEFAULT_TIME)


@pytest.fixture
def client(time_source: FakeTimeSource) -> TestClient:
    app = FastAPI()
    app.include_router(create_time_router(lambda: time_source))
    return TestClient(app)


class TestXsDateTime:
    def test_without_offset_returns_current_time(
        self, client: TestClient
    ) -> None:
        response = client.get("/xsdatetime")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "1999-06-05T04:03:02.000Z"

    @pytest.mark.parametrize(
        "offset, expected",
        [
            ("3.3", "1999-06-05T04:03:05.300Z"),
            ("-3.3", "1999-06-05T04:02:58.700Z"),
            ("0", "1999-06-05T04:03:02.000Z"),
        ],
    )
    def test_with_different_offsets_returns_offset_time(
        self, client: TestClient, offset: str, expected: str
    ) -> None:
        response = client.get("/xsdatetime", params={"offsetSeconds": offset})

        assert response.status_code == 200
        assert response.text == expected

    def test_milliseconds_truncated(
        self, client: TestClient, time_source: FakeTimeSource
    ) -> None:
        time_source.set_current_time(
            DEFAULT_TIME + datetime.timedelta(microseconds=123_999)
        )

        response = client.get("/xsdatetime")

        assert response.text == "1999-06-05T04:03:02.123Z"

    def test_output_parses_back(
        self, client: TestClient, time_source: FakeTimeSource
    ) -> None:
        time_source.set_current_time(
            datetime.datetime(2024, 12, 31, 23, 59, 59, 999_000, tzinfo=UTC)
        )

        response = client.get("/xsdatetime")

        assert parse_xs_datetime(response.text) == (
            time_source.get_current_time()
        )


class TestUtcTicks:
    def test_without_offset_returns_current_ticks(
        self, client: TestClient
    ) -> None:
        response = client.get("/utcticks")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == str(DEFAULT_TICKS)

    @pytest.mark.parametrize(
        "offset, expected",
        [
            ("3.3", DEFAULT_TICKS + 33_000_000),
            ("-3.3", DEFAULT_TICKS - 33_000_000),
            ("0", DEFAULT_TICKS),
        ],
    )
    def test_with_different_offsets_returns_offset_ticks(
        self, client: TestClient, offset: str, expected: int
    ) -> None:
        response = client.get("/utcticks", params={"offsetSeconds": offset})

        assert response.status_code == 200
        assert int(response.text) == expected

    def test_ticks_match_time_source(
        self, client: TestClient, time_source: FakeTimeSource
    ) -> None:
        time_source.advance(datetime.timedelta(days=9000, microseconds=7))

        response = client.get("/utcticks")

        assert int(response.text) == to_utc_ticks(
            time_source.get_current_time()
        )


class TestInvalidRequests:
    @pytest.mark.parametrize("path", ["/xsdatetime", "/utcticks"])
    @pytest.mark.parametrize("offset", ["1e300", "-1e12", "4e11"])
    def test_out_of_range_offset_rejected(
        self, client: TestClient, path: str, offset: str
    ) -> None:
        response = client.get(path, params={"offsetSeconds": offset})

        assert response.status_code == 400
        assert "out of range" in response.text

    @pytest.mark.parametrize("path", ["/xsdatetime", "/utcticks"])
    def test_non_numeric_offset_rejected(
        self, client: TestClient, path: str
    ) -> None:
        response = client.get(path, params={"offsetSeconds": "soon"})

        assert response.status_code == 422

    def test_root_explains_usage(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 400
        assert "/xsdatetime" in response.text
        assert "/utcticks" in response.text
