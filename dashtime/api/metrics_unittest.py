"""Tests for TrueTimeMetrics."""

import datetime

import pytest
from prometheus_client.registry import CollectorRegistry

from dashtime.api.metrics import TrueTimeMetrics, kTrueTimeMetricName
from dashtime.timesync.common.fake_time_source import FakeTimeSource

UTC = datetime.timezone.utc
NOW = datetime.datetime(2024, 3, 1, 12, 0, 0, 250_500, tzinfo=UTC)
NOW_UNIX_SECONDS = 1_709_294_400.2505


@pytest.fixture
def time_source() -> FakeTimeSource:
    return FakeTimeSource(NOW)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


def test_reports_time_in_unix_seconds(
    time_source: FakeTimeSource, registry: CollectorRegistry
) -> None:
    TrueTimeMetrics(time_source).register(registry)

    value = registry.get_sample_value(kTrueTimeMetricName)

    assert value == pytest.approx(NOW_UNIX_SECONDS, abs=1e-6)


def test_value_read_at_scrape_time(
    time_source: FakeTimeSource, registry: CollectorRegistry
) -> None:
    TrueTimeMetrics(time_source).register(registry)
    first = registry.get_sample_value(kTrueTimeMetricName)

    time_source.advance(datetime.timedelta(milliseconds=1500))
    second = registry.get_sample_value(kTrueTimeMetricName)

    assert second - first == pytest.approx(1.5, abs=1e-6)


def test_close_unpublishes(
    time_source: FakeTimeSource, registry: CollectorRegistry
) -> None:
    metrics = TrueTimeMetrics(time_source)
    metrics.register(registry)

    metrics.close()
    metrics.close()

    assert registry.get_sample_value(kTrueTimeMetricName) is None


def test_duplicate_registration_rejected(
    time_source: FakeTimeSource, registry: CollectorRegistry
) -> None:
    TrueTimeMetrics(time_source).register(registry)

    with pytest.raises(ValueError):
        TrueTimeMetrics(time_source).register(registry)


def test_register_twice_asserts(
    time_source: FakeTimeSource, registry: CollectorRegistry
) -> None:
    metrics = TrueTimeMetrics(time_source)
    metrics.register(registry)

    with pytest.raises(AssertionError):
        metrics.register(CollectorRegistry())


def test_registers_with_default_registry(
    time_source: FakeTimeSource,
) -> None:
    from prometheus_client import REGISTRY

    metrics = TrueTimeMetrics(time_source)
    metrics.register()
    try:
        assert REGISTRY.get_sample_value(kTrueTimeMetricName) is not None
    finally:
        metrics.close()

    assert REGISTRY.get_sample_value(kTrueTimeMetricName) is None
