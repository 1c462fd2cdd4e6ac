"""Publishes the synchronized time to Prometheus."""

from collections.abc import Iterator
from typing import Optional

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import REGISTRY, Collector, CollectorRegistry

from dashtime.timesync.common.time_formats import to_unix_seconds
from dashtime.timesync.common.time_source import TimeSource

kTrueTimeMetricName = "synchronized_unixtime_seconds"
kTrueTimeMetricDocumentation = "Synchronized time in Unix timestamp format."


class TrueTimeMetrics(Collector):
    """
    Reports the time of a TimeSource as a gauge, read at scrape time.

    The value is floating point seconds since the Unix epoch with sub
    millisecond precision. Works with both server and client time sources.
    """

    def __init__(self, time_source: TimeSource) -> None:
        self.__time_source = time_source
        self.__registry: Optional[CollectorRegistry] = None

    def register(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Publishes the gauge in |registry|, the default one if None."""
        assert self.__registry is None, "TrueTimeMetrics already registered."
        if registry is None:
            registry = REGISTRY

        registry.register(self)
        self.__registry = registry

    def close(self) -> None:
        """Unpublishes the gauge. Safe to call more than once."""
        registry = self.__registry
        self.__registry = None
        if registry is not None:
            registry.unregister(self)

    def describe(self) -> Iterator[GaugeMetricFamily]:
        yield GaugeMetricFamily(
            kTrueTimeMetricName, kTrueTimeMetricDocumentation
        )

    def collect(self) -> Iterator[GaugeMetricFamily]:
        now = self.__time_source.get_current_time()
        yield GaugeMetricFamily(
            kTrueTimeMetricName,
            kTrueTimeMetricDocumentation,
            value=to_unix_seconds(now),
        )
