"""Uncorrected local-clock TimeSource."""

import datetime

from dashtime.timesync.common.time_source import TimeSource


class LocalTimeSource(TimeSource):
    """
    Reports the local system clock without any correction.

    Used by the server when upstream NTP synchronization is disabled, in which
    case the server's own wall clock is the authority its clients follow.
    """

    def get_current_time(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)
