"""Server-side time sources."""

from dashtime.timesync.server.ntp_time_source import NtpTimeSource

__all__ = ["NtpTimeSource"]
