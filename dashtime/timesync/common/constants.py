"""Defines common constants for the dashtime wire formats and sync loops."""

# Nanoseconds per /utcticks tick.
kNanosecondsPerTick = 100

# Any time response larger than this is assumed to come from a misconfigured
# endpoint. The payload is a single timestamp.
kMaxResponseBytes = 100

# Interval between background refreshes, on both client and server.
kRefreshIntervalSeconds = 60.0

# Upper bound for one sample acquisition. Shorter than the refresh interval.
kSampleTimeoutSeconds = 10.0

# Public NTP authority the server corrects its local clock against.
kDefaultNtpServer = "time.windows.com"

# NTP protocol version used by the server-side upstream synchronizer.
kNtpVersion = 4

# Default NTP port number.
kNtpPort = 123
