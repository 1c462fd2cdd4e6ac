"""dashtime: synchronized wall-clock time for DASH players and origins.

This package provides an HTTP time server whose clock is corrected against an
NTP authority, and a client-side time source that keeps a monotonic-clock
anchored estimate of the server's time fresh over the lifetime of a process.
"""
