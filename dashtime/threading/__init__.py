"""Thread-safety helpers shared by the dashtime time sources."""

from dashtime.threading.atomic import Atomic

__all__ = ["Atomic"]
