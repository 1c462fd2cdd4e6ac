"""Miscellaneous utilities for dashtime."""

from dashtime.util.is_running_tracker import IsRunningTracker

__all__ = ["IsRunningTracker"]
