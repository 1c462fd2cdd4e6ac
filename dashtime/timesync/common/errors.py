"""Exceptions raised by dashtime time synchronization."""

from typing import Sequence


class TimeSyncError(Exception):
    """Base class for all time synchronization failures."""


class TransportError(TimeSyncError):
    """A time exchange failed: network error, timeout or non-success status."""


class MalformedResponse(TransportError):
    """A time response body was implausibly sized or could not be parsed."""


class SynchronizationFailed(TimeSyncError):
    """Every sample in a synchronization round failed."""

    def __init__(self, message: str, errors: Sequence[TimeSyncError]) -> None:
        """
        Args:
            message: Human readable description of the failed round.
            errors: The individual failures, in issue order.
        """
        super().__init__(message)
        self.errors = tuple(errors)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        causes = "; ".join(str(e) for e in self.errors)
        return f"{base} ({causes})"
