"""Defines the TimeSource interface served by the HTTP endpoints."""

import datetime
from abc import ABC, abstractmethod


class TimeSource(ABC):
    """
    An abstract base class for anything that can report the current time.

    Server-side implementations correct the local wall clock against an
    upstream authority; client-side implementations follow a remote server's
    timeline. Either way `get_current_time` must be cheap, must never block on
    I/O and must never raise, since it is called on every request and from
    metrics scrapes.
    """

    @abstractmethod
    def get_current_time(self) -> datetime.datetime:
        """
        Returns the current time according to this source.

        Returns:
            A timezone-aware UTC datetime.
        """
