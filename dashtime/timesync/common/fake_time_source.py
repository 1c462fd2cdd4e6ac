import datetime

from dashtime.timesync.common.time_source import TimeSource


class FakeTimeSource(TimeSource):
    """
    A TimeSource frozen at a fixed instant, which tests may move explicitly.
    """

    def __init__(self, current_time: datetime.datetime) -> None:
        if current_time.tzinfo is None:
            raise ValueError("current_time must be timezone-aware.")
        self.__current_time = current_time

    def get_current_time(self) -> datetime.datetime:
        return self.__current_time

    def set_current_time(self, current_time: datetime.datetime) -> None:
        """Moves the frozen time to |current_time|."""
        self.__current_time = current_time

    def advance(self, delta: datetime.timedelta) -> None:
        """Moves the frozen time forward by |delta|."""
        self.__current_time += delta
