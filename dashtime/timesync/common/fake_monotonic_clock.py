"""A manually advanced monotonic clock for tests."""

import threading


class FakeMonotonicClock:
    """
    Callable stand-in for `time.monotonic_ns` that only moves when told to.

    Usable anywhere a `MonotonicClock` is accepted.
    """

    def __init__(self, start_ns: int = 1_000_000_000) -> None:
        self.__lock = threading.Lock()
        self.__now_ns = start_ns

    def __call__(self) -> int:
        with self.__lock:
            return self.__now_ns

    def advance(self, delta_ns: int) -> None:
        """Moves the clock forward by |delta_ns|."""
        if delta_ns < 0:
            raise ValueError("A monotonic clock cannot go backwards.")
        with self.__lock:
            self.__now_ns += delta_ns

    def advance_ms(self, delta_ms: float) -> None:
        """Moves the clock forward by |delta_ms| milliseconds."""
        self.advance(int(delta_ms * 1_000_000))
