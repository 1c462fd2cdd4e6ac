"""The monotonic clock that time sync anchors are expressed against."""

import time
from typing import Callable, TypeAlias

# Returns a strictly non-decreasing reading in nanoseconds, unaffected by
# wall-clock adjustments. Injected so tests can script the passage of time.
MonotonicClock: TypeAlias = Callable[[], int]

default_monotonic_clock: MonotonicClock = time.monotonic_ns
