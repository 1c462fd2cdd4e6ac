"""
Provides generic `Atomic[AtomicTypeT]` for thread-safe reference swaps.

This module defines the `Atomic` class, which holds a reference to a value of
generic type `AtomicTypeT`. Loads (`get`), stores (`set`) and exchanges
(`exchange`) are serialized by a `threading.Lock` that is held only for the
duration of the reference operation itself. Combined with immutable values
(such as `TimelineAnchor`), this gives readers a consistent snapshot without
any locking at the call site.
"""

import threading
from typing import Generic, TypeVar

# Type variable for the generic type stored in Atomic.
AtomicTypeT = TypeVar("AtomicTypeT")


class Atomic(Generic[AtomicTypeT]):
    """
    Atomic access (via a lock) to a single reference.

    The lock is never held while calling out to other code, so it is safe to
    use from event loop callbacks and from arbitrary threads alike.
    """

    def __init__(self, value: AtomicTypeT) -> None:
        """
        Initializes the Atomic wrapper with an initial value.

        Args:
            value: The initial value to be stored.
        """
        self.__value: AtomicTypeT = value
        self.__lock = threading.Lock()

    def set(self, value: AtomicTypeT) -> None:
        """Atomically replaces the stored value."""
        with self.__lock:
            self.__value = value

    def get(self) -> AtomicTypeT:
        """Atomically loads the stored value."""
        with self.__lock:
            return self.__value

    def exchange(self, value: AtomicTypeT) -> AtomicTypeT:
        """
        Atomically replaces the stored value and returns the previous one.

        Args:
            value: The new value to store.

        Returns:
            The value that was stored before this call.
        """
        with self.__lock:
            previous = self.__value
            self.__value = value
            return previous
