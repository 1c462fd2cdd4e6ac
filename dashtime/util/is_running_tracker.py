"""Provides IsRunningTracker for managing running state of background loops."""

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

from dashtime.threading.atomic import Atomic

ReturnTypeT = TypeVar("ReturnTypeT")


class IsRunningTracker(Atomic[bool]):
    """
    Tracks whether the owning object is running or stopped (the initial
    state), and lets coroutines be raced against the transition to stopped.

    The tracker binds itself to the first event loop on which one of its
    async methods is called.

    NOTE: Only get(), set(), start() and stop() are thread-safe. The async
    methods must all be called from the same event loop.
    """

    def __init__(self) -> None:
        """Initializes the tracker in the stopped state."""
        super().__init__(False)

        self.__event_loop_lock = threading.Lock()
        self.__event_loop: asyncio.AbstractEventLoop | None = None
        self.__stopped_barrier: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        """Returns whether or not this instance is currently running."""
        return self.get()

    def start(self) -> None:
        """Sets this instance to running. May be called from any thread."""
        self.set(True)

    def stop(self) -> None:
        """Sets this instance to stopped. May be called from any thread."""
        self.set(False)

    def set(self, value: bool) -> None:
        """
        Sets the state of this instance to running when |value| is True and
        stopped when |value| is False. May be called from any thread; waiters
        on the associated event loop are woken up at its next iteration.
        """
        super().set(value)

        with self.__event_loop_lock:
            loop = self.__event_loop

        # Nothing is waiting yet. The barrier is initialized from the current
        # value when an async method first binds the loop.
        if loop is None or loop.is_closed():
            return

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is loop:
            self.__set_impl(value)
        else:
            loop.call_soon_threadsafe(self.__set_impl, value)

    async def wait_until_stopped(self) -> None:
        """Waits until this instance has been stopped."""
        if not self.get():
            return

        barrier = self.__ensure_event_loop_initialized()
        await barrier.wait()

    async def task_or_stopped(
        self, call: Coroutine[Any, Any, ReturnTypeT]
    ) -> ReturnTypeT | None:
        """
        Runs |call| until completion, or until this instance changes to
        stopped, in which case |call| is cancelled.

        Returns:
            The result of |call|, or None if this instance stopped first.

        Raises:
            Any exception raised by |call|.
        """
        if not self.get():
            call.close()
            return None

        barrier = self.__ensure_event_loop_initialized()

        call_task: asyncio.Task[ReturnTypeT] = asyncio.create_task(call)
        stop_check_task = asyncio.create_task(barrier.wait())

        try:
            done, _ = await asyncio.wait(
                [call_task, stop_check_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_check_task.cancel()
            if not call_task.done():
                call_task.cancel()

        if call_task in done:
            return call_task.result()

        # Let the cancelled call unwind before reporting the stop.
        await asyncio.gather(call_task, return_exceptions=True)
        return None

    def __set_impl(self, value: bool) -> None:
        """Updates the stop barrier. Must run on the associated loop."""
        barrier = self.__stopped_barrier
        if barrier is None:
            return

        if value:
            barrier.clear()
        else:
            barrier.set()

    def __ensure_event_loop_initialized(self) -> asyncio.Event:
        """
        Binds this tracker to the running event loop on first use and returns
        the stop barrier, initialized from the current state.
        """
        loop = asyncio.get_running_loop()
        with self.__event_loop_lock:
            if self.__event_loop is None:
                self.__event_loop = loop
                self.__stopped_barrier = asyncio.Event()
            elif self.__event_loop is not loop:
                raise RuntimeError(
                    "IsRunningTracker used from more than one event loop."
                )

            barrier = self.__stopped_barrier

        assert barrier is not None
        self.__set_impl(self.get())
        return barrier
