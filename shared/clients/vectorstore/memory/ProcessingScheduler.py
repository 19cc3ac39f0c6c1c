"""Schedulers that drive delayed file state transitions.

The in-memory vector store never flips state from ad hoc timers. It asks a
scheduler to run a transition later, which lets a deployment swap the delay
model (fixed latency, real embedding work, manual stepping in tests) without
touching the store.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable


class ScheduledHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Cancel the scheduled callback. Cancelling twice is a no-op."""
        pass

    @abstractmethod
    def cancelled(self) -> bool:
        pass


class ProcessingScheduler(ABC):
    @abstractmethod
    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledHandle:
        """Run ``callback`` once after ``delay_ms`` milliseconds.

        Args:
            delay_ms (float): Delay before the callback runs.
            callback (Callable[[], None]): The transition to run.

        Returns:
            ScheduledHandle: Handle that can cancel the pending callback.
        """
        pass

    @abstractmethod
    def cancel_all(self) -> int:
        """Cancel all pending callbacks and return how many were cancelled."""
        pass


class _TimerHandle(ScheduledHandle):
    def __init__(self, handle: asyncio.TimerHandle, on_done: Callable[["_TimerHandle"], None]):
        self._handle = handle
        self._on_done = on_done

    def cancel(self) -> None:
        if not self._handle.cancelled():
            self._handle.cancel()
        self._on_done(self)

    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioProcessingScheduler(ProcessingScheduler):
    """Scheduler backed by the running event loop (``loop.call_later``)."""

    def __init__(self) -> None:
        self._pending: set[_TimerHandle] = set()

    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledHandle:
        loop = asyncio.get_running_loop()
        holder: list[_TimerHandle] = []

        def _run() -> None:
            self._pending.discard(holder[0])
            callback()

        handle = _TimerHandle(loop.call_later(max(0.0, delay_ms) / 1000, _run), self._pending.discard)
        holder.append(handle)
        self._pending.add(handle)
        return handle

    def cancel_all(self) -> int:
        pending = list(self._pending)
        for handle in pending:
            handle.cancel()
        return len(pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)
