"""Shared fixtures for the vector store and citation tests."""

import logging
from typing import Callable

import pytest

from shared.clients.vectorstore.memory.ProcessingScheduler import ProcessingScheduler, ScheduledHandle
from shared.clients.vectorstore.memory.VectorStoreClientMemory import VectorStoreClientMemory
from shared.helper.HelperConfig import HelperConfig


class ManualHandle(ScheduledHandle):
    def __init__(self, delay_ms: float, callback: Callable[[], None]):
        self.delay_ms = delay_ms
        self.callback = callback
        self._cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(ProcessingScheduler):
    """Scheduler that only runs callbacks when the test says so."""

    def __init__(self) -> None:
        self.handles: list[ManualHandle] = []

    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledHandle:
        handle = ManualHandle(delay_ms, callback)
        self.handles.append(handle)
        return handle

    def cancel_all(self) -> int:
        pending = [h for h in self.handles if not h.cancelled() and not h.fired]
        for handle in pending:
            handle.cancel()
        return len(pending)

    def run_all(self) -> int:
        """Run every pending callback in delay order and return how many ran."""
        ran = 0
        for handle in sorted(self.handles, key=lambda h: h.delay_ms):
            if handle.cancelled() or handle.fired:
                continue
            handle.fired = True
            handle.callback()
            ran += 1
        return ran


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests")


@pytest.fixture
def make_config(logger) -> Callable[..., HelperConfig]:
    """Build a HelperConfig over an explicit environment, never os.environ."""

    def _make(**env: str) -> HelperConfig:
        return HelperConfig(logger=logger, environ={key.upper(): value for key, value in env.items()})

    return _make


@pytest.fixture
def memory_env() -> dict[str, str]:
    return {
        "VECTORSTORE_MEMORY_API_KEY": "test-key",
        "VECTORSTORE_MEMORY_PROCESSING_DELAY_MS": "20",
    }


@pytest.fixture
async def memory_client(make_config, memory_env):
    client = VectorStoreClientMemory(helper_config=make_config(**memory_env))
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
async def manual_client(make_config, memory_env, manual_scheduler):
    client = VectorStoreClientMemory(helper_config=make_config(**memory_env), scheduler=manual_scheduler)
    yield client
    await client.close()
