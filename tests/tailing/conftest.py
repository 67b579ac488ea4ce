"""Fixtures for the tailing engine tests."""

import asyncio
from pathlib import Path

import pytest

from apthistory.tailing.position_store import PositionStore


@pytest.fixture
def position_store(temp_state_dir: Path) -> PositionStore:
    """Create PositionStore with temporary directory."""
    return PositionStore(state_dir=temp_state_dir)


class StubWatcher:
    """Watcher stand-in whose signals are sent by the test."""

    def __init__(self) -> None:
        self.changed: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self.rotated: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self.started = False
        self.closed = False
        self.error: Exception | None = None
        self._fail = asyncio.Event()

    def start(self) -> None:
        self.started = True

    async def run(self) -> None:
        await self._fail.wait()
        assert self.error is not None
        raise self.error

    def fail(self, error: Exception) -> None:
        self.error = error
        self._fail.set()

    def notify_changed(self) -> None:
        if not self.changed.full():
            self.changed.put_nowait(None)

    def notify_rotated(self) -> None:
        if not self.rotated.full():
            self.rotated.put_nowait(None)
        self.notify_changed()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def stub_watcher() -> StubWatcher:
    return StubWatcher()


async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    """Poll predicate until it is true or fail after timeout."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(interval)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def wait_until():
    return _wait_until
