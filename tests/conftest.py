#!/usr/bin/env python3
"""Pytest fixtures for klipsync tests.

Provides a fake clipboard backend, a manual clock, an in-process hub
and temporary storage, so no test needs a display, a network or real
waiting.
"""

import asyncio
from collections.abc import Generator
from pathlib import Path

import pytest

from klipsync.clip import Clip
from klipsync.clipboard_backend import Capabilities
from klipsync.events import EventBus, EventName, Scope
from klipsync.local_store import LocalStore
from klipsync.model import ReplicationModel
from klipsync.session_params import UserInfo
from klipsync.transport import LocalHub


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClipboard:
    """Clipboard backend holding text in memory.

    Exceptions queued in read_errors are raised by the next reads, one
    per read, before text is returned again.
    """

    def __init__(
        self,
        text: str | None = None,
        capabilities: Capabilities = Capabilities(can_read=True, can_write=True),
    ) -> None:
        self.text = text
        self.capabilities = capabilities
        self.reads = 0
        self.writes: list[str] = []
        self.read_errors: list[Exception] = []
        self.write_error: Exception | None = None
        self.closed = False

    async def read_text(self) -> str | None:
        self.reads += 1
        if self.read_errors:
            raise self.read_errors.pop(0)
        return self.text

    async def write_text(self, text: str) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(text)
        self.text = text

    def close(self) -> None:
        self.closed = True


def make_clip(n: int, text: str | None = None, device_id: str = "device-a") -> Clip:
    return Clip(
        id=f"{n:013d}-00000000",
        text=text if text is not None else f"clip {n}",
        created_at=float(n),
        user_id="user-1",
        device_id=device_id,
    )


def record(bus: EventBus, *events: EventName) -> list[tuple[EventName, dict]]:
    """Collect (event, payload) pairs for the given clipboard events."""
    seen: list[tuple[EventName, dict]] = []
    for event in events:
        bus.subscribe(Scope.CLIPBOARD, event, lambda p, e=event: seen.append((e, p)))
    return seen


def immediate(delay: float, callback) -> None:
    """Scheduler that runs callbacks at once."""
    callback()


async def never(_delay: float) -> None:
    """Sleep that only ends by cancellation."""
    await asyncio.Event().wait()


async def instant(_delay: float) -> None:
    """Sleep that only yields to the loop."""
    await asyncio.sleep(0)


class SteppingSleep:
    """Sleep that advances a FakeClock instead of waiting.

    Delays of at least block_at never end, which parks heartbeat loops
    while reconnection delays run straight through.
    """

    def __init__(self, clock: FakeClock, block_at: float = 300.0) -> None:
        self.clock = clock
        self.block_at = block_at
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if delay >= self.block_at:
            await asyncio.Event().wait()
        self.clock.advance(delay)
        await asyncio.sleep(0)


async def settle(rounds: int = 5) -> None:
    """Let spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def model(bus: EventBus) -> ReplicationModel:
    """A model on a fresh bus, with model time fixed at 5000 ms."""
    return ReplicationModel(bus, clock=lambda: 5000.0, seed="test")


@pytest.fixture
def hub(clock: FakeClock) -> LocalHub:
    return LocalHub(clock=clock, schedule=immediate)


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "klipsync")


@pytest.fixture
def user() -> UserInfo:
    return UserInfo(id="user-1", email="alice@example.com", name="Alice")


@pytest.fixture
def temp_socket_path(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary path for Unix domain socket testing."""
    socket_path = tmp_path / "test.sock"
    yield socket_path
    if socket_path.exists():
        socket_path.unlink()
