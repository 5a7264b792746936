"""Shared test fixtures for Smart Presence tests."""

from __future__ import annotations

import asyncio
import pathlib
from typing import Any

import aiosqlite
import pytest
import pytest_asyncio

from smart_presence.db.schema import create_all_tables
from smart_presence.events.bus import EventBus
from smart_presence.events.log import EventLog
from smart_presence.models import TrackedDevice
from smart_presence.scanner.probe import REACHABLE, UNREACHABLE, ProbeResult

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


# ---------------------------------------------------------------------------
# Database and bus
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db():
    """Create an in-memory SQLite database with full schema."""
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys = ON")
    await create_all_tables(conn)
    yield conn
    await conn.close()


@pytest.fixture
def event_bus(db):
    """Create a real EventBus backed by the test database."""
    return EventBus(EventLog(db))


class EventRecorder:
    """Bus subscriber that keeps every delivered event in order."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    async def __call__(self, event: dict[str, Any]) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e["event_type"] for e in self.events]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def recorder(event_bus) -> EventRecorder:
    rec = EventRecorder()
    event_bus.subscribe(["*"], rec, name="recorder")
    return rec


# ---------------------------------------------------------------------------
# Time and probes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProbe:
    """Probe double that returns a fixed or queued result and records calls."""

    def __init__(self, result: ProbeResult = UNREACHABLE) -> None:
        self.result = result
        self.queue: list[ProbeResult] = []
        self.calls: list[tuple[str, int, float]] = []

    def set_reachable(self, reachable: bool) -> None:
        self.result = REACHABLE if reachable else UNREACHABLE

    async def __call__(self, host: str, port: int, timeout: float) -> ProbeResult:
        self.calls.append((host, port, timeout))
        if self.queue:
            return self.queue.pop(0)
        return self.result


class HeldProbe:
    """Probe double that blocks until ``release()`` is called."""

    def __init__(self, result: ProbeResult = REACHABLE) -> None:
        self.result = result
        self.calls: list[tuple[str, int, float]] = []
        self.started = asyncio.Event()
        self._release = asyncio.Event()

    def release(self) -> None:
        self._release.set()

    async def __call__(self, host: str, port: int, timeout: float) -> ProbeResult:
        self.calls.append((host, port, timeout))
        self.started.set()
        await self._release.wait()
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scripted_probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def held_probe() -> HeldProbe:
    return HeldProbe()


@pytest.fixture
def make_device():
    """Factory for valid TrackedDevice instances with overridable fields."""

    def _make(device_id: str = "phone-a", **overrides: Any) -> TrackedDevice:
        data: dict[str, Any] = {
            "id": device_id,
            "name": overrides.pop("name", device_id.replace("-", " ").title()),
            "host": "192.168.1.50",
            "port": 62078,
        }
        data.update(overrides)
        return TrackedDevice(**data)

    return _make
