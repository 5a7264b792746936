"""Integration tests for typed database query helpers."""

from __future__ import annotations

import aiosqlite
import pytest

from smart_presence.db.queries import (
    delete_device,
    get_device,
    get_device_state,
    list_devices,
    save_device_state,
    upsert_device,
)
from smart_presence.models import parse_tracked_device
from smart_presence.presence.store import SqlitePresenceStore


class TestDeviceQueries:

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, db: aiosqlite.Connection, make_device) -> None:
        device = make_device("alice", name="Alice", port="auto", is_kid=True)
        await upsert_device(db, device)

        row = await get_device(db, "alice")
        assert row["name"] == "Alice"
        assert row["port"] == "auto"
        assert row["is_kid"] == 1
        assert parse_tracked_device(row) == device

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing(self, db, make_device) -> None:
        await upsert_device(db, make_device("alice", name="Alice"))
        await upsert_device(db, make_device("alice", name="Alice 2", port=62078))

        rows = await list_devices(db)
        assert len(rows) == 1
        assert rows[0]["name"] == "Alice 2"
        assert parse_tracked_device(rows[0]).port == 62078

    @pytest.mark.asyncio
    async def test_delete(self, db, make_device) -> None:
        await upsert_device(db, make_device("alice"))
        assert await delete_device(db, "alice") is True
        assert await get_device(db, "alice") is None
        assert await delete_device(db, "alice") is False


class TestDeviceStateQueries:

    @pytest.mark.asyncio
    async def test_save_and_get_state(self, db, make_device) -> None:
        await upsert_device(db, make_device("alice"))
        await save_device_state(db, "alice", present=True, last_seen_at=100.0)
        await save_device_state(db, "alice", present=False, last_seen_at=100.0)

        state = await get_device_state(db, "alice")
        assert state["present"] == 0
        assert state["last_seen_at"] == 100.0
        assert state["updated_at"]

    @pytest.mark.asyncio
    async def test_state_for_unknown_device_is_none(self, db) -> None:
        assert await get_device_state(db, "ghost") is None

    @pytest.mark.asyncio
    async def test_store_round_trip(self, db, make_device) -> None:
        await upsert_device(db, make_device("alice"))
        store = SqlitePresenceStore(db)
        assert await store.load_last_seen("alice") is None
        await store.save_state("alice", present=True, last_seen_at=42.5)
        assert await store.load_last_seen("alice") == 42.5
