"""Typed async query helpers for the Smart Presence tables.

Every function takes an ``aiosqlite.Connection`` as its first argument and
returns plain dicts or scalar values.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import aiosqlite

from smart_presence.models import TrackedDevice


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


async def _fetchone(
    db: aiosqlite.Connection, sql: str, params: tuple = ()
) -> dict[str, Any] | None:
    cursor = await db.execute(sql, params)
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [desc[0] for desc in cursor.description]
    return dict(zip(columns, row))


async def _fetchall(
    db: aiosqlite.Connection, sql: str, params: tuple = ()
) -> list[dict[str, Any]]:
    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    if not rows:
        return []
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in rows]


_DEVICE_COLUMNS = (
    "id, name, host, port, is_guest, is_kid, normal_interval_ms, "
    "normal_timeout_ms, stress_interval_ms, stress_timeout_ms, "
    "stress_threshold_ms, away_delay_ms"
)


# ---------------------------------------------------------------------------
# Device configuration queries
# ---------------------------------------------------------------------------

async def upsert_device(db: aiosqlite.Connection, device: TrackedDevice) -> None:
    """Insert a device configuration or replace the stored one (keyed by id)."""
    now = _now_iso()
    await db.execute(
        """INSERT INTO devices
           (id, name, host, port, is_guest, is_kid, normal_interval_ms,
            normal_timeout_ms, stress_interval_ms, stress_timeout_ms,
            stress_threshold_ms, away_delay_ms, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(id)
           DO UPDATE SET name = excluded.name,
                         host = excluded.host,
                         port = excluded.port,
                         is_guest = excluded.is_guest,
                         is_kid = excluded.is_kid,
                         normal_interval_ms = excluded.normal_interval_ms,
                         normal_timeout_ms = excluded.normal_timeout_ms,
                         stress_interval_ms = excluded.stress_interval_ms,
                         stress_timeout_ms = excluded.stress_timeout_ms,
                         stress_threshold_ms = excluded.stress_threshold_ms,
                         away_delay_ms = excluded.away_delay_ms,
                         updated_at = excluded.updated_at""",
        (
            device.id,
            device.name,
            device.host,
            str(device.port),
            int(device.is_guest),
            int(device.is_kid),
            device.normal_interval_ms,
            device.normal_timeout_ms,
            device.stress_interval_ms,
            device.stress_timeout_ms,
            device.stress_threshold_ms,
            device.away_delay_ms,
            now,
            now,
        ),
    )
    await db.commit()


async def get_device(
    db: aiosqlite.Connection, device_id: str
) -> dict[str, Any] | None:
    """Get a single stored device configuration."""
    return await _fetchone(
        db, f"SELECT {_DEVICE_COLUMNS} FROM devices WHERE id = ?", (device_id,)
    )


async def list_devices(db: aiosqlite.Connection) -> list[dict[str, Any]]:
    """List all stored device configurations ordered by creation time."""
    return await _fetchall(
        db, f"SELECT {_DEVICE_COLUMNS} FROM devices ORDER BY created_at, id"
    )


async def delete_device(db: aiosqlite.Connection, device_id: str) -> bool:
    """Delete a device and its persisted state. Returns True if it existed."""
    await db.execute("DELETE FROM device_state WHERE device_id = ?", (device_id,))
    cursor = await db.execute("DELETE FROM devices WHERE id = ?", (device_id,))
    await db.commit()
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Presence state queries
# ---------------------------------------------------------------------------

async def save_device_state(
    db: aiosqlite.Connection,
    device_id: str,
    *,
    present: bool,
    last_seen_at: float | None,
) -> None:
    """Upsert the persisted presence flag and last-seen timestamp."""
    await db.execute(
        """INSERT INTO device_state (device_id, present, last_seen_at, updated_at)
           VALUES (?, ?, ?, ?)
           ON CONFLICT(device_id)
           DO UPDATE SET present = excluded.present,
                         last_seen_at = excluded.last_seen_at,
                         updated_at = excluded.updated_at""",
        (device_id, int(present), last_seen_at, _now_iso()),
    )
    await db.commit()


async def get_device_state(
    db: aiosqlite.Connection, device_id: str
) -> dict[str, Any] | None:
    """Get the persisted presence state for a device."""
    return await _fetchone(
        db,
        "SELECT device_id, present, last_seen_at, updated_at "
        "FROM device_state WHERE device_id = ?",
        (device_id,),
    )
