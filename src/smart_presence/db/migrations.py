"""Schema version tracking and migration runner.

Checks the current schema version in the database and applies any pending
migrations in order. Version 0 means no schema exists yet.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import aiosqlite

from smart_presence.db.schema import SCHEMA_V1_SQL, SCHEMA_VERSION
from smart_presence.models import MIN_NORMAL_INTERVAL_MS, MIN_STRESS_INTERVAL_MS

logger = logging.getLogger(__name__)


async def _get_current_version(db: aiosqlite.Connection) -> int:
    """Return the current schema version, or 0 if the table does not exist."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    row = await cursor.fetchone()
    if row is None:
        return 0
    cursor = await db.execute("SELECT MAX(version) FROM schema_version")
    row = await cursor.fetchone()
    return row[0] if row and row[0] is not None else 0


async def _record_version(db: aiosqlite.Connection, version: int) -> None:
    now = datetime.now(timezone.utc).isoformat()
    await db.execute(
        "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
        (version, now),
    )
    await db.commit()


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    """Check whether a column already exists in a table."""
    cursor = await db.execute(f"PRAGMA table_info({table})")
    rows = await cursor.fetchall()
    return any(row[1] == column for row in rows)


async def _apply_v1(db: aiosqlite.Connection) -> None:
    """Apply schema version 1: create all initial tables and indexes."""
    await db.executescript(SCHEMA_V1_SQL)
    await _record_version(db, 1)


async def _apply_v2(db: aiosqlite.Connection) -> None:
    """V2: raise stored scan intervals to the enforced minimums."""
    cursor = await db.execute(
        "UPDATE devices SET normal_interval_ms = ? WHERE normal_interval_ms < ?",
        (MIN_NORMAL_INTERVAL_MS, MIN_NORMAL_INTERVAL_MS),
    )
    raised_normal = cursor.rowcount
    cursor = await db.execute(
        "UPDATE devices SET stress_interval_ms = ? WHERE stress_interval_ms < ?",
        (MIN_STRESS_INTERVAL_MS, MIN_STRESS_INTERVAL_MS),
    )
    raised_stress = cursor.rowcount
    if raised_normal > 0 or raised_stress > 0:
        logger.info(
            "Raised scan intervals to minimums: %d normal, %d stress",
            max(raised_normal, 0),
            max(raised_stress, 0),
        )
    await _record_version(db, 2)


async def _apply_v3(db: aiosqlite.Connection) -> None:
    """V3: rename the legacy ``onoff`` presence column to ``present``."""
    if await _column_exists(db, "device_state", "onoff"):
        await db.execute("ALTER TABLE device_state RENAME COLUMN onoff TO present")
    elif not await _column_exists(db, "device_state", "present"):
        await db.execute(
            "ALTER TABLE device_state ADD COLUMN present INTEGER NOT NULL DEFAULT 0"
        )
    await _record_version(db, 3)


# Ordered list of migration functions. Index 0 = migration to version 1.
_MIGRATIONS: list[tuple[int, callable]] = [
    (1, _apply_v1),
    (2, _apply_v2),
    (3, _apply_v3),
]


async def apply_migrations(db: aiosqlite.Connection) -> None:
    """Apply all pending migrations to bring the database to the current version.

    Safe to call multiple times -- skips already-applied migrations.
    """
    current = await _get_current_version(db)

    if current >= SCHEMA_VERSION:
        return

    for target_version, migrate_fn in _MIGRATIONS:
        if current < target_version:
            await migrate_fn(db)
            current = target_version
