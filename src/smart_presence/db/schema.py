"""SQLite schema definitions for Smart Presence.

Holds tracked-device configuration, per-device persisted presence state and
the append-only event log.
"""

from __future__ import annotations

# Current schema version -- increment when adding migrations
SCHEMA_VERSION = 3


async def create_all_tables(db) -> None:
    """Bring a fresh database to the current schema.

    Convenience wrapper for tests. Runs the migration chain so the
    resulting tables match what ``apply_migrations()`` produces.
    """
    from smart_presence.db.migrations import apply_migrations

    await apply_migrations(db)


# ---------------------------------------------------------------------------
# SQL statements for schema version 1
# ---------------------------------------------------------------------------

SCHEMA_V1_SQL = """
-- Monotonic event log (replay + audit trail)
CREATE TABLE IF NOT EXISTS events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    payload TEXT NOT NULL,
    source_id TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);
CREATE INDEX IF NOT EXISTS idx_events_created ON events(created_at);

-- Tracked devices (per-device probe configuration)
CREATE TABLE IF NOT EXISTS devices (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    host TEXT NOT NULL,
    port TEXT NOT NULL DEFAULT 'auto',
    is_guest INTEGER NOT NULL DEFAULT 0,
    is_kid INTEGER NOT NULL DEFAULT 0,
    normal_interval_ms INTEGER NOT NULL,
    normal_timeout_ms INTEGER NOT NULL,
    stress_interval_ms INTEGER NOT NULL,
    stress_timeout_ms INTEGER NOT NULL,
    stress_threshold_ms INTEGER NOT NULL,
    away_delay_ms INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Persisted presence state. ``onoff`` is the legacy presence flag,
-- renamed to ``present`` in schema v3.
CREATE TABLE IF NOT EXISTS device_state (
    device_id TEXT PRIMARY KEY REFERENCES devices(id) ON DELETE CASCADE,
    onoff INTEGER NOT NULL DEFAULT 0,
    last_seen_at REAL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""
