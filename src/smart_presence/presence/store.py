"""Persistence interface for per-device presence state."""

from __future__ import annotations

from abc import ABC, abstractmethod

import aiosqlite

from smart_presence.db import queries


class PresenceStore(ABC):
    """Where monitors keep ``last_seen_at`` across restarts.

    Only ``last_seen_at`` is read back; the stored presence flag is kept
    for external readers and never trusted at startup.
    """

    @abstractmethod
    async def load_last_seen(self, device_id: str) -> float | None:
        """Return the persisted last-seen epoch timestamp, or None."""

    @abstractmethod
    async def save_state(
        self, device_id: str, *, present: bool, last_seen_at: float | None
    ) -> None:
        """Persist the current presence flag and last-seen timestamp."""


class SqlitePresenceStore(PresenceStore):
    """``PresenceStore`` backed by the ``device_state`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def load_last_seen(self, device_id: str) -> float | None:
        row = await queries.get_device_state(self._db, device_id)
        if row is None:
            return None
        return row["last_seen_at"]

    async def save_state(
        self, device_id: str, *, present: bool, last_seen_at: float | None
    ) -> None:
        await queries.save_device_state(
            self._db, device_id, present=present, last_seen_at=last_seen_at
        )
