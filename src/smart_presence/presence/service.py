"""Presence service: owns the monitors, the aggregator and the device table.

``PresenceService`` is the lifecycle owner the entry point and the HTTP
routes talk to. Device configuration changes go through it so that the
stored configuration, the running monitor and the aggregator membership
never disagree.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import aiosqlite

from smart_presence.config import DeviceDefaults, apply_device_defaults
from smart_presence.db import queries
from smart_presence.events.bus import EventBus
from smart_presence.models import ConfigurationError, TrackedDevice, parse_tracked_device
from smart_presence.presence.household import HouseholdAggregator
from smart_presence.presence.monitor import DevicePresenceMonitor, ProbeFn
from smart_presence.presence.store import SqlitePresenceStore
from smart_presence.scanner.ports import AutoPortSelector, PortSelector
from smart_presence.scanner.probe import attempt_connect

logger = logging.getLogger(__name__)


class DeviceExistsError(ValueError):
    """Raised when adding a device whose id is already tracked."""


class PresenceService:
    """Runs one ``DevicePresenceMonitor`` per stored device.

    Parameters
    ----------
    db:
        Open connection with the schema applied.
    event_bus:
        Bus the household aggregator publishes to.
    probe:
        Reachability check handed to every monitor.
    port_selector:
        Shared port selector; defaults to ``AutoPortSelector()``.
    persist_interval:
        Seconds between last-seen writes while a device stays present.
    device_defaults:
        Values filled into raw device dicts that omit them.
    clock:
        Epoch-seconds time source handed to every monitor.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        event_bus: EventBus,
        *,
        probe: ProbeFn | None = None,
        port_selector: PortSelector | None = None,
        persist_interval: float = 60.0,
        device_defaults: DeviceDefaults | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._bus = event_bus
        self._probe = probe or attempt_connect
        self._ports = port_selector or AutoPortSelector()
        self._persist_interval = persist_interval
        self._defaults = device_defaults or DeviceDefaults()
        self._clock = clock

        self._store = SqlitePresenceStore(db)
        self._household = HouseholdAggregator(event_bus)
        self._monitors: dict[str, DevicePresenceMonitor] = {}
        self._running = False

    @property
    def household(self) -> HouseholdAggregator:
        return self._household

    @property
    def running(self) -> bool:
        return self._running

    @property
    def monitors(self) -> list[DevicePresenceMonitor]:
        return list(self._monitors.values())

    def get_monitor(self, device_id: str) -> DevicePresenceMonitor:
        """Return the monitor for *device_id*. Raises KeyError if unknown."""
        return self._monitors[device_id]

    # -- configuration parsing -------------------------------------------

    def parse_device(self, data: dict[str, Any] | TrackedDevice) -> TrackedDevice:
        """Validate raw device data, filling in configured defaults."""
        if isinstance(data, TrackedDevice):
            return data
        return parse_tracked_device(apply_device_defaults(data, self._defaults))

    async def seed_devices(self, raw_devices: list[dict[str, Any]]) -> int:
        """Upsert devices listed in the YAML config. Returns the number stored.

        Invalid entries are logged and skipped.
        """
        stored = 0
        for raw in raw_devices:
            try:
                device = self.parse_device(raw)
            except ConfigurationError as exc:
                logger.error("Skipping configured device %r: %s", raw.get("id"), exc)
                continue
            await queries.upsert_device(self._db, device)
            stored += 1
        if stored:
            logger.info("Seeded %d device(s) from config", stored)
        return stored

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Load stored devices and start a monitor for each.

        Devices added before ``start()`` begin scanning here as well.
        """
        if self._running:
            return
        for row in await queries.list_devices(self._db):
            if row["id"] in self._monitors:
                continue
            try:
                device = parse_tracked_device(row)
            except ConfigurationError as exc:
                logger.error("Ignoring stored device %s: %s", row["id"], exc)
                continue
            await self._create_monitor(device)

        self._running = True
        for monitor in self._monitors.values():
            await monitor.start()
        logger.info("Presence service started with %d device(s)", len(self._monitors))

    async def stop(self) -> None:
        """Stop every monitor. Stored configuration is kept."""
        self._running = False
        for device_id in list(self._monitors):
            monitor = self._monitors.pop(device_id)
            await monitor.stop()
            self._household.unregister(device_id)
        logger.info("Presence service stopped")

    async def _create_monitor(self, device: TrackedDevice) -> DevicePresenceMonitor:
        monitor = DevicePresenceMonitor(
            device,
            self._household,
            store=self._store,
            probe=self._probe,
            port_selector=self._ports,
            clock=self._clock,
            persist_interval=self._persist_interval,
        )
        self._monitors[device.id] = monitor
        self._household.register(monitor)
        if self._running:
            await monitor.start()
        return monitor

    # -- device management -------------------------------------------------

    async def add_device(self, data: dict[str, Any] | TrackedDevice) -> TrackedDevice:
        """Validate, store and start monitoring a new device.

        Raises
        ------
        ConfigurationError
            If the configuration is invalid. Nothing is stored or scheduled.
        DeviceExistsError
            If a device with the same id is already tracked.
        """
        device = self.parse_device(data)
        if device.id in self._monitors:
            raise DeviceExistsError(f"device {device.id!r} already exists")
        await queries.upsert_device(self._db, device)
        await self._create_monitor(device)
        logger.info("Added device %s", device)
        return device

    async def reconfigure(self, device_id: str, changes: dict[str, Any]) -> TrackedDevice:
        """Apply *changes* on top of the current configuration of *device_id*.

        Raises KeyError if the device is unknown and ``ConfigurationError``
        if the merged configuration is invalid.
        """
        monitor = self._monitors[device_id]
        merged = monitor.device.model_dump()
        merged.update({k: v for k, v in changes.items() if v is not None})
        merged["id"] = device_id
        device = parse_tracked_device(merged)
        await queries.upsert_device(self._db, device)
        monitor.reconfigure(device)
        return device

    async def remove_device(self, device_id: str) -> None:
        """Stop monitoring and delete a device. Raises KeyError if unknown."""
        monitor = self._monitors.pop(device_id)
        await monitor.stop()
        self._household.unregister(device_id)
        await queries.delete_device(self._db, device_id)
        logger.info("Removed device %s", monitor.device)
