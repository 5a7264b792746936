"""Smart Presence -- entry point.

Usage::

    python -m smart_presence [--config PATH] [--port PORT] [--no-api]

Startup sequence:
    1. Parse CLI arguments
    2. Load configuration from YAML (or defaults)
    3. Open SQLite database and run migrations
    4. Initialise the event bus and its consumers (log, webhooks)
    5. Seed configured devices and start the presence service
    6. Create the FastAPI application and start uvicorn (unless --no-api)
    7. On shutdown signal: stop monitors, drain deliveries, close database
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import uvicorn

from smart_presence.app import create_app  # noqa: F401 -- patched in tests

logger = logging.getLogger("smart_presence")


# ---------------------------------------------------------------------------
# Integration seams -- thin wrappers around real subsystem constructors.
# These are module-level names so tests can patch them individually.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> dict[str, Any]:
    """Load configuration from a YAML file or return defaults.

    Wraps the real config loader, converting the pydantic Settings model
    into a plain dict for downstream consumption.
    """
    from smart_presence.config import load_settings

    path = Path(config_path) if config_path else None
    settings = load_settings(config_path=path)
    return settings.model_dump()


async def open_db(db_path: Path) -> Any:
    """Open the SQLite database."""
    import aiosqlite

    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db


async def run_migrations(db: Any) -> None:
    """Apply pending database migrations."""
    from smart_presence.db.migrations import apply_migrations

    await apply_migrations(db)


def create_event_bus(config: dict[str, Any], db: Any) -> Any:
    """Create the event bus, backed by the event log unless disabled."""
    from smart_presence.events.bus import EventBus
    from smart_presence.events.log import EventLog

    if config.get("events", {}).get("persist_events", True):
        return EventBus(EventLog(db))
    return EventBus()


def subscribe_consumers(config: dict[str, Any], event_bus: Any) -> int:
    """Attach the configured event consumers. Returns how many were attached."""
    from smart_presence.events.handlers import create_log_handler, create_webhook_handler

    events_cfg = config.get("events", {})
    count = 0
    if events_cfg.get("log_events", True):
        event_bus.subscribe(["*"], create_log_handler(), name="log")
        count += 1

    for hook in events_cfg.get("webhooks", []):
        handler = create_webhook_handler(
            hook["url"], timeout_seconds=hook.get("timeout_seconds", 10.0)
        )
        event_bus.subscribe(hook.get("event_types", ["*"]), handler, name=hook["url"])
        logger.info("Webhook consumer enabled: %s", hook["url"])
        count += 1
    return count


def create_presence_service(config: dict[str, Any], db: Any, event_bus: Any) -> Any:
    """Create the presence service with the configured port selector."""
    from smart_presence.config import DeviceDefaults
    from smart_presence.presence.service import PresenceService
    from smart_presence.scanner.ports import AutoPortSelector

    presence_cfg = config.get("presence", {})
    return PresenceService(
        db,
        event_bus,
        port_selector=AutoPortSelector(presence_cfg.get("auto_ports", [32000, 32001])),
        persist_interval=presence_cfg.get("persist_interval_seconds", 60.0),
        device_defaults=DeviceDefaults(**presence_cfg.get("device_defaults", {})),
    )


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="smart_presence",
        description="Network presence detection for the household",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the API server (default: api.port from config)",
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        default=False,
        help="Run presence monitoring without the HTTP API",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main run coroutine
# ---------------------------------------------------------------------------


async def run_service(
    config_path: str | None = None,
    port: int | None = None,
    no_api: bool = False,
    config: dict[str, Any] | None = None,
) -> None:
    """Start presence monitoring and run until cancelled.

    This is the top-level coroutine that wires all subsystems together.
    It is designed to be called from ``main()`` or directly in tests.
    """
    # 1. Load config
    if config is None:
        config = load_config(config_path)
    config.setdefault("api", {})
    if port is not None:
        config["api"]["port"] = port
    if no_api:
        config["api"]["enabled"] = False

    # 2. Open database and run migrations
    data_dir = config.get("sensor", {}).get("data_dir", "./data")
    db = await open_db(Path(data_dir) / "presence.db")
    await run_migrations(db)

    # 3. Event bus and consumers
    event_bus = create_event_bus(config, db)
    subscribe_consumers(config, event_bus)

    # 4. Presence service
    service = create_presence_service(config, db, event_bus)
    await service.seed_devices(config.get("devices", []))
    await service.start()

    try:
        if config["api"].get("enabled", True):
            # 5. Create FastAPI app and wire dependency overrides
            app = create_app(config=config)

            from smart_presence.api.deps import (
                get_config as _get_config_dep,
                get_event_bus as _get_event_bus_dep,
                get_presence_service as _get_service_dep,
            )

            async def _prod_get_config():
                return config

            async def _prod_get_event_bus():
                return event_bus

            async def _prod_get_service():
                return service

            app.dependency_overrides[_get_config_dep] = _prod_get_config
            app.dependency_overrides[_get_event_bus_dep] = _prod_get_event_bus
            app.dependency_overrides[_get_service_dep] = _prod_get_service

            uvicorn_config = uvicorn.Config(
                app=app,
                host=config["api"].get("host", "0.0.0.0"),
                port=config["api"].get("port", 8380),
                log_level=config.get("sensor", {}).get("log_level", "INFO").lower(),
            )
            server = uvicorn.Server(uvicorn_config)
            await server.serve()
        else:
            logger.info("HTTP API disabled, monitoring only")
            await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Shutdown signal received -- stopping presence monitoring")
    finally:
        logger.info("Stopping monitors...")
        await service.stop()

        logger.info("Draining event deliveries...")
        await event_bus.drain(timeout=5.0)

        logger.info("Closing database...")
        await db.close()

        logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Parse CLI args and run the service."""
    args = parse_args()
    config = load_config(args.config)

    level = config.get("sensor", {}).get("log_level", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(
            run_service(
                config_path=args.config,
                port=args.port,
                no_api=args.no_api,
                config=config,
            )
        )
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
