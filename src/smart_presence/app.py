"""FastAPI application factory for Smart Presence."""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from smart_presence import __version__
from smart_presence.api.routes_devices import router as devices_router
from smart_presence.api.routes_events import router as events_router
from smart_presence.api.routes_presence import router as presence_router
from smart_presence.api.routes_system import router as system_router


def create_app(config: dict) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Configuration dictionary (``Settings.model_dump()``).

    Returns:
        Configured FastAPI application instance. Dependencies in
        ``smart_presence.api.deps`` must be overridden by the caller.
    """
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.start_time = start_time
        app.state.config = config
        yield

    app = FastAPI(
        title=config.get("sensor", {}).get("name", "Smart Presence"),
        version=__version__,
        lifespan=lifespan,
    )

    # Also set outside lifespan so TestClient without a context manager works
    app.state.start_time = start_time
    app.state.config = config

    app.include_router(system_router)
    app.include_router(presence_router)
    app.include_router(devices_router)
    app.include_router(events_router)

    return app
