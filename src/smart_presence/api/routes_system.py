"""System routes: health."""
from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from smart_presence import __version__
from smart_presence.api.deps import get_config, get_event_bus, get_presence_service

router = APIRouter(prefix="/system", tags=["system"])


class HealthResponse(BaseModel):
    version: str
    name: str
    uptime_seconds: float
    device_count: int
    consumer_count: int
    latest_event_seq: int


@router.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    config: dict = Depends(get_config),
    service=Depends(get_presence_service),
    event_bus=Depends(get_event_bus),
):
    """Health check endpoint."""
    start_time = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time
    return HealthResponse(
        version=__version__,
        name=config.get("sensor", {}).get("name", "Smart Presence"),
        uptime_seconds=round(uptime, 2),
        device_count=len(service.monitors),
        consumer_count=event_bus.subscription_count,
        latest_event_seq=await event_bus.latest_seq(),
    )
