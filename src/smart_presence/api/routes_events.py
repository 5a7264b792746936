"""Event routes: replay from the persistent event log."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from smart_presence.api.deps import get_event_bus

router = APIRouter(prefix="/events", tags=["events"])


class EventEntry(BaseModel):
    seq: int
    event_type: str
    payload: dict[str, Any]
    source_id: Optional[str] = None
    created_at: Optional[str] = None


class EventList(BaseModel):
    items: list[EventEntry]
    last_seq: int


@router.get("", response_model=EventList)
async def replay_events(
    since_seq: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    device_id: Optional[str] = Query(None),
    event_bus=Depends(get_event_bus),
):
    """Return events with ``seq > since_seq`` in publication order."""
    rows = await event_bus.replay(since_seq, limit=limit, source_id=device_id)
    items = [EventEntry(**row) for row in rows]
    last_seq = items[-1].seq if items else since_seq
    return EventList(items=items, last_seq=last_seq)
