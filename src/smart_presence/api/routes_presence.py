"""Presence routes: household summary and per-device presence."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from smart_presence.api.deps import get_presence_service

router = APIRouter(prefix="/presence", tags=["presence"])


# ---------- Response models ----------


class DevicePresence(BaseModel):
    device_id: str
    name: str
    present: bool
    last_seen_at: Optional[float] = None
    stress_mode: bool
    scanning: bool
    last_outcome: Optional[str] = None
    last_error: Optional[str] = None


class HouseholdPresence(BaseModel):
    someone_at_home: bool
    household_member_is_home: bool
    kids_at_home: bool
    having_guests: bool
    counts: dict[str, int]
    devices: list[DevicePresence]


# ---------- Routes ----------


@router.get("", response_model=HouseholdPresence)
async def household_presence(service=Depends(get_presence_service)):
    """Answer the household queries and list every device's presence."""
    household = service.household
    return HouseholdPresence(
        someone_at_home=household.someone_at_home(),
        household_member_is_home=household.household_member_is_home(),
        kids_at_home=household.kids_at_home(),
        having_guests=household.having_guests(),
        counts={
            category.value: count
            for category, count in household.snapshot().counts.items()
        },
        devices=[DevicePresence(**m.status()) for m in service.monitors],
    )


@router.get("/{device_id}", response_model=DevicePresence)
async def device_presence(device_id: str, service=Depends(get_presence_service)):
    """Presence of one device (``user_at_home``)."""
    try:
        monitor = service.get_monitor(device_id)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return DevicePresence(**monitor.status())
