"""Device routes: list, get, create, reconfigure, delete."""
from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from smart_presence.api.deps import get_presence_service
from smart_presence.models import ConfigurationError, TrackedDevice
from smart_presence.presence.service import DeviceExistsError

router = APIRouter(prefix="/devices", tags=["devices"])


# ---------- Request/Response models ----------


class DeviceCreateRequest(BaseModel):
    id: str
    name: str
    host: str
    port: Optional[Union[int, str]] = None
    is_guest: bool = False
    is_kid: bool = False
    normal_interval_ms: Optional[int] = None
    normal_timeout_ms: Optional[int] = None
    stress_interval_ms: Optional[int] = None
    stress_timeout_ms: Optional[int] = None
    stress_threshold_ms: Optional[int] = None
    away_delay_ms: Optional[int] = None


class DeviceUpdateRequest(BaseModel):
    name: Optional[str] = None
    host: Optional[str] = None
    port: Optional[Union[int, str]] = None
    is_guest: Optional[bool] = None
    is_kid: Optional[bool] = None
    normal_interval_ms: Optional[int] = None
    normal_timeout_ms: Optional[int] = None
    stress_interval_ms: Optional[int] = None
    stress_timeout_ms: Optional[int] = None
    stress_threshold_ms: Optional[int] = None
    away_delay_ms: Optional[int] = None


class DeviceResponse(BaseModel):
    id: str
    name: str
    host: str
    port: Union[int, str]
    is_guest: bool
    is_kid: bool
    normal_interval_ms: int
    normal_timeout_ms: int
    stress_interval_ms: int
    stress_timeout_ms: int
    stress_threshold_ms: int
    away_delay_ms: int


class DeviceList(BaseModel):
    items: list[DeviceResponse]
    total: int


# ---------- Helpers ----------


def _to_response(device: TrackedDevice) -> DeviceResponse:
    return DeviceResponse(**device.model_dump())


def _unprocessable(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


# ---------- Routes ----------


@router.get("", response_model=DeviceList)
async def list_devices(service=Depends(get_presence_service)):
    """List every tracked device configuration."""
    items = [_to_response(m.device) for m in service.monitors]
    return DeviceList(items=items, total=len(items))


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(device_id: str, service=Depends(get_presence_service)):
    """Get one device configuration."""
    try:
        monitor = service.get_monitor(device_id)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return _to_response(monitor.device)


@router.post("", response_model=DeviceResponse, status_code=status.HTTP_201_CREATED)
async def create_device(body: DeviceCreateRequest, service=Depends(get_presence_service)):
    """Add a device and start monitoring it."""
    try:
        device = await service.add_device(body.model_dump(exclude_none=True))
    except DeviceExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ConfigurationError as exc:
        raise _unprocessable(exc)
    return _to_response(device)


@router.put("/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: str,
    body: DeviceUpdateRequest,
    service=Depends(get_presence_service),
):
    """Reconfigure a device. Omitted fields keep their current value."""
    try:
        device = await service.reconfigure(device_id, body.model_dump(exclude_none=True))
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    except ConfigurationError as exc:
        raise _unprocessable(exc)
    return _to_response(device)


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_device(device_id: str, service=Depends(get_presence_service)):
    """Stop monitoring a device and delete its configuration."""
    try:
        await service.remove_device(device_id)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
