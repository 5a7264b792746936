"""Pydantic domain models for Smart Presence.

``TrackedDevice`` is the immutable per-device configuration record read by
the presence monitors. It is built from stored rows, the YAML seed list or
API requests, always through ``parse_tracked_device`` so that invalid input
surfaces as a ``ConfigurationError`` before anything is scheduled.
"""

from __future__ import annotations

import ipaddress
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# Sentinel accepted in place of a port number: alternate between the
# well-known probe ports on every scan.
AUTO_PORT = "auto"

# Minimum scan intervals. Stored rows older than these floors are raised by
# the v2 schema migration.
MIN_NORMAL_INTERVAL_MS = 3000
MIN_STRESS_INTERVAL_MS = 1500


class ConfigurationError(ValueError):
    """Raised when a device configuration is rejected at setup time."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Transition(str, Enum):
    ARRIVED = "arrived"
    LEFT = "left"


class PresenceCategory(str, Enum):
    ALL = "all"
    HOUSEHOLD_MEMBER = "household_member"
    GUEST = "guest"
    KID = "kid"


# ---------------------------------------------------------------------------
# Device configuration
# ---------------------------------------------------------------------------

class TrackedDevice(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    host: str
    port: Union[int, Literal["auto"]] = AUTO_PORT
    is_guest: bool = False
    is_kid: bool = False
    normal_interval_ms: int = Field(default=5000, ge=MIN_NORMAL_INTERVAL_MS)
    normal_timeout_ms: int = Field(default=2000, gt=0)
    stress_interval_ms: int = Field(default=1500, ge=MIN_STRESS_INTERVAL_MS)
    stress_timeout_ms: int = Field(default=1000, gt=0)
    stress_threshold_ms: int = Field(default=300_000, ge=0)
    away_delay_ms: int = Field(default=900_000, ge=0)

    @field_validator("host")
    @classmethod
    def _check_host(cls, value: str) -> str:
        value = value.strip()
        try:
            ipaddress.ip_address(value)
        except ValueError:
            raise ValueError(f"invalid IP address: {value!r}") from None
        return value

    @field_validator("port", mode="before")
    @classmethod
    def _check_port(cls, value: Any) -> Any:
        if value is None or value == "":
            return AUTO_PORT
        if isinstance(value, str):
            if value.strip().lower() == AUTO_PORT:
                return AUTO_PORT
            if not value.strip().isdigit():
                raise ValueError(f"invalid port: {value!r}")
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"invalid port: {value!r}")
        if not 1 <= value <= 65535:
            raise ValueError(f"port out of range: {value}")
        return value

    @property
    def is_household_member(self) -> bool:
        return not self.is_guest

    @property
    def uses_auto_port(self) -> bool:
        return self.port == AUTO_PORT

    def in_category(self, category: PresenceCategory) -> bool:
        """Return True if this device counts towards *category*."""
        if category is PresenceCategory.ALL:
            return True
        if category is PresenceCategory.HOUSEHOLD_MEMBER:
            return self.is_household_member
        if category is PresenceCategory.GUEST:
            return self.is_guest
        return self.is_kid

    def tokens(self) -> dict[str, str]:
        """Payload tokens attached to every event about this device."""
        return {"who": self.name}

    def __str__(self) -> str:
        return f"{self.name} ({self.host}:{self.port})"


def parse_tracked_device(data: dict[str, Any] | TrackedDevice) -> TrackedDevice:
    """Validate raw configuration data into a ``TrackedDevice``.

    Raises
    ------
    ConfigurationError
        If any field is missing or invalid. The message lists every
        offending field.
    """
    if isinstance(data, TrackedDevice):
        return data
    try:
        return TrackedDevice.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'device'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"invalid device configuration: {problems}") from exc
