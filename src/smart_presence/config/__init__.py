"""Configuration loader for Smart Presence.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the SMART_PRESENCE_ prefix with double-underscore
nesting (e.g., SMART_PRESENCE_PRESENCE__PERSIST_INTERVAL_SECONDS=120).
"""

from __future__ import annotations

import os
import pathlib
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class SensorConfig(BaseModel):
    name: str = "Smart Presence"
    data_dir: str = "./data"
    log_level: str = "INFO"


class ApiConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8380


class DeviceDefaults(BaseModel):
    """Values applied to seeded or API-created devices that omit them."""

    port: int | str = "auto"
    normal_interval_ms: int = 5000
    normal_timeout_ms: int = 2000
    stress_interval_ms: int = 1500
    stress_timeout_ms: int = 1000
    stress_threshold_ms: int = 300_000
    away_delay_ms: int = 900_000


class PresenceConfig(BaseModel):
    persist_interval_seconds: float = 60.0
    auto_ports: list[int] = Field(default_factory=lambda: [32000, 32001])
    device_defaults: DeviceDefaults = Field(default_factory=DeviceDefaults)


class WebhookConfig(BaseModel):
    url: str
    event_types: list[str] = Field(default_factory=lambda: ["*"])
    timeout_seconds: float = 10.0


class EventsConfig(BaseModel):
    log_events: bool = True
    persist_events: bool = True
    webhooks: list[WebhookConfig] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    sensor: SensorConfig = Field(default_factory=SensorConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    devices: list[dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "SMART_PRESENCE_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect SMART_PRESENCE_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: SMART_PRESENCE_API__PORT=9000
    becomes  {"api": {"port": 9000}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        # Attempt numeric coercion
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "presence_defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < persisted < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None`` or the file does not exist,
        built-in defaults are used.
    """
    # Layer 1: built-in defaults (always loaded from the model defaults)
    base: dict[str, Any] = {}

    # Layer 2: YAML config file
    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    # Layer 3: persisted runtime config. Only loaded in daemon mode (no
    # explicit config_path) so tests passing a custom file stay isolated.
    if config_path is None:
        data_dir = base.get("sensor", {}).get("data_dir", "./data")
        persisted_path = pathlib.Path(data_dir) / "config.yaml"
        if persisted_path.exists():
            with open(persisted_path) as fh:
                persisted_data = yaml.safe_load(fh)
            if isinstance(persisted_data, dict):
                base = _deep_merge(base, persisted_data)

    # Layer 4: environment variable overrides
    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)


def apply_device_defaults(
    data: dict[str, Any], defaults: DeviceDefaults
) -> dict[str, Any]:
    """Fill fields missing from a raw device dict with configured defaults."""
    merged = defaults.model_dump()
    merged.update({k: v for k, v in data.items() if v is not None})
    return merged
