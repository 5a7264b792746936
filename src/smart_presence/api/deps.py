"""FastAPI dependency injection providers."""
from __future__ import annotations


async def get_event_bus():
    """Return the EventBus instance.

    In production, created at startup. In tests, overridden.
    """
    raise NotImplementedError("Must be overridden via dependency_overrides")


async def get_config() -> dict:
    """Return the configuration dict.

    In production, loaded at startup. In tests, overridden.
    """
    raise NotImplementedError("Must be overridden via dependency_overrides")


async def get_presence_service():
    """Return the running PresenceService.

    In production, created at startup. In tests, overridden.
    """
    raise NotImplementedError("Must be overridden via dependency_overrides")
