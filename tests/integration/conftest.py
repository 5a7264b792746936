# tests/integration/conftest.py
import pytest
import pytest_asyncio

from smart_presence.presence.service import PresenceService
from smart_presence.scanner.ports import AutoPortSelector


@pytest.fixture
def service_config():
    """Return a test configuration dict."""
    return {
        "sensor": {"name": "Presence-TEST", "data_dir": "./data", "log_level": "INFO"},
        "api": {"enabled": True, "host": "127.0.0.1", "port": 8380},
        "presence": {"persist_interval_seconds": 60.0, "auto_ports": [32000, 32001]},
        "events": {"log_events": False, "persist_events": True, "webhooks": []},
        "devices": [],
    }


@pytest_asyncio.fixture
async def service(db, event_bus, scripted_probe, clock):
    """A PresenceService wired to a scripted probe and a fake clock.

    The service is not started; tests that need running monitors call
    ``await service.start()`` themselves.
    """
    svc = PresenceService(
        db,
        event_bus,
        probe=scripted_probe,
        port_selector=AutoPortSelector(),
        clock=clock,
    )
    yield svc
    await svc.stop()
    await event_bus.drain(timeout=1.0)


@pytest.fixture
def app(event_bus, service, service_config):
    """Create a FastAPI app with dependency overrides for testing."""
    from smart_presence.app import create_app
    from smart_presence.api.deps import get_config, get_event_bus, get_presence_service

    application = create_app(service_config)

    async def override_event_bus():
        return event_bus

    async def override_config():
        return service_config

    async def override_service():
        return service

    application.dependency_overrides[get_event_bus] = override_event_bus
    application.dependency_overrides[get_config] = override_config
    application.dependency_overrides[get_presence_service] = override_service

    return application


@pytest.fixture
def client(app):
    """Create a TestClient for the FastAPI app."""
    from fastapi.testclient import TestClient
    return TestClient(app)
