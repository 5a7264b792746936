"""Built-in event consumers.

Each factory returns an async callable suitable for ``EventBus.subscribe``.
The bus runs every delivery in its own task and logs failures, so handlers
are free to raise.

  - ``create_log_handler(logger_name)`` -- structured JSON to a Python logger
  - ``create_webhook_handler(url, ...)`` -- POST the event to an HTTP endpoint
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


EventPayload = dict[str, Any]
EventHandler = Callable[[EventPayload], Awaitable[None]]


def format_webhook_body(event: EventPayload) -> dict[str, Any]:
    """Build the JSON body POSTed to webhook consumers."""
    return {
        "event": event["event_type"],
        "tokens": dict(event.get("payload") or {}),
        "device_id": event.get("source_id"),
        "seq": event.get("seq"),
    }


def create_log_handler(
    logger_name: str = "smart_presence.events",
) -> EventHandler:
    """Create an async handler that writes each event as one JSON line.

    Events are logged at INFO level on the named logger.
    """
    log = logging.getLogger(logger_name)

    async def _handler(event: EventPayload) -> None:
        log.info(json.dumps(format_webhook_body(event), default=str))

    return _handler


def create_webhook_handler(
    url: str,
    *,
    timeout_seconds: float = 10.0,
    session_factory: Callable | None = None,
) -> EventHandler:
    """Create an async handler that POSTs events to a webhook URL.

    Parameters
    ----------
    url:
        Full URL of the receiving endpoint.
    timeout_seconds:
        Total request timeout.
    session_factory:
        Optional callable that returns an async HTTP session (for testing).
        Defaults to creating an ``aiohttp.ClientSession``.
    """

    async def _handler(event: EventPayload) -> None:
        body = format_webhook_body(event)

        timeout: object | None = None
        if session_factory is not None:
            session = session_factory()
        else:
            import aiohttp

            session = aiohttp.ClientSession()
            timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        post_kwargs: dict[str, object] = {"json": body}
        if timeout is not None:
            post_kwargs["timeout"] = timeout

        async with session:
            resp = await session.post(url, **post_kwargs)  # type: ignore[arg-type]
            resp.raise_for_status()
        logger.debug("Webhook %s accepted %s", url, body["event"])

    return _handler
