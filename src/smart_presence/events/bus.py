"""Async event bus with optional persistent storage.

The event bus is the dispatcher between the household aggregator and the
outside world. The aggregator publishes named presence events; subscribers
(log handler, webhooks, API clients) receive them.

When an EventLog is attached, every published event is first appended to it
(SQLite), then delivered to matching subscribers. Each delivery runs as its
own task so a failing or slow subscriber never delays the publisher or the
other subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from uuid import uuid4

from smart_presence.events.log import EventLog

logger = logging.getLogger(__name__)

# Type alias for subscriber callbacks
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass
class Subscription:
    """Represents an active event subscription."""

    id: str = field(default_factory=lambda: uuid4().hex)
    event_types: list[str] = field(default_factory=list)
    callback: EventCallback | None = None
    name: str = ""

    def matches(self, event_type: str) -> bool:
        return "*" in self.event_types or event_type in self.event_types


class EventBus:
    """Async pub/sub event bus, optionally backed by a persistent EventLog.

    Parameters
    ----------
    event_log:
        Persistent event log for storage and replay. Without one, events
        are numbered in memory and ``replay()`` returns nothing.
    """

    def __init__(self, event_log: EventLog | None = None) -> None:
        self._log = event_log
        self._subscriptions: list[Subscription] = []
        self._lock = asyncio.Lock()
        self._seq = 0
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        source_id: str | None = None,
    ) -> int | None:
        """Persist an event and notify subscribers. Returns the sequence number.

        The sequence number is None when the event log is attached but the
        append failed; the event is still delivered.

        Delivery is fire-and-forget: this returns once every matching
        subscriber has been scheduled, not when they finish.
        """
        async with self._lock:
            seq = await self._next_seq(event_type, payload, source_id)

        event = {
            "seq": seq,
            "event_type": event_type,
            "payload": payload,
            "source_id": source_id,
        }

        # Notify matching subscribers
        for sub in list(self._subscriptions):
            if sub.callback is None or not sub.matches(event_type):
                continue
            task = asyncio.ensure_future(self._deliver(sub, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return seq

    async def _next_seq(
        self, event_type: str, payload: dict[str, Any], source_id: str | None
    ) -> int | None:
        if self._log is None:
            self._seq += 1
            return self._seq
        try:
            return await self._log.append(event_type, payload, source_id=source_id)
        except Exception:
            logger.warning(
                "Failed to persist event %s, delivering without a seq",
                event_type,
                exc_info=True,
            )
            return None

    async def _deliver(self, sub: Subscription, event: dict[str, Any]) -> None:
        assert sub.callback is not None
        try:
            await sub.callback(event)
        except Exception:
            logger.exception(
                "Event delivery failed for subscription %s (event=%s, seq=%s)",
                sub.name or sub.id,
                event["event_type"],
                event["seq"],
            )

    def subscribe(
        self,
        event_types: list[str],
        callback: EventCallback,
        name: str = "",
    ) -> Subscription:
        """Register a callback for the given event types.

        Use ``["*"]`` to subscribe to all events.

        Returns a ``Subscription`` that can be passed to ``unsubscribe()``.
        """
        sub = Subscription(event_types=list(event_types), callback=callback, name=name)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        self._subscriptions = [
            s for s in self._subscriptions if s.id != subscription.id
        ]

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries to finish (used at shutdown)."""
        if not self._pending:
            return
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning("%d event deliveries still running after drain", len(pending))

    async def latest_seq(self) -> int:
        """Highest sequence number issued so far, 0 before the first event."""
        if self._log is None:
            return self._seq
        return await self._log.get_latest_seq()

    async def replay(self, since_seq: int, **filters: Any) -> list[dict[str, Any]]:
        """Replay events from the persistent log since the given sequence number."""
        if self._log is None:
            return []
        return await self._log.replay(since_seq, **filters)
