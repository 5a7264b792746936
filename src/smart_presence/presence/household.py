"""Household aggregator: turns per-device transitions into household events.

Every ARRIVED/LEFT transition committed by a device monitor triggers one
aggregation pass. The pass reads an atomic snapshot of all registered
monitors and publishes, in order:

1. the per-device events (``user_entered``, ``someone_entered`` and one
   ``*_arrived`` per category the device belongs to, or their ``*_left``
   counterparts);
2. the household-wide first/last events whose category count crossed zero.

Arrivals are counted against the household *excluding* the arriving device;
departures against the whole household, where the departing device already
reads as absent.

All passes run under one lock, which is also held while the monitor applies
its state change. Two devices changing state at the same moment therefore
produce two complete, non-interleaved passes. Cancelling a monitor mid-pass
does not truncate it: the remaining events are still published before the
lock is released.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Protocol

from smart_presence.events.bus import EventBus
from smart_presence.events.types import EventType
from smart_presence.models import PresenceCategory, TrackedDevice, Transition

logger = logging.getLogger(__name__)


class PresenceSource(Protocol):
    """The narrow read interface the aggregator needs from a monitor."""

    @property
    def device(self) -> TrackedDevice: ...

    @property
    def present(self) -> bool: ...

    @property
    def last_seen_at(self) -> float | None: ...


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MemberPresence:
    device_id: str
    name: str
    is_guest: bool
    is_kid: bool
    present: bool
    last_seen_at: float | None

    def in_category(self, category: PresenceCategory) -> bool:
        if category is PresenceCategory.ALL:
            return True
        if category is PresenceCategory.HOUSEHOLD_MEMBER:
            return not self.is_guest
        if category is PresenceCategory.GUEST:
            return self.is_guest
        return self.is_kid


@dataclass(frozen=True)
class HouseholdSnapshot:
    """Point-in-time view of every registered device's presence."""

    members: Mapping[str, MemberPresence]

    @classmethod
    def capture(cls, sources: Mapping[str, PresenceSource]) -> HouseholdSnapshot:
        members = {}
        for device_id, source in sources.items():
            device = source.device
            members[device_id] = MemberPresence(
                device_id=device_id,
                name=device.name,
                is_guest=device.is_guest,
                is_kid=device.is_kid,
                present=bool(source.present),
                last_seen_at=source.last_seen_at,
            )
        return cls(members=members)

    def without(self, device_id: str) -> HouseholdSnapshot:
        return HouseholdSnapshot(
            members={k: v for k, v in self.members.items() if k != device_id}
        )

    def present_count(self, category: PresenceCategory = PresenceCategory.ALL) -> int:
        return sum(
            1 for m in self.members.values() if m.present and m.in_category(category)
        )

    @property
    def counts(self) -> dict[PresenceCategory, int]:
        return {category: self.present_count(category) for category in PresenceCategory}

    def is_present(self, device_id: str) -> bool:
        member = self.members.get(device_id)
        return member is not None and member.present


# ---------------------------------------------------------------------------
# Event planning
# ---------------------------------------------------------------------------

# category -> (arrived, left, first arrived, last left)
_CATEGORY_EVENTS: list[tuple[PresenceCategory, tuple[str, str, str, str]]] = [
    (
        PresenceCategory.HOUSEHOLD_MEMBER,
        (
            EventType.HOUSEHOLD_MEMBER_ARRIVED,
            EventType.HOUSEHOLD_MEMBER_LEFT,
            EventType.FIRST_HOUSEHOLD_MEMBER_ARRIVED,
            EventType.LAST_HOUSEHOLD_MEMBER_LEFT,
        ),
    ),
    (
        PresenceCategory.KID,
        (
            EventType.KID_ARRIVED,
            EventType.KID_LEFT,
            EventType.FIRST_KID_ARRIVED,
            EventType.LAST_KID_LEFT,
        ),
    ),
    (
        PresenceCategory.GUEST,
        (
            EventType.GUEST_ARRIVED,
            EventType.GUEST_LEFT,
            EventType.FIRST_GUEST_ARRIVED,
            EventType.LAST_GUEST_LEFT,
        ),
    ),
]


def plan_events(
    device: TrackedDevice,
    transition: Transition,
    snapshot: HouseholdSnapshot,
) -> list[str]:
    """Return the ordered event names for one transition of *device*.

    *snapshot* must already reflect the transition.
    """
    if transition is Transition.ARRIVED:
        others = snapshot.without(device.id)
        events = [EventType.USER_ENTERED, EventType.SOMEONE_ENTERED]
        events += [ev[0] for cat, ev in _CATEGORY_EVENTS if device.in_category(cat)]
        if others.present_count(PresenceCategory.ALL) == 0:
            events.append(EventType.FIRST_PERSON_ENTERED)
        events += [
            ev[2]
            for cat, ev in _CATEGORY_EVENTS
            if device.in_category(cat) and others.present_count(cat) == 0
        ]
        return events

    events = [EventType.USER_LEFT, EventType.SOMEONE_LEFT]
    events += [ev[1] for cat, ev in _CATEGORY_EVENTS if device.in_category(cat)]
    if snapshot.present_count(PresenceCategory.ALL) == 0:
        events.append(EventType.LAST_PERSON_LEFT)
    events += [
        ev[3]
        for cat, ev in _CATEGORY_EVENTS
        if device.in_category(cat) and snapshot.present_count(cat) == 0
    ]
    return events


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class HouseholdAggregator:
    """Serializes presence transitions and emits household events.

    Parameters
    ----------
    event_bus:
        Bus that receives every planned event.
    """

    def __init__(self, event_bus: EventBus) -> None:
        self._bus = event_bus
        self._sources: dict[str, PresenceSource] = {}
        self._lock = asyncio.Lock()

    # -- membership ------------------------------------------------------

    def register(self, source: PresenceSource) -> None:
        self._sources[source.device.id] = source

    def unregister(self, device_id: str) -> None:
        self._sources.pop(device_id, None)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def snapshot(self) -> HouseholdSnapshot:
        return HouseholdSnapshot.capture(self._sources)

    # -- transitions -----------------------------------------------------

    async def commit(
        self,
        source: PresenceSource,
        update: Callable[[], Transition | None],
    ) -> Transition | None:
        """Apply *update* and, if it produced a transition, run one pass.

        *update* is the monitor's state mutation. It runs under the
        aggregator lock so the snapshot read right after it cannot observe
        another device's half-applied change.
        """
        async with self._lock:
            transition = update()
            if transition is None:
                return None

            device = source.device
            snapshot = self.snapshot()
            events = plan_events(device, transition, snapshot)
            logger.info(
                "%s %s (home: %d, household: %d, kids: %d, guests: %d)",
                device.name,
                transition.value,
                snapshot.present_count(PresenceCategory.ALL),
                snapshot.present_count(PresenceCategory.HOUSEHOLD_MEMBER),
                snapshot.present_count(PresenceCategory.KID),
                snapshot.present_count(PresenceCategory.GUEST),
            )

            # Once the state has changed the whole pass goes out, even if the
            # committing task is cancelled meanwhile.
            publishing = asyncio.ensure_future(self._publish_pass(device, events))
            try:
                await asyncio.shield(publishing)
            except asyncio.CancelledError:
                await publishing
                raise
            return transition

    async def _publish_pass(self, device: TrackedDevice, events: list[str]) -> None:
        tokens = device.tokens()
        for event_type in events:
            await self._bus.publish(event_type, dict(tokens), source_id=device.id)

    # -- read-only queries -------------------------------------------------

    def household_member_is_home(self) -> bool:
        return self.snapshot().present_count(PresenceCategory.HOUSEHOLD_MEMBER) > 0

    def kids_at_home(self) -> bool:
        return self.snapshot().present_count(PresenceCategory.KID) > 0

    def having_guests(self) -> bool:
        return self.snapshot().present_count(PresenceCategory.GUEST) > 0

    def someone_at_home(self) -> bool:
        return self.snapshot().present_count(PresenceCategory.ALL) > 0

    def user_at_home(self, device_id: str) -> bool:
        """Return True if the device is present. Raises KeyError if unknown."""
        if device_id not in self._sources:
            raise KeyError(device_id)
        return self.snapshot().is_present(device_id)
