"""Unit tests for the household aggregator and event planning."""
from __future__ import annotations

import asyncio

import pytest

from smart_presence.events.bus import EventBus
from smart_presence.events.types import EventType
from smart_presence.models import PresenceCategory, Transition
from smart_presence.presence.household import (
    HouseholdAggregator,
    HouseholdSnapshot,
    plan_events,
)
from smart_presence.presence.monitor import DevicePresenceMonitor

FIRST_LAST = {
    EventType.FIRST_PERSON_ENTERED,
    EventType.FIRST_HOUSEHOLD_MEMBER_ARRIVED,
    EventType.FIRST_KID_ARRIVED,
    EventType.FIRST_GUEST_ARRIVED,
    EventType.LAST_PERSON_LEFT,
    EventType.LAST_HOUSEHOLD_MEMBER_LEFT,
    EventType.LAST_KID_LEFT,
    EventType.LAST_GUEST_LEFT,
}


class _Recorder:
    def __init__(self) -> None:
        self.events: list[dict] = []

    async def __call__(self, event: dict) -> None:
        self.events.append(event)

    def take(self) -> list[str]:
        types = [e["event_type"] for e in self.events]
        self.events.clear()
        return types


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def rec(bus) -> _Recorder:
    recorder = _Recorder()
    bus.subscribe(["*"], recorder)
    return recorder


@pytest.fixture
def household(bus) -> HouseholdAggregator:
    return HouseholdAggregator(bus)


@pytest.fixture
def add(household, make_device, scripted_probe, clock):
    def _add(device_id: str, **flags) -> DevicePresenceMonitor:
        device = make_device(device_id, away_delay_ms=60_000, **flags)
        monitor = DevicePresenceMonitor(
            device, household, probe=scripted_probe, clock=clock
        )
        household.register(monitor)
        return monitor

    return _add


async def _arrive(monitor: DevicePresenceMonitor, bus: EventBus) -> None:
    assert await monitor.evaluate_presence(True) is Transition.ARRIVED
    await bus.drain()


async def _leave(monitor: DevicePresenceMonitor, bus: EventBus, clock) -> None:
    assert await monitor.evaluate_presence(False, now=clock.now + 3600) is Transition.LEFT
    await bus.drain()


# ---------------------------------------------------------------------------
# The A/B/C household scenario
# ---------------------------------------------------------------------------


class TestHouseholdScenario:

    @pytest.mark.asyncio
    async def test_first_and_last_events(self, add, bus, rec, clock) -> None:
        a = add("a")
        b = add("b", is_guest=True)
        c = add("c")

        await _arrive(a, bus)
        events = rec.take()
        assert [e for e in events if e in FIRST_LAST] == [
            EventType.FIRST_PERSON_ENTERED,
            EventType.FIRST_HOUSEHOLD_MEMBER_ARRIVED,
        ]

        await _arrive(b, bus)
        events = rec.take()
        assert [e for e in events if e in FIRST_LAST] == [EventType.FIRST_GUEST_ARRIVED]

        await _arrive(c, bus)
        events = rec.take()
        assert [e for e in events if e in FIRST_LAST] == []

        await _leave(a, bus, clock)
        events = rec.take()
        assert EventType.LAST_HOUSEHOLD_MEMBER_LEFT not in events
        assert [e for e in events if e in FIRST_LAST] == []

        await _leave(c, bus, clock)
        events = rec.take()
        assert EventType.LAST_HOUSEHOLD_MEMBER_LEFT in events
        assert EventType.LAST_PERSON_LEFT not in events

    @pytest.mark.asyncio
    async def test_full_arrival_event_order(self, add, bus, rec) -> None:
        kid = add("kid", is_kid=True)
        await _arrive(kid, bus)
        assert rec.take() == [
            EventType.USER_ENTERED,
            EventType.SOMEONE_ENTERED,
            EventType.HOUSEHOLD_MEMBER_ARRIVED,
            EventType.KID_ARRIVED,
            EventType.FIRST_PERSON_ENTERED,
            EventType.FIRST_HOUSEHOLD_MEMBER_ARRIVED,
            EventType.FIRST_KID_ARRIVED,
        ]

    @pytest.mark.asyncio
    async def test_full_departure_event_order(self, add, bus, rec, clock) -> None:
        guest = add("guest", is_guest=True)
        await _arrive(guest, bus)
        rec.take()
        await _leave(guest, bus, clock)
        assert rec.take() == [
            EventType.USER_LEFT,
            EventType.SOMEONE_LEFT,
            EventType.GUEST_LEFT,
            EventType.LAST_PERSON_LEFT,
            EventType.LAST_GUEST_LEFT,
        ]

    @pytest.mark.asyncio
    async def test_payload_and_source(self, add, bus, rec) -> None:
        a = add("a", name="Alice")
        await _arrive(a, bus)
        assert all(e["payload"] == {"who": "Alice"} for e in rec.events)
        assert all(e["source_id"] == "a" for e in rec.events)

    @pytest.mark.asyncio
    async def test_no_events_without_transition(self, add, bus, rec) -> None:
        a = add("a")
        await _arrive(a, bus)
        rec.take()
        await a.evaluate_presence(True)
        await a.evaluate_presence(False)
        await bus.drain()
        assert rec.take() == []


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestConcurrentTransitions:

    @pytest.mark.asyncio
    async def test_simultaneous_arrivals_yield_one_first_person(
        self, add, bus, rec
    ) -> None:
        a = add("a")
        b = add("b")
        await asyncio.gather(a.evaluate_presence(True), b.evaluate_presence(True))
        await bus.drain()
        events = rec.take()
        assert events.count(EventType.FIRST_PERSON_ENTERED) == 1
        assert events.count(EventType.FIRST_HOUSEHOLD_MEMBER_ARRIVED) == 1
        assert events.count(EventType.USER_ENTERED) == 2

    @pytest.mark.asyncio
    async def test_passes_are_not_interleaved(self, add, bus, rec) -> None:
        a = add("a")
        b = add("b")
        await asyncio.gather(a.evaluate_presence(True), b.evaluate_presence(True))
        await bus.drain()
        sources = [e["source_id"] for e in rec.events]
        split = sources.index(sources[-1])
        assert len(set(sources[:split])) == 1
        assert len(set(sources[split:])) == 1


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:

    @pytest.mark.asyncio
    async def test_household_queries(self, add, household, bus) -> None:
        member = add("member")
        kid = add("kid", is_kid=True)
        guest = add("guest", is_guest=True)

        assert not household.someone_at_home()
        assert not household.household_member_is_home()

        await _arrive(guest, bus)
        assert household.someone_at_home()
        assert household.having_guests()
        assert not household.household_member_is_home()
        assert not household.kids_at_home()

        await _arrive(kid, bus)
        assert household.kids_at_home()
        assert household.household_member_is_home()

        assert household.user_at_home("kid")
        assert not household.user_at_home("member")
        assert member.device.id in household

    def test_user_at_home_unknown_device(self, household) -> None:
        with pytest.raises(KeyError):
            household.user_at_home("nobody")

    @pytest.mark.asyncio
    async def test_unregistered_device_no_longer_counts(self, add, household, bus) -> None:
        a = add("a")
        await _arrive(a, bus)
        household.unregister("a")
        assert not household.someone_at_home()
        assert len(household) == 0


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestPlanEvents:

    def test_arrival_counts_exclude_arriving_device(self, make_device) -> None:
        device = make_device("a")
        snapshot = HouseholdSnapshot.capture({})
        events = plan_events(device, Transition.ARRIVED, snapshot)
        assert EventType.FIRST_PERSON_ENTERED in events

    def test_snapshot_counts(self, make_device) -> None:
        class _Src:
            def __init__(self, device, present):
                self.device = device
                self.present = present
                self.last_seen_at = None

        snapshot = HouseholdSnapshot.capture({
            "a": _Src(make_device("a"), True),
            "k": _Src(make_device("k", is_kid=True), True),
            "g": _Src(make_device("g", is_guest=True), False),
        })
        assert snapshot.counts == {
            PresenceCategory.ALL: 2,
            PresenceCategory.HOUSEHOLD_MEMBER: 2,
            PresenceCategory.GUEST: 0,
            PresenceCategory.KID: 1,
        }
        assert snapshot.without("a").present_count() == 1
        assert snapshot.is_present("k")
        assert not snapshot.is_present("g")
        assert not snapshot.is_present("nobody")
