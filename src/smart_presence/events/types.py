"""Event type constants for the Smart Presence event bus.

These constants define the canonical event names delivered to consumers.
Every event carries the payload ``{"who": <device name>}`` and the id of
the device whose transition caused it as ``source_id``. The ``USER_*``
events are the device-scoped ones; the rest describe the household.
"""

from __future__ import annotations


class EventType:
    """Namespace for event type string constants."""

    # Device-scoped events
    USER_ENTERED = "user_entered"
    USER_LEFT = "user_left"

    # Per-transition category events
    SOMEONE_ENTERED = "someone_entered"
    SOMEONE_LEFT = "someone_left"
    HOUSEHOLD_MEMBER_ARRIVED = "household_member_arrived"
    HOUSEHOLD_MEMBER_LEFT = "household_member_left"
    KID_ARRIVED = "kid_arrived"
    KID_LEFT = "kid_left"
    GUEST_ARRIVED = "guest_arrived"
    GUEST_LEFT = "guest_left"

    # Household-wide first/last events
    FIRST_PERSON_ENTERED = "first_person_entered"
    FIRST_HOUSEHOLD_MEMBER_ARRIVED = "first_household_member_arrived"
    FIRST_KID_ARRIVED = "first_kid_arrived"
    FIRST_GUEST_ARRIVED = "first_guest_arrived"
    LAST_PERSON_LEFT = "last_person_left"
    LAST_HOUSEHOLD_MEMBER_LEFT = "last_household_member_left"
    LAST_KID_LEFT = "last_kid_left"
    LAST_GUEST_LEFT = "last_guest_left"


ALL_EVENT_TYPES: frozenset[str] = frozenset(
    value
    for name, value in vars(EventType).items()
    if name.isupper() and isinstance(value, str)
)
