"""Slot eligibility rules shared by every provider.

Both provider variants must agree on which slots are bookable for a query, so
the rules live here rather than in either provider.  A slot is eligible only
if every check passes:

* its date is inside the query range and on an allowed weekday;
* its time is inside ``[earliest_time, latest_time]``;
* its price does not exceed the cap, when one is set;
* its hole count matches the preference, unless the preference is "either";
* its locomotion rules satisfy the walk/cart preference, unless "either";
* it has room for the whole party.

Typical usage::

    from autotee.core.criteria import filter_eligible

    slots = filter_eligible(raw_slots, query)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from autotee.core.models import AvailabilityQuery, Locomotion, Preferences, Slot

__all__ = [
    "matches_date",
    "matches_time_window",
    "matches_price",
    "matches_holes",
    "matches_locomotion",
    "matches_capacity",
    "rejection_reason",
    "is_eligible",
    "filter_eligible",
]

logger = logging.getLogger(__name__)


def matches_date(slot: Slot, query: AvailabilityQuery) -> bool:
    return query.allows_day(slot.date)


def matches_time_window(slot: Slot, query: AvailabilityQuery) -> bool:
    return query.earliest_time <= slot.time <= query.latest_time


def matches_price(slot: Slot, prefs: Preferences) -> bool:
    return prefs.max_price is None or slot.price <= prefs.max_price


def matches_holes(slot: Slot, prefs: Preferences) -> bool:
    return prefs.holes is None or slot.holes == prefs.holes


def matches_locomotion(slot: Slot, prefs: Preferences) -> bool:
    """Walking needs a slot that allows walking; cart needs a cart to be available."""
    if prefs.locomotion is Locomotion.WALKING:
        return slot.walking_allowed
    if prefs.locomotion is Locomotion.CART:
        return slot.cart_required or slot.cart_included
    return True


def matches_capacity(slot: Slot, query: AvailabilityQuery) -> bool:
    return slot.available_spots >= query.party_size


def rejection_reason(slot: Slot, query: AvailabilityQuery) -> str | None:
    """Return the first failed check's name, or ``None`` if *slot* is eligible."""
    prefs = query.preferences
    if not matches_date(slot, query):
        return "date"
    if not matches_time_window(slot, query):
        return "time_window"
    if not matches_price(slot, prefs):
        return "price"
    if not matches_holes(slot, prefs):
        return "holes"
    if not matches_locomotion(slot, prefs):
        return "locomotion"
    if not matches_capacity(slot, query):
        return "capacity"
    return None


def is_eligible(slot: Slot, query: AvailabilityQuery) -> bool:
    return rejection_reason(slot, query) is None


def filter_eligible(slots: Iterable[Slot], query: AvailabilityQuery) -> list[Slot]:
    """Keep only the slots that pass every eligibility check.

    Input order is preserved; ranking is the scheduler's job.
    """
    kept: list[Slot] = []
    for slot in slots:
        reason = rejection_reason(slot, query)
        if reason is None:
            kept.append(slot)
        else:
            logger.debug("Slot %s (%s) rejected: %s", slot.id, slot.label, reason)
    return kept
