"""Markup-text parsing for tee time cards.

The web provider reads raw strings out of each tee time card into a
:class:`RawCard`; everything after that is plain text parsing done here, so
it can be tested without a browser.  Parsing failures raise
:class:`ValueError`, which the provider treats as "skip this card".
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass

from autotee.core.models import Slot

__all__ = [
    "RawCard",
    "parse_time_text",
    "parse_price_text",
    "parse_holes_text",
    "parse_spots_text",
    "fallback_slot_id",
    "card_to_slot",
]

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})\s*([AaPp]\.?[Mm]\.?)?")
_PRICE_RE = re.compile(r"\d+(?:[.,]\d{1,2})?")
_INT_RE = re.compile(r"\d+")

#: Spots assumed when a card does not show remaining capacity.
DEFAULT_SPOTS: int = 4


@dataclass(frozen=True)
class RawCard:
    """Text pulled from one tee time card, before any parsing."""

    time_text: str
    price_text: str = ""
    holes_text: str = ""
    spots_text: str = ""
    element_id: str | None = None
    walking_option: bool = True
    cart_option_text: str | None = None


def parse_time_text(text: str) -> dt.time:
    """Parse ``"7:30 AM"``, ``"07:30"`` or ``"13:05"``.

    Raises:
        ValueError: If no time can be found in *text*.
    """
    match = _TIME_RE.search(text or "")
    if match is None:
        raise ValueError(f"no time in {text!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    meridiem = (match.group(3) or "").replace(".", "").lower()
    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    return dt.time(hour, minute)


def parse_price_text(text: str) -> float:
    """``"$65.00"`` → ``65.0``; blank or price-less text → ``0.0``."""
    match = _PRICE_RE.search((text or "").replace(",", ""))
    if match is None:
        return 0.0
    return float(match.group())


def parse_holes_text(text: str) -> int:
    """``"9 holes"`` → 9; anything without a standalone 9 → 18."""
    return 9 if re.search(r"\b9\b", text or "") else 18


def parse_spots_text(text: str) -> int:
    match = _INT_RE.search(text or "")
    return int(match.group()) if match else DEFAULT_SPOTS


def fallback_slot_id(day: dt.date, start: dt.time) -> str:
    """Synthesised id for cards without ``data-id`` or ``id``, e.g. ``"2024-06-09-0730"``."""
    return f"{day.isoformat()}-{start.strftime('%H%M')}"


def card_to_slot(card: RawCard, day: dt.date, course_name: str) -> Slot:
    """Build a :class:`Slot` from one card's text.

    Raises:
        ValueError: If the card's time cannot be parsed.
    """
    start = parse_time_text(card.time_text)
    cart_text = (card.cart_option_text or "").lower()
    return Slot(
        id=card.element_id or fallback_slot_id(day, start),
        date=day,
        time=start,
        price=parse_price_text(card.price_text),
        available_spots=parse_spots_text(card.spots_text),
        course_name=course_name,
        holes=parse_holes_text(card.holes_text),
        walking_allowed=card.walking_option,
        cart_required="required" in cart_text,
        cart_included="included" in cart_text,
    )
