"""Message rendering for booking notifications.

Turns a booking outcome, a failure or a health alert into a channel-neutral
:class:`Message` carrying a subject, a plain-text body and an HTML body.
Channels pick whichever representation they can deliver:

* email sends the HTML body with the plain text as the alternative part;
* Pushover sends the short title plus the plain text;
* Telegram sends the plain text escaped for MarkdownV2 via :func:`escape_mdv2`.

Telegram MarkdownV2 escaping rules
-----------------------------------
The following characters **must** be escaped with a leading backslash when
they appear in ordinary message text::

    _ * [ ] ( ) ~ ` > # + - = | { } . !

Reference: https://core.telegram.org/bots/api#markdownv2-style
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from autotee.core.attempt_context import AttemptContext
from autotee.core.models import BookingOutcome, Slot

__all__ = [
    "MessageKind",
    "Message",
    "escape_mdv2",
    "render_success",
    "render_failure",
    "render_health_alert",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class MessageKind(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    HEALTH = "health"


@dataclass(frozen=True)
class Message:
    """A rendered notification, ready for any channel.

    Attributes:
        kind: Which of the three notification types this is.
        subject: Full subject line (email).
        title: Short title (push notifications).
        text: Plain-text body.
        html: HTML body.
    """

    kind: MessageKind
    subject: str
    title: str
    text: str
    html: str


# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------

_MDV2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_mdv2(text: str) -> str:
    """Escape a plain-text string for safe embedding in a MarkdownV2 message.

    Examples:
        >>> escape_mdv2("Tee time 07:30 - $65.00!")
        'Tee time 07:30 \\\\- $65\\\\.00\\\\!'
    """
    return _MDV2_SPECIAL.sub(r"\\\1", text)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_date(slot: Slot) -> str:
    """``2024-06-09`` → ``"Sunday, June 9, 2024"``."""
    return f"{slot.date.strftime('%A, %B')} {slot.date.day}, {slot.date.year}"


def _now_label(now: datetime | None) -> str:
    return (now or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def _html_table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"<tr><td><strong>{html.escape(label)}:</strong></td><td>{html.escape(value)}</td></tr>"
        for label, value in rows
    )
    return f"<table>{cells}</table>"


def _html_page(heading: str, rows: list[tuple[str, str]], footer: str) -> str:
    return (
        "<html><body>"
        f"<h1>{html.escape(heading)}</h1>"
        f"{_html_table(rows)}"
        f"<p>{html.escape(footer)}</p>"
        "</body></html>"
    )


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def render_success(
    outcome: BookingOutcome,
    ctx: AttemptContext | None = None,
    *,
    now: datetime | None = None,
) -> Message:
    """Render the notification for a confirmed booking."""
    reference = outcome.confirmation_code or outcome.booking_id or "N/A"
    rows: list[tuple[str, str]] = [("Confirmation", reference)]
    slot = outcome.slot
    if slot is not None:
        rows += [
            ("Course", slot.course_name or "-"),
            ("Date", _format_date(slot)),
            ("Time", slot.time.strftime("%H:%M")),
            ("Holes", str(slot.holes)),
            ("Price", f"${slot.price:.2f}"),
        ]
        text = (
            f"Tee time booked at {slot.course_name or 'your course'}!\n"
            f"{_format_date(slot)} at {slot.time.strftime('%H:%M')}\n"
            f"{slot.holes} holes - ${slot.price:.2f}\n"
            f"Confirmation: {reference}"
        )
    else:
        text = f"Tee time booked successfully!\nConfirmation: {reference}"
    rows.append(("Booked at", _now_label(now)))
    if ctx is not None:
        rows.append(("Reference", ctx.correlation_id))

    return Message(
        kind=MessageKind.SUCCESS,
        subject="✅ Tee Time Booked Successfully!",
        title="✅ Tee Time Booked!",
        text=text,
        html=_html_page("🎉 Tee Time Booked Successfully!", rows, outcome.message),
    )


def render_failure(
    error: str,
    ctx: AttemptContext | None = None,
    *,
    last_attempt: datetime | None = None,
) -> Message:
    """Render the notification sent when a job fails for good."""
    rows: list[tuple[str, str]] = [("Error", error), ("Last attempt", _now_label(last_attempt))]
    text = f"Tee time booking failed: {error}"
    if ctx is not None:
        rows.append(("Attempts", f"{ctx.attempt}/{ctx.max_attempts}"))
        rows.append(("Reference", ctx.correlation_id))
        text += f"\nAttempts: {ctx.attempt}/{ctx.max_attempts}"

    return Message(
        kind=MessageKind.FAILURE,
        subject="❌ Tee Time Booking Failed",
        title="❌ Booking Failed",
        text=text,
        html=_html_page(
            "❌ Tee Time Booking Failed",
            rows,
            "The engine will keep polling on its regular schedule unless the error is permanent.",
        ),
    )


def render_health_alert(alert: str, *, now: datetime | None = None) -> Message:
    """Render an operator-facing health alert."""
    return Message(
        kind=MessageKind.HEALTH,
        subject="⚠️ Autotee Health Alert",
        title="⚠️ Autotee Alert",
        text=alert,
        html=_html_page("⚠️ Autotee Health Alert", [("Time", _now_label(now))], alert),
    )
