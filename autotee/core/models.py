"""Autotee core domain models.

This module defines the value types shared by every provider, the scheduler
and the notification layer:

* :class:`AvailabilityQuery`: what the user wants, built once per job.
* :class:`Slot`: one bookable opening reported by a provider.
* :class:`BookingRequest` / :class:`BookingOutcome`: one booking transaction.
* :class:`JobStatus` / :class:`QueueMetrics`: read-only scheduler projections.

All providers must map their raw data into :class:`Slot` before handing it to
the scheduler.

Typical usage::

    import datetime as dt
    from autotee.core.models import AvailabilityQuery, Slot

    slot = Slot(
        id="tt-981",
        date=dt.date(2024, 6, 9),
        time=dt.time(15, 0),
        price=65.0,
        available_spots=4,
        course_name="Pebble Creek",
        holes=18,
    )
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterator
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = [
    "DayOfWeek",
    "Locomotion",
    "Preferences",
    "AvailabilityQuery",
    "Slot",
    "BookingRequest",
    "BookingOutcome",
    "JobPhase",
    "JobStatus",
    "QueueMetrics",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class DayOfWeek(StrEnum):
    """Three-letter weekday names, in ``date.weekday()`` order."""

    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"
    SUN = "Sun"

    @classmethod
    def from_date(cls, day: dt.date) -> DayOfWeek:
        """Return the weekday of *day*."""
        return list(cls)[day.weekday()]

    @classmethod
    def parse(cls, value: str) -> DayOfWeek:
        """Case-insensitive lookup accepting ``"mon"``, ``"Monday"`` or ``"MON"``.

        Raises:
            ValueError: If *value* does not name a weekday.
        """
        key = value.strip()[:3].capitalize()
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown weekday {value!r}") from None


class Locomotion(StrEnum):
    """How the party gets around the course."""

    WALKING = "walking"
    CART = "cart"
    EITHER = "either"


HolesPreference = Literal[9, 18] | None

ALL_DAYS: frozenset[DayOfWeek] = frozenset(DayOfWeek)

# ---------------------------------------------------------------------------
# Query side
# ---------------------------------------------------------------------------


class Preferences(BaseModel):
    """Resolved booking preferences.

    Attributes:
        locomotion: Walking, cart, or either.
        holes: 9 or 18; ``None`` accepts either.
        max_price: Inclusive price cap per player; ``None`` = uncapped.
    """

    model_config = {"frozen": True}

    locomotion: Locomotion = Locomotion.EITHER
    holes: HolesPreference = None
    max_price: float | None = Field(None, ge=0)


class AvailabilityQuery(BaseModel):
    """Immutable description of the openings a job is hunting for.

    Derived once from configuration per job and reused on every tick of that
    job.  All bounds are inclusive.
    """

    model_config = {"frozen": True}

    start_date: dt.date
    end_date: dt.date
    earliest_time: dt.time
    latest_time: dt.time
    days_of_week: frozenset[DayOfWeek] = ALL_DAYS
    party_size: int = Field(..., ge=1, le=6)
    preferences: Preferences = Field(default_factory=Preferences)
    course_name: str | None = None
    course_id: str | None = None

    @field_validator("days_of_week")
    @classmethod
    def _at_least_one_day(cls, v: frozenset[DayOfWeek]) -> frozenset[DayOfWeek]:
        if not v:
            raise ValueError("at least one day of the week must be allowed")
        return v

    @model_validator(mode="after")
    def _validate_windows(self) -> AvailabilityQuery:
        if self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date} is after end_date {self.end_date}")
        if self.earliest_time > self.latest_time:
            raise ValueError(
                f"earliest_time {self.earliest_time} is after latest_time {self.latest_time}"
            )
        return self

    def allows_day(self, day: dt.date) -> bool:
        """``True`` if *day* is inside the date range and on an allowed weekday."""
        return (
            self.start_date <= day <= self.end_date
            and DayOfWeek.from_date(day) in self.days_of_week
        )

    def iter_days(self) -> Iterator[dt.date]:
        """Yield every allowed day of the range in ascending order."""
        day = self.start_date
        while day <= self.end_date:
            if DayOfWeek.from_date(day) in self.days_of_week:
                yield day
            day += dt.timedelta(days=1)


# ---------------------------------------------------------------------------
# Provider output
# ---------------------------------------------------------------------------


class Slot(BaseModel):
    """One bookable opening.

    The ``id`` is whatever the backend uses to address the opening in a
    booking call.  The model is frozen so slots can be passed between
    coroutines without accidental mutation.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    date: dt.date
    time: dt.time
    price: float = Field(0.0, ge=0)
    available_spots: int = Field(0, ge=0)
    course_name: str = ""
    holes: Literal[9, 18] = 18
    walking_allowed: bool = True
    cart_required: bool = False
    cart_included: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[dt.date, dt.time]:
        """Ranking key: earliest date first, then earliest time."""
        return (self.date, self.time)

    @property
    def label(self) -> str:
        """Short human-readable form, e.g. ``"2024-06-09 15:00"``."""
        return f"{self.date.isoformat()} {self.time.strftime('%H:%M')}"


# ---------------------------------------------------------------------------
# Booking transaction
# ---------------------------------------------------------------------------


class BookingRequest(BaseModel):
    """What to send to a provider when booking one slot.  Never persisted."""

    model_config = {"frozen": True}

    slot_id: str = Field(..., min_length=1)
    player_names: tuple[str, ...] = Field(..., min_length=1)
    party_size: int = Field(..., ge=1, le=6)
    preferences: Preferences = Field(default_factory=Preferences)

    @model_validator(mode="after")
    def _players_fit_party(self) -> BookingRequest:
        if len(self.player_names) > self.party_size:
            raise ValueError(
                f"{len(self.player_names)} player names exceed party size {self.party_size}"
            )
        return self


class BookingOutcome(BaseModel):
    """Terminal value of one scheduling attempt.

    Handed to the notification layer and written to the attempt history.
    """

    model_config = {"frozen": True}

    success: bool
    booking_id: str | None = None
    confirmation_code: str | None = None
    message: str = ""
    slot: Slot | None = None
    error: str | None = None

    @classmethod
    def booked(
        cls,
        slot: Slot,
        *,
        booking_id: str | None = None,
        confirmation_code: str | None = None,
        message: str = "Tee time booked",
    ) -> BookingOutcome:
        return cls(
            success=True,
            booking_id=booking_id,
            confirmation_code=confirmation_code,
            message=message,
            slot=slot,
        )

    @classmethod
    def rejected(cls, slot: Slot | None, error: str, *, message: str = "") -> BookingOutcome:
        return cls(success=False, slot=slot, error=error, message=message or error)

    @classmethod
    def failed(cls, error: str) -> BookingOutcome:
        """Outcome of an attempt that never reached a booking transaction."""
        return cls(success=False, error=error, message=error)


# ---------------------------------------------------------------------------
# Scheduler projections
# ---------------------------------------------------------------------------


class JobPhase(StrEnum):
    """Externally visible phase of the engine's current job."""

    NONE = "none"
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(BaseModel):
    """Read-only view of the current job, computed on demand from the queue."""

    model_config = {"frozen": True}

    job_id: str | None = None
    phase: JobPhase = JobPhase.NONE
    last_run: dt.datetime | None = None
    next_run: dt.datetime | None = None
    last_error: str | None = None
    attempts: int = 0
    max_attempts: int = 0


class QueueMetrics(BaseModel):
    """Job counts by queue state.

    ``waiting`` counts jobs that are due now; ``delayed`` counts jobs whose
    run time is still in the future.
    """

    model_config = {"frozen": True}

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    def as_dict(self) -> dict[str, int]:
        return self.model_dump()
