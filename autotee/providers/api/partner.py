"""Partner REST API provider.

Talks to the documented partner booking API with a bearer token scoped to an
organisation / facility / course triple.

The provider:
* Verifies access on :meth:`~PartnerApiProvider.authenticate` by fetching the
  organisation, facility and course resources in turn.
* Passes the availability query as request parameters and maps every
  ``teeTimes[]`` entry 1:1 into a :class:`~autotee.core.models.Slot`.
* Applies weekday filtering (and the rest of the shared eligibility rules)
  client-side, because the backend has no weekday filter.
* Returns a rejected :class:`~autotee.core.models.BookingOutcome` when the
  backend declines a booking, and lets transport/auth errors from
  :class:`~autotee.providers.api.http_client.PartnerHttpClient` propagate.

Configuration
-------------
``PARTNER_API_TOKEN``, ``PARTNER_ORG_ID``, ``PARTNER_FACILITY_ID``,
``PARTNER_COURSE_ID``
    All four are required for this provider to be selected.

Typical usage::

    settings = load_settings()
    async with PartnerApiProvider(settings) as provider:
        await provider.authenticate()
        slots = await provider.find_availability(settings.to_availability_query())
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Final

import httpx
from pydantic import ValidationError

from autotee.core import events
from autotee.core.criteria import filter_eligible
from autotee.core.exceptions import ProviderError, ProviderParseError, ProviderRequestError
from autotee.core.models import (
    AvailabilityQuery,
    BookingOutcome,
    BookingRequest,
    Locomotion,
    Slot,
)
from autotee.core.settings import Settings
from autotee.providers.api.http_client import PartnerHttpClient
from autotee.providers.base import BookingProvider

__all__ = ["PartnerApiProvider"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PROVIDER_NAME: Final[str] = "partner_api"

#: Status codes the booking endpoint uses to decline a booking.
_DECLINED_STATUS: Final[frozenset[int]] = frozenset({409, 422})

# ---------------------------------------------------------------------------
# Parsing helpers (module-level, stateless)
# ---------------------------------------------------------------------------


def _parse_time(value: Any) -> dt.time:
    """Parse ``"07:30"`` or ``"07:30:00"`` into a :class:`datetime.time`.

    Raises:
        ValueError: If *value* is not a recognised time string.
    """
    text = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return dt.datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised time {value!r}")


def _map_tee_time(raw: dict[str, Any]) -> Slot | None:
    """Map one ``teeTimes[]`` entry to a :class:`Slot`.

    Returns ``None`` (and logs) when a required field is missing or invalid.
    """
    tee_time_id = str(raw.get("id") or "")
    if not tee_time_id:
        logger.debug("Skipping tee time with no id: %r", raw)
        return None

    course: dict[str, Any] = raw.get("course") or {}
    try:
        return Slot(
            id=tee_time_id,
            date=dt.date.fromisoformat(str(raw.get("date"))),
            time=_parse_time(raw.get("time")),
            price=float(raw.get("price") or 0.0),
            available_spots=int(raw.get("availableSpots") or 0),
            course_name=course.get("name") or "",
            holes=int(raw.get("holes") or 18),
            walking_allowed=bool(raw.get("walkingAllowed", True)),
            cart_required=bool(raw.get("cartRequired", False)),
            cart_included=bool(raw.get("cartIncluded", False)),
            metadata=raw.get("metadata") or {},
        )
    except (ValueError, TypeError, ValidationError) as exc:
        logger.warning("Failed to map tee time %s: %s", tee_time_id, exc)
        return None


def _walking_param(locomotion: Locomotion) -> bool | None:
    if locomotion is Locomotion.WALKING:
        return True
    if locomotion is Locomotion.CART:
        return False
    return None


def _optional_str(value: Any) -> str | None:
    return None if value is None or value == "" else str(value)


def _json_body(response: httpx.Response, what: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise ProviderParseError(PROVIDER_NAME, f"{what}: response is not JSON") from exc
    if not isinstance(body, dict):
        raise ProviderParseError(PROVIDER_NAME, f"{what}: expected a JSON object")
    return body


# ---------------------------------------------------------------------------
# Provider class
# ---------------------------------------------------------------------------


class PartnerApiProvider(BookingProvider):
    """Booking provider backed by the partner REST API.

    Args:
        settings: Application settings carrying the token and id triple.
        http_client: Optional pre-built HTTP client (useful for testing).
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        settings: Settings,
        http_client: PartnerHttpClient | None = None,
    ) -> None:
        self._org_id = settings.partner_org_id
        self._facility_id = settings.partner_facility_id
        self._course_id = settings.partner_course_id
        self._http = http_client or PartnerHttpClient(
            base_url=settings.partner_base_url,
            token=settings.partner_api_token,
            provider=PROVIDER_NAME,
            timeout=settings.partner_timeout_s,
        )
        self._owns_http = http_client is None
        self.course_label: str | None = None

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def _org_path(self) -> str:
        return f"/organizations/{self._org_id}"

    @property
    def _facility_path(self) -> str:
        return f"{self._org_path}/facilities/{self._facility_id}"

    @property
    def _course_path(self) -> str:
        return f"{self._facility_path}/courses/{self._course_id}"

    # ------------------------------------------------------------------
    # BookingProvider interface
    # ------------------------------------------------------------------

    async def authenticate(self) -> None:
        """Verify the token can see the organisation, facility and course.

        Raises:
            ProviderAuthError: Token rejected (401/403).
            ProviderNotFoundError: One of the three ids does not exist (404).
        """
        org = _json_body(await self._http.get(self._org_path), "organization")
        facility = _json_body(await self._http.get(self._facility_path), "facility")
        course = _json_body(await self._http.get(self._course_path), "course")

        self.course_label = course.get("name") or self._course_id
        logger.info(
            "Partner API access verified: org=%s facility=%s course=%s",
            org.get("name", self._org_id),
            facility.get("name", self._facility_id),
            self.course_label,
            extra={"event": events.PROVIDER_AUTH_OK},
        )

    async def is_healthy(self) -> bool:
        """Single GET on the organisation resource."""
        try:
            await self._http.get(self._org_path)
        except ProviderError as exc:
            logger.warning("Partner API health probe failed: %s", exc)
            return False
        return True

    async def find_availability(self, query: AvailabilityQuery) -> list[Slot]:
        prefs = query.preferences
        params: dict[str, Any] = {
            "startDate": query.start_date.isoformat(),
            "endDate": query.end_date.isoformat(),
            "earliestTime": query.earliest_time.strftime("%H:%M"),
            "latestTime": query.latest_time.strftime("%H:%M"),
            "partySize": query.party_size,
            "maxPrice": prefs.max_price,
            "holes": prefs.holes,
            "walkingAllowed": _walking_param(prefs.locomotion),
        }

        response = await self._http.get(f"{self._course_path}/tee-times", params=params)
        body = _json_body(response, "tee-times")
        raw_items = body.get("teeTimes") or []
        if not isinstance(raw_items, list):
            raise ProviderParseError(PROVIDER_NAME, "tee-times: 'teeTimes' is not a list")

        slots = [slot for raw in raw_items if (slot := _map_tee_time(raw)) is not None]
        eligible = filter_eligible(slots, query)
        logger.info(
            "Partner API: %d tee time(s) returned, %d eligible for %s..%s",
            len(slots),
            len(eligible),
            query.start_date,
            query.end_date,
        )
        return eligible

    async def book(self, slot: Slot, request: BookingRequest) -> BookingOutcome:
        prefs = request.preferences
        payload = {
            "teeTimeId": request.slot_id,
            "players": [{"name": name} for name in request.player_names],
            "preferences": {
                "walkingOrCart": (
                    Locomotion.WALKING.value
                    if prefs.locomotion is Locomotion.EITHER
                    else prefs.locomotion.value
                ),
                "holes": prefs.holes or 18,
            },
        }

        logger.info("Booking tee time %s (%s) for %d player(s)", slot.id, slot.label, len(request.player_names))
        try:
            response = await self._http.post(f"{self._course_path}/bookings", json=payload)
        except ProviderRequestError as exc:
            if exc.status_code in _DECLINED_STATUS:
                logger.warning("Partner API declined booking for %s: %s", slot.id, exc)
                return BookingOutcome.rejected(slot, str(exc))
            raise

        body = _json_body(response, "booking")
        if not body.get("success"):
            reason = body.get("error") or body.get("message") or "Booking failed"
            logger.warning("Partner API booking unsuccessful for %s: %s", slot.id, reason)
            return BookingOutcome.rejected(slot, str(reason), message=body.get("message") or "")

        return BookingOutcome.booked(
            slot,
            booking_id=_optional_str(body.get("bookingId")),
            confirmation_code=_optional_str(body.get("confirmationNumber")),
            message=body.get("message") or "Booking completed successfully",
        )

    async def close(self) -> None:
        """Close the HTTP client if it was created by this provider."""
        if self._owns_http:
            await self._http.close()
