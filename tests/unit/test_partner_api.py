"""Unit tests for the partner API HTTP client and provider.

All HTTP traffic goes through :class:`httpx.MockTransport`; retries use a
zero wait so the suite never sleeps.
"""

from __future__ import annotations

import datetime as dt
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from autotee.core.exceptions import (
    ProviderAuthError,
    ProviderNotFoundError,
    ProviderParseError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderTransportError,
)
from autotee.core.models import (
    AvailabilityQuery,
    BookingRequest,
    DayOfWeek,
    Locomotion,
    Preferences,
    Slot,
)
from autotee.core.settings import Settings
from autotee.providers.api.http_client import PartnerHttpClient
from autotee.providers.api.partner import PartnerApiProvider

BASE_URL = "https://partner.test/v1"
COURSE_PATH = "/v1/organizations/1/facilities/2/courses/3"

Handler = Callable[[httpx.Request], httpx.Response]


# ---------------------------------------------------------------------------
# Factories / helpers
# ---------------------------------------------------------------------------


class _Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)


def _make_client(handler: Handler, *, max_attempts: int = 3) -> PartnerHttpClient:
    return PartnerHttpClient(
        base_url=BASE_URL,
        token="secret-token",
        provider="partner_api",
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
        wait=lambda rs: 0,
    )


def _make_settings() -> Settings:
    return Settings(
        partner_api_token="secret-token",
        partner_org_id="1",
        partner_facility_id="2",
        partner_course_id="3",
        partner_base_url=BASE_URL,
    )


def _make_provider(handler: Handler, *, max_attempts: int = 3) -> PartnerApiProvider:
    return PartnerApiProvider(_make_settings(), http_client=_make_client(handler, max_attempts=max_attempts))


def _make_query(**overrides: Any) -> AvailabilityQuery:
    fields: dict[str, Any] = {
        "start_date": dt.date(2024, 6, 8),
        "end_date": dt.date(2024, 6, 10),
        "earliest_time": dt.time(7, 0),
        "latest_time": dt.time(18, 0),
        "days_of_week": frozenset({DayOfWeek.SAT, DayOfWeek.SUN}),
        "party_size": 4,
    }
    fields.update(overrides)
    return AvailabilityQuery(**fields)


def _tee_time(id: str, date: str, time: str, **extra: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "id": id,
        "date": date,
        "time": time,
        "price": 55.0,
        "availableSpots": 4,
        "course": {"name": "Pebble Creek"},
        "holes": 18,
        "walkingAllowed": True,
    }
    raw.update(extra)
    return raw


def _slot() -> Slot:
    return Slot(
        id="tt-1",
        date=dt.date(2024, 6, 9),
        time=dt.time(9, 0),
        price=55.0,
        available_spots=4,
        course_name="Pebble Creek",
    )


def _request(**prefs: Any) -> BookingRequest:
    return BookingRequest(
        slot_id="tt-1",
        player_names=("Alice", "Bob"),
        party_size=4,
        preferences=Preferences(**prefs),
    )


# ---------------------------------------------------------------------------
# PartnerHttpClient
# ---------------------------------------------------------------------------


class TestPartnerHttpClient:
    async def test_success_sends_bearer_token(self) -> None:
        rec = _Recorder(httpx.Response(200, json={"ok": True}))
        async with _make_client(rec) as client:
            response = await client.get("/organizations/1")
        assert response.json() == {"ok": True}
        assert rec.requests[0].headers["Authorization"] == "Bearer secret-token"
        assert rec.requests[0].url.path == "/v1/organizations/1"

    async def test_none_params_are_dropped(self) -> None:
        rec = _Recorder(httpx.Response(200, json={}))
        async with _make_client(rec) as client:
            await client.get("/x", params={"a": 1, "b": None})
        assert dict(rec.requests[0].url.params) == {"a": "1"}

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors_not_retried(self, status: int) -> None:
        rec = _Recorder(httpx.Response(status))
        async with _make_client(rec) as client:
            with pytest.raises(ProviderAuthError):
                await client.get("/organizations/1")
        assert len(rec.requests) == 1

    async def test_not_found(self) -> None:
        rec = _Recorder(httpx.Response(404))
        async with _make_client(rec) as client:
            with pytest.raises(ProviderNotFoundError):
                await client.get("/organizations/9")
        assert len(rec.requests) == 1

    async def test_other_client_error_carries_status(self) -> None:
        rec = _Recorder(httpx.Response(400, text="bad date"))
        async with _make_client(rec) as client:
            with pytest.raises(ProviderRequestError) as exc_info:
                await client.get("/x")
        assert exc_info.value.status_code == 400
        assert len(rec.requests) == 1

    async def test_server_error_retried_then_succeeds(self) -> None:
        rec = _Recorder(httpx.Response(503), httpx.Response(200, json={"ok": True}))
        async with _make_client(rec) as client:
            response = await client.get("/x")
        assert response.status_code == 200
        assert len(rec.requests) == 2

    async def test_server_error_exhausts_budget(self) -> None:
        rec = _Recorder(httpx.Response(502))
        async with _make_client(rec, max_attempts=3) as client:
            with pytest.raises(ProviderTransportError):
                await client.get("/x")
        assert len(rec.requests) == 3

    async def test_rate_limit_reports_retry_after(self) -> None:
        rec = _Recorder(httpx.Response(429, headers={"Retry-After": "7"}))
        async with _make_client(rec, max_attempts=1) as client:
            with pytest.raises(ProviderRateLimitError) as exc_info:
                await client.get("/x")
        assert exc_info.value.retry_after == 7.0

    async def test_rate_limit_body_hint_floored_at_one_second(self) -> None:
        rec = _Recorder(httpx.Response(429, json={"retryAfter": 0.2}))
        async with _make_client(rec, max_attempts=1) as client:
            with pytest.raises(ProviderRateLimitError) as exc_info:
                await client.get("/x")
        assert exc_info.value.retry_after == 1.0

    async def test_rate_limit_retried(self) -> None:
        rec = _Recorder(httpx.Response(429), httpx.Response(200, json={}))
        async with _make_client(rec) as client:
            await client.get("/x")
        assert len(rec.requests) == 2

    async def test_transport_error_translated(self) -> None:
        rec = _Recorder(httpx.ConnectError("connection refused"))
        async with _make_client(rec, max_attempts=2) as client:
            with pytest.raises(ProviderTransportError, match="ConnectError"):
                await client.get("/x")
        assert len(rec.requests) == 2

    async def test_close_is_idempotent(self) -> None:
        client = _make_client(_Recorder(httpx.Response(200)))
        await client.get("/x")
        assert client.is_open
        await client.close()
        await client.close()
        assert not client.is_open

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError):
            _make_client(_Recorder(httpx.Response(200)), max_attempts=0)


# ---------------------------------------------------------------------------
# PartnerApiProvider
# ---------------------------------------------------------------------------


class TestPartnerAuthenticate:
    async def test_authenticate_reads_course_name(self, clean_env: None) -> None:
        rec = _Recorder(
            httpx.Response(200, json={"name": "Golf Org"}),
            httpx.Response(200, json={"name": "North Facility"}),
            httpx.Response(200, json={"name": "Pebble Creek"}),
        )
        provider = _make_provider(rec)
        await provider.authenticate()
        assert provider.course_label == "Pebble Creek"
        assert [r.url.path for r in rec.requests] == [
            "/v1/organizations/1",
            "/v1/organizations/1/facilities/2",
            COURSE_PATH,
        ]

    async def test_authenticate_rejected_token(self, clean_env: None) -> None:
        provider = _make_provider(_Recorder(httpx.Response(401)))
        with pytest.raises(ProviderAuthError):
            await provider.authenticate()

    async def test_authenticate_unknown_course(self, clean_env: None) -> None:
        rec = _Recorder(
            httpx.Response(200, json={}),
            httpx.Response(200, json={}),
            httpx.Response(404),
        )
        with pytest.raises(ProviderNotFoundError):
            await _make_provider(rec).authenticate()

    async def test_is_healthy(self, clean_env: None) -> None:
        assert await _make_provider(_Recorder(httpx.Response(200, json={}))).is_healthy()

    async def test_is_unhealthy_never_raises(self, clean_env: None) -> None:
        provider = _make_provider(_Recorder(httpx.Response(503)), max_attempts=1)
        assert await provider.is_healthy() is False


class TestPartnerFindAvailability:
    async def test_maps_and_filters(self, clean_env: None) -> None:
        body = {
            "teeTimes": [
                _tee_time("a", "2024-06-08", "10:00"),
                _tee_time("b", "2024-06-10", "09:00"),  # Monday
                _tee_time("c", "2024-06-09", "15:00:00", cartIncluded=True),
                _tee_time("d", "2024-06-09", "08:00", availableSpots=2),
                _tee_time("", "2024-06-09", "08:00"),
                _tee_time("e", "2024-06-09", "not-a-time"),
            ]
        }
        provider = _make_provider(_Recorder(httpx.Response(200, json=body)))
        slots = await provider.find_availability(_make_query())

        assert [s.id for s in slots] == ["a", "c"]
        assert slots[1].time == dt.time(15, 0)
        assert slots[1].cart_included is True
        assert slots[0].course_name == "Pebble Creek"

    async def test_query_parameters(self, clean_env: None) -> None:
        rec = _Recorder(httpx.Response(200, json={"teeTimes": []}))
        provider = _make_provider(rec)
        query = _make_query(preferences=Preferences(locomotion=Locomotion.WALKING, max_price=80))
        await provider.find_availability(query)

        request = rec.requests[0]
        assert request.url.path == f"{COURSE_PATH}/tee-times"
        params = dict(request.url.params)
        assert params["startDate"] == "2024-06-08"
        assert params["endDate"] == "2024-06-10"
        assert params["earliestTime"] == "07:00"
        assert params["partySize"] == "4"
        assert params["walkingAllowed"] == "true"
        assert "holes" not in params

    async def test_empty_response(self, clean_env: None) -> None:
        provider = _make_provider(_Recorder(httpx.Response(200, json={})))
        assert await provider.find_availability(_make_query()) == []

    async def test_non_list_payload_is_parse_error(self, clean_env: None) -> None:
        provider = _make_provider(_Recorder(httpx.Response(200, json={"teeTimes": "oops"})))
        with pytest.raises(ProviderParseError):
            await provider.find_availability(_make_query())

    async def test_non_json_payload_is_parse_error(self, clean_env: None) -> None:
        provider = _make_provider(_Recorder(httpx.Response(200, text="<html>")))
        with pytest.raises(ProviderParseError):
            await provider.find_availability(_make_query())


class TestPartnerBook:
    async def test_booked(self, clean_env: None) -> None:
        rec = _Recorder(
            httpx.Response(
                200,
                json={"success": True, "bookingId": 991, "confirmationNumber": "GOLF-42"},
            )
        )
        outcome = await _make_provider(rec).book(_slot(), _request(locomotion=Locomotion.CART))

        assert outcome.success is True
        assert outcome.booking_id == "991"
        assert outcome.confirmation_code == "GOLF-42"
        assert outcome.message == "Booking completed successfully"
        assert outcome.slot == _slot()

        sent = json.loads(rec.requests[0].content)
        assert rec.requests[0].url.path == f"{COURSE_PATH}/bookings"
        assert sent["teeTimeId"] == "tt-1"
        assert sent["players"] == [{"name": "Alice"}, {"name": "Bob"}]
        assert sent["preferences"] == {"walkingOrCart": "cart", "holes": 18}

    @pytest.mark.parametrize("status", [409, 422])
    async def test_conflict_is_rejected_outcome(self, clean_env: None, status: int) -> None:
        outcome = await _make_provider(_Recorder(httpx.Response(status))).book(_slot(), _request())
        assert outcome.success is False
        assert outcome.slot == _slot()

    async def test_unsuccessful_body_is_rejected_outcome(self, clean_env: None) -> None:
        rec = _Recorder(httpx.Response(200, json={"success": False, "error": "Slot taken"}))
        outcome = await _make_provider(rec).book(_slot(), _request())
        assert outcome.success is False
        assert outcome.error == "Slot taken"

    async def test_other_client_error_propagates(self, clean_env: None) -> None:
        with pytest.raises(ProviderRequestError):
            await _make_provider(_Recorder(httpx.Response(400))).book(_slot(), _request())


class TestPartnerClose:
    async def test_injected_client_left_open(self, clean_env: None) -> None:
        client = _make_client(_Recorder(httpx.Response(200, json={})))
        provider = PartnerApiProvider(_make_settings(), http_client=client)
        await provider.is_healthy()
        await provider.close()
        assert client.is_open
        await client.close()

    async def test_async_context_manager_closes(self, clean_env: None) -> None:
        async with PartnerApiProvider(_make_settings()) as provider:
            assert provider.name == "partner_api"
        await provider.close()
