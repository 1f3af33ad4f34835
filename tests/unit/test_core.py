"""Unit tests for the core layer.

Covers:
- :mod:`autotee.core.models` validation and helpers.
- :mod:`autotee.core.criteria` matching rules.
- :class:`~autotee.core.settings.Settings` loading and derived helpers.
- :mod:`autotee.core.ids`, :mod:`autotee.core.attempt_context` and the
  correlation-aware logging setup.
"""

from __future__ import annotations

import datetime as dt
import json
import logging

import pytest
from pydantic import ValidationError

from autotee.core.attempt_context import AttemptContext, bind_correlation
from autotee.core.criteria import (
    filter_eligible,
    is_eligible,
    matches_locomotion,
    rejection_reason,
)
from autotee.core.exceptions import ConfigError, ProviderRateLimitError, ProviderError
from autotee.core.ids import new_correlation_id, new_job_id
from autotee.core.logging_config import (
    CORRELATION_ID_CTX,
    CorrelationContextFilter,
    JsonFormatter,
    configure_logging,
)
from autotee.core.models import (
    AvailabilityQuery,
    BookingOutcome,
    BookingRequest,
    DayOfWeek,
    Locomotion,
    Preferences,
    QueueMetrics,
    Slot,
)
from autotee.core.settings import EngineConfig, Settings, load_settings

# 2024-06-08 is a Saturday.
SAT = dt.date(2024, 6, 8)
SUN = dt.date(2024, 6, 9)
MON = dt.date(2024, 6, 10)


# ---------------------------------------------------------------------------
# Factories / helpers
# ---------------------------------------------------------------------------


def _make_query(**overrides: object) -> AvailabilityQuery:
    fields: dict[str, object] = {
        "start_date": SAT,
        "end_date": dt.date(2024, 6, 15),
        "earliest_time": dt.time(7, 0),
        "latest_time": dt.time(18, 0),
        "days_of_week": frozenset({DayOfWeek.SAT, DayOfWeek.SUN}),
        "party_size": 4,
    }
    fields.update(overrides)
    return AvailabilityQuery(**fields)  # type: ignore[arg-type]


def _make_slot(**overrides: object) -> Slot:
    fields: dict[str, object] = {
        "id": "tt-1",
        "date": SUN,
        "time": dt.time(9, 30),
        "price": 60.0,
        "available_spots": 4,
        "course_name": "Pebble Creek",
        "holes": 18,
    }
    fields.update(overrides)
    return Slot(**fields)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestDayOfWeek:
    def test_from_date(self) -> None:
        assert DayOfWeek.from_date(SAT) is DayOfWeek.SAT
        assert DayOfWeek.from_date(MON) is DayOfWeek.MON

    @pytest.mark.parametrize("raw", ["sat", "Saturday", "SAT", " Sat "])
    def test_parse_variants(self, raw: str) -> None:
        assert DayOfWeek.parse(raw) is DayOfWeek.SAT

    def test_parse_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown weekday"):
            DayOfWeek.parse("someday")


class TestAvailabilityQuery:
    def test_valid_query(self) -> None:
        q = _make_query()
        assert q.party_size == 4
        assert q.preferences.locomotion is Locomotion.EITHER

    def test_start_after_end_rejected(self) -> None:
        with pytest.raises(ValidationError, match="after end_date"):
            _make_query(start_date=MON, end_date=SAT)

    def test_earliest_after_latest_rejected(self) -> None:
        with pytest.raises(ValidationError, match="after latest_time"):
            _make_query(earliest_time=dt.time(18, 0), latest_time=dt.time(7, 0))

    def test_empty_days_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least one day"):
            _make_query(days_of_week=frozenset())

    @pytest.mark.parametrize("size", [0, 7])
    def test_party_size_bounds(self, size: int) -> None:
        with pytest.raises(ValidationError):
            _make_query(party_size=size)

    def test_iter_days_skips_disallowed_weekdays(self) -> None:
        q = _make_query()
        assert list(q.iter_days()) == [SAT, SUN, dt.date(2024, 6, 15)]

    def test_allows_day(self) -> None:
        q = _make_query()
        assert q.allows_day(SUN)
        assert not q.allows_day(MON)
        assert not q.allows_day(dt.date(2024, 6, 16))

    def test_is_frozen(self) -> None:
        q = _make_query()
        with pytest.raises(ValidationError):
            q.party_size = 2  # type: ignore[misc]


class TestSlot:
    def test_label(self) -> None:
        assert _make_slot(time=dt.time(15, 0)).label == "2024-06-09 15:00"

    def test_sort_key_orders_by_date_then_time(self) -> None:
        late_early_day = _make_slot(id="a", date=SUN, time=dt.time(15, 0))
        early_late_day = _make_slot(id="b", date=MON, time=dt.time(9, 0))
        assert late_early_day.sort_key < early_late_day.sort_key

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _make_slot(id="")

    def test_negative_price_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _make_slot(price=-1)

    def test_holes_must_be_nine_or_eighteen(self) -> None:
        with pytest.raises(ValidationError):
            _make_slot(holes=12)


class TestBookingModels:
    def test_request_names_exceeding_party_rejected(self) -> None:
        with pytest.raises(ValidationError, match="exceed party size"):
            BookingRequest(slot_id="tt-1", player_names=("A", "B", "C"), party_size=2)

    def test_request_requires_a_name(self) -> None:
        with pytest.raises(ValidationError):
            BookingRequest(slot_id="tt-1", player_names=(), party_size=2)

    def test_outcome_booked(self) -> None:
        slot = _make_slot()
        out = BookingOutcome.booked(slot, booking_id="b-1", confirmation_code="C-9")
        assert out.success is True
        assert out.slot == slot
        assert out.error is None

    def test_outcome_rejected_message_defaults_to_error(self) -> None:
        out = BookingOutcome.rejected(_make_slot(), "slot taken")
        assert out.success is False
        assert out.message == "slot taken"

    def test_outcome_failed_has_no_slot(self) -> None:
        out = BookingOutcome.failed("timeout")
        assert out.slot is None
        assert out.error == "timeout"

    def test_queue_metrics_as_dict(self) -> None:
        m = QueueMetrics(waiting=1, delayed=2)
        assert m.as_dict() == {"waiting": 1, "active": 0, "completed": 0, "failed": 0, "delayed": 2}


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


class TestCriteria:
    def test_eligible_slot(self) -> None:
        assert is_eligible(_make_slot(), _make_query())

    @pytest.mark.parametrize(
        ("slot_kwargs", "query_kwargs", "reason"),
        [
            ({"date": MON}, {}, "date"),
            ({"date": dt.date(2024, 6, 22)}, {}, "date"),
            ({"time": dt.time(6, 59)}, {}, "time_window"),
            ({"time": dt.time(18, 1)}, {}, "time_window"),
            ({"price": 81.0}, {"preferences": Preferences(max_price=80)}, "price"),
            ({"holes": 9}, {"preferences": Preferences(holes=18)}, "holes"),
            (
                {"walking_allowed": False, "cart_required": True},
                {"preferences": Preferences(locomotion=Locomotion.WALKING)},
                "locomotion",
            ),
            ({"available_spots": 3}, {}, "capacity"),
        ],
    )
    def test_rejection_reasons(
        self, slot_kwargs: dict[str, object], query_kwargs: dict[str, object], reason: str
    ) -> None:
        assert rejection_reason(_make_slot(**slot_kwargs), _make_query(**query_kwargs)) == reason

    def test_window_bounds_are_inclusive(self) -> None:
        q = _make_query(preferences=Preferences(max_price=60))
        assert is_eligible(_make_slot(time=dt.time(7, 0)), q)
        assert is_eligible(_make_slot(time=dt.time(18, 0)), q)
        assert is_eligible(_make_slot(price=60.0), q)

    def test_cart_preference_accepts_included_or_required(self) -> None:
        prefs = Preferences(locomotion=Locomotion.CART)
        assert matches_locomotion(_make_slot(cart_included=True), prefs)
        assert matches_locomotion(_make_slot(cart_required=True), prefs)
        assert not matches_locomotion(_make_slot(), prefs)

    def test_either_accepts_anything(self) -> None:
        prefs = Preferences()
        assert matches_locomotion(_make_slot(walking_allowed=False), prefs)

    def test_filter_preserves_order(self) -> None:
        slots = [
            _make_slot(id="c", time=dt.time(12, 0)),
            _make_slot(id="x", date=MON),
            _make_slot(id="a", time=dt.time(8, 0)),
        ]
        assert [s.id for s in filter_eligible(slots, _make_query())] == ["c", "a"]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, clean_env: None) -> None:
        s = Settings()
        assert s.party_size == 4
        assert s.poll_interval_s == 90
        assert s.max_retries == 5
        assert s.provider_kind is None
        assert s.holes is None
        assert s.browser_min_delay_s == 0.5
        assert s.browser_max_delay_s == 3.0

    def test_csv_env_vars(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DAYS_OF_WEEK", "sat, Sunday")
        monkeypatch.setenv("PLAYER_NAMES", "Alice, Bob")
        s = Settings()
        assert s.days_of_week == [DayOfWeek.SAT, DayOfWeek.SUN]
        assert s.player_names == ["Alice", "Bob"]

    @pytest.mark.parametrize(("raw", "expected"), [("either", None), ("9", 9), ("18", 18)])
    def test_holes_parsing(
        self, clean_env: None, monkeypatch: pytest.MonkeyPatch, raw: str, expected: int | None
    ) -> None:
        monkeypatch.setenv("HOLES", raw)
        assert Settings().holes == expected

    def test_blank_max_price_is_none(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_PRICE", "")
        assert Settings().max_price is None

    @pytest.mark.parametrize("value", [10, 7200])
    def test_poll_interval_bounds(self, clean_env: None, value: int) -> None:
        with pytest.raises(ConfigError):
            load_settings(poll_interval_s=value)

    def test_max_retries_bounds(self, clean_env: None) -> None:
        with pytest.raises(ConfigError):
            load_settings(max_retries=11)

    def test_invalid_log_level(self, clean_env: None) -> None:
        with pytest.raises(ConfigError):
            load_settings(log_level="LOUD")

    def test_partner_wins_over_web(self, clean_env: None) -> None:
        s = Settings(
            partner_api_token="t",
            partner_org_id="1",
            partner_facility_id="2",
            partner_course_id="3",
            web_email="a@b.c",
            web_password="pw",
        )
        assert s.provider_kind == "partner_api"

    def test_partial_partner_credentials_fall_back_to_web(self, clean_env: None) -> None:
        s = Settings(partner_api_token="t", web_email="a@b.c", web_password="pw")
        assert s.partner_configured is False
        assert s.provider_kind == "web"

    def test_channel_flags(self, clean_env: None) -> None:
        s = Settings(pushover_token="t", pushover_user="u", telegram_bot_token="x")
        assert s.pushover_configured
        assert not s.telegram_configured
        assert not s.email_configured

    def test_availability_query_default_window(self, clean_env: None) -> None:
        s = Settings(date_window_days=7, days_of_week="Sat,Sun", max_price=80)
        q = s.to_availability_query(today=SAT)
        assert q.start_date == SAT
        assert q.end_date == dt.date(2024, 6, 15)
        assert q.days_of_week == frozenset({DayOfWeek.SAT, DayOfWeek.SUN})
        assert q.preferences.max_price == 80

    def test_inverted_date_window_is_config_error(self, clean_env: None) -> None:
        s = Settings(date_window_start=MON, date_window_end=SAT)
        with pytest.raises(ConfigError, match="booking window"):
            s.to_availability_query()

    def test_engine_config_requires_players(self, clean_env: None) -> None:
        with pytest.raises(ConfigError, match="PLAYER_NAMES"):
            Settings().to_engine_config(today=SAT)

    def test_engine_config_snapshot(self, clean_env: None) -> None:
        s = Settings(player_names="Alice,Bob", party_size=2, max_retries=3, poll_interval_s=60)
        cfg = s.to_engine_config(today=SAT)
        assert cfg.player_names == ("Alice", "Bob")
        assert cfg.max_attempts == 3
        assert cfg.poll_interval_s == 60.0

    def test_engine_config_rolls_unset_start(self, clean_env: None) -> None:
        cfg = Settings(player_names="Alice", party_size=2).to_engine_config(today=SAT)
        assert cfg.rolling_start is True
        assert cfg.rolling_days == 7
        q = cfg.query_for(MON)
        assert q.start_date == MON
        assert q.end_date == dt.date(2024, 6, 17)
        assert q.party_size == 2

    def test_engine_config_fixed_window_does_not_roll(self, clean_env: None) -> None:
        s = Settings(
            player_names="Alice",
            party_size=2,
            date_window_start=SAT,
            date_window_end=dt.date(2024, 6, 15),
        )
        cfg = s.to_engine_config()
        assert cfg.rolling_start is False
        assert cfg.query_for(dt.date(2024, 6, 12)) == cfg.query

    def test_rolling_start_past_fixed_end_is_config_error(self, clean_env: None) -> None:
        s = Settings(player_names="Alice", party_size=2, date_window_end=dt.date(2024, 6, 15))
        cfg = s.to_engine_config(today=SAT)
        assert cfg.rolling_days is None
        assert cfg.query_for(MON).end_date == dt.date(2024, 6, 15)
        with pytest.raises(ConfigError, match="window has ended"):
            cfg.query_for(dt.date(2024, 6, 20))

    def test_engine_config_too_many_players(self, clean_env: None) -> None:
        s = Settings(player_names="A,B,C", party_size=2)
        with pytest.raises(ConfigError):
            s.to_engine_config(today=SAT)

    def test_booking_request_from_config(self) -> None:
        cfg = EngineConfig(query=_make_query(party_size=2), player_names=("Alice",))
        req = cfg.booking_request(_make_slot(id="tt-7"))
        assert req.slot_id == "tt-7"
        assert req.party_size == 2
        assert req.player_names == ("Alice",)


# ---------------------------------------------------------------------------
# Exceptions / ids / context / logging
# ---------------------------------------------------------------------------


class TestExceptions:
    def test_provider_error_prefix(self) -> None:
        assert str(ProviderError("partner_api", "boom")) == "[partner_api] boom"

    def test_rate_limit_carries_retry_after(self) -> None:
        exc = ProviderRateLimitError("partner_api", retry_after=12.0)
        assert exc.retry_after == 12.0
        assert "retry after 12.0s" in str(exc)


class TestIds:
    def test_job_ids_unique_and_prefixed(self) -> None:
        ids = {new_job_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("job-") for i in ids)

    def test_correlation_id_shape(self) -> None:
        cid = new_correlation_id()
        assert cid.startswith("c-")
        assert len(cid) == 10


class TestAttemptContext:
    def test_is_last_attempt(self) -> None:
        assert AttemptContext("j", "c", attempt=3, max_attempts=3).is_last_attempt
        assert not AttemptContext("j", "c", attempt=2, max_attempts=3).is_last_attempt

    def test_bind_correlation_sets_and_restores(self) -> None:
        ctx = AttemptContext("job-1", "c-abc")
        assert CORRELATION_ID_CTX.get() == "-"
        with bind_correlation(ctx):
            assert CORRELATION_ID_CTX.get() == "c-abc"
        assert CORRELATION_ID_CTX.get() == "-"

    def test_bind_correlation_restores_after_error(self) -> None:
        with pytest.raises(RuntimeError), bind_correlation(AttemptContext("j", "c-x")):
            raise RuntimeError("boom")
        assert CORRELATION_ID_CTX.get() == "-"


class TestLogging:
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("autotee.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)

    def test_filter_injects_correlation_id(self) -> None:
        record = self._record()
        with bind_correlation(AttemptContext("j", "c-1234")):
            CorrelationContextFilter().filter(record)
        assert record.correlation_id == "c-1234"  # type: ignore[attr-defined]

    def test_json_formatter_shape(self) -> None:
        record = self._record()
        record.event = "tick_start"
        record.slot_id = "tt-1"
        with bind_correlation(AttemptContext("j", "c-1234")):
            payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["event"] == "tick_start"
        assert payload["correlation_id"] == "c-1234"
        assert payload["extra"] == {"slot_id": "tt-1"}
        assert payload["ts"].endswith("Z")

    def test_json_formatter_without_event(self) -> None:
        payload = json.loads(JsonFormatter().format(self._record()))
        assert payload["event"] is None
        assert payload["correlation_id"] == "-"
        assert "exc_info" not in payload

    def test_invalid_level_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
            configure_logging(level="CHATTY", force=True)

    def test_invalid_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
            configure_logging(level="INFO", fmt="xml", force=True)
