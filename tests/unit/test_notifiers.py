"""Unit tests for the notification layer.

Covers:
- Message rendering in :mod:`autotee.notifiers.formatter`.
- :class:`~autotee.notifiers.notifier.Notifier` fan-out semantics.
- Email, Pushover and Telegram channels against patched transports.
- :func:`~autotee.notifiers.notifier.build_notifier` channel selection.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import smtplib
from typing import ClassVar
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from autotee.core.attempt_context import AttemptContext
from autotee.core.exceptions import (
    EmailError,
    NotificationError,
    PushoverError,
    TelegramError,
)
from autotee.core.models import BookingOutcome, Slot
from autotee.core.settings import Settings
from autotee.notifiers.base import NotificationChannel
from autotee.notifiers.email import EmailChannel
from autotee.notifiers.formatter import (
    Message,
    MessageKind,
    escape_mdv2,
    render_failure,
    render_health_alert,
    render_success,
)
from autotee.notifiers.notifier import Notifier, build_notifier
from autotee.notifiers.pushover import PushoverChannel
from autotee.notifiers.telegram import TelegramChannel

NOW = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.UTC)


# ---------------------------------------------------------------------------
# Factories / helpers
# ---------------------------------------------------------------------------


def _outcome() -> BookingOutcome:
    slot = Slot(
        id="tt-9",
        date=dt.date(2024, 6, 9),
        time=dt.time(15, 0),
        price=65.0,
        available_spots=4,
        course_name="Pebble Creek",
        holes=18,
    )
    return BookingOutcome.booked(slot, booking_id="991", confirmation_code="GOLF-42")


def _ctx(attempt: int = 5, max_attempts: int = 5) -> AttemptContext:
    return AttemptContext("job-1", "c-12345678", attempt=attempt, max_attempts=max_attempts)


class _FakeChannel(NotificationChannel):
    name: ClassVar[str] = "fake"

    def __init__(self, name: str, error: Exception | None = None) -> None:
        self.name = name  # type: ignore[misc]
        self.error = error
        self.delivered: list[Message] = []
        self.closed = False

    async def deliver(self, message: Message) -> None:
        if self.error is not None:
            raise self.error
        self.delivered.append(message)

    async def close(self) -> None:
        self.closed = True


class _Recorder:
    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class TestFormatter:
    def test_success_message(self) -> None:
        msg = render_success(_outcome(), _ctx(), now=NOW)
        assert msg.kind is MessageKind.SUCCESS
        assert msg.subject == "✅ Tee Time Booked Successfully!"
        assert msg.text == (
            "Tee time booked at Pebble Creek!\n"
            "Sunday, June 9, 2024 at 15:00\n"
            "18 holes - $65.00\n"
            "Confirmation: GOLF-42"
        )
        assert "c-12345678" in msg.html
        assert "2024-06-01 12:00:00 UTC" in msg.html

    def test_success_falls_back_to_booking_id(self) -> None:
        outcome = BookingOutcome.booked(_outcome().slot, booking_id="991")  # type: ignore[arg-type]
        assert "Confirmation: 991" in render_success(outcome).text

    def test_success_without_slot(self) -> None:
        msg = render_success(BookingOutcome(success=True))
        assert msg.text.endswith("Confirmation: N/A")

    def test_failure_message_includes_attempts(self) -> None:
        msg = render_failure("[partner_api] HTTP 503", _ctx(), last_attempt=NOW)
        assert msg.kind is MessageKind.FAILURE
        assert msg.subject == "❌ Tee Time Booking Failed"
        assert msg.text == "Tee time booking failed: [partner_api] HTTP 503\nAttempts: 5/5"

    def test_html_is_escaped(self) -> None:
        msg = render_failure("<script>alert(1)</script>")
        assert "<script>" not in msg.html
        assert "&lt;script&gt;" in msg.html

    def test_health_alert(self) -> None:
        msg = render_health_alert("Engine restarted", now=NOW)
        assert msg.kind is MessageKind.HEALTH
        assert msg.text == "Engine restarted"

    def test_escape_mdv2(self) -> None:
        assert escape_mdv2("07:30 - $65.00!") == "07:30 \\- $65\\.00\\!"


# ---------------------------------------------------------------------------
# Notifier fan-out
# ---------------------------------------------------------------------------


class TestNotifier:
    async def test_zero_channels_is_noop(self) -> None:
        notifier = Notifier()
        result = await notifier.send_success(_outcome())
        assert result.ok
        assert result.delivered == []
        assert notifier.enabled is False

    async def test_partial_failure_does_not_block_other_channels(self) -> None:
        good = _FakeChannel("good")
        bad = _FakeChannel("bad", error=NotificationError("smtp down"))
        notifier = Notifier([bad, good])

        result = await notifier.send_failure("boom", _ctx())

        assert result.delivered == ["good"]
        assert result.failed == {"bad": "smtp down"}
        assert not result.ok
        assert len(good.delivered) == 1
        assert good.delivered[0].kind is MessageKind.FAILURE

    async def test_unexpected_channel_error_is_contained(self) -> None:
        notifier = Notifier([_FakeChannel("odd", error=RuntimeError("bug"))])
        result = await notifier.send_health_alert("hello")
        assert result.failed == {"odd": "bug"}

    async def test_every_channel_receives_same_message(self) -> None:
        a, b = _FakeChannel("a"), _FakeChannel("b")
        await Notifier([a, b]).send_success(_outcome(), _ctx())
        assert a.delivered == b.delivered

    async def test_dry_run_sends_nothing(self) -> None:
        channel = _FakeChannel("a")
        notifier = Notifier([channel], dry_run=True)
        result = await notifier.send_success(_outcome())
        assert channel.delivered == []
        assert result.delivered == []
        assert notifier.enabled is True

    async def test_cancellation_propagates(self) -> None:
        notifier = Notifier([_FakeChannel("a", error=asyncio.CancelledError())])
        with pytest.raises(asyncio.CancelledError):
            await notifier.send_health_alert("x")

    async def test_close_is_best_effort(self) -> None:
        broken = _FakeChannel("broken")
        broken.close = MagicMock(side_effect=RuntimeError("nope"))  # type: ignore[method-assign]
        fine = _FakeChannel("fine")
        await Notifier([broken, fine]).close()
        assert fine.closed is True

    async def test_channel_convenience_methods(self) -> None:
        channel = _FakeChannel("a")
        await channel.send_success(_outcome())
        await channel.send_failure("x", last_attempt=NOW)
        await channel.send_health_alert("y")
        assert [m.kind for m in channel.delivered] == [
            MessageKind.SUCCESS,
            MessageKind.FAILURE,
            MessageKind.HEALTH,
        ]


class TestBuildNotifier:
    def test_no_channels(self, clean_env: None) -> None:
        assert build_notifier(Settings()).channels == []

    def test_all_channels(self, clean_env: None) -> None:
        settings = Settings(
            smtp_user="me@example.com",
            smtp_password="app-pw",
            notify_email_to="me@example.com",
            pushover_token="tok",
            pushover_user="usr",
            telegram_bot_token="123:abc",
            telegram_chat_id="42",
        )
        notifier = build_notifier(settings)
        assert [c.name for c in notifier.channels] == ["email", "pushover", "telegram"]

    def test_dry_run_flag(self, clean_env: None) -> None:
        assert build_notifier(Settings(notify_dry_run=True)).enabled is True


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


class TestEmailChannel:
    def _channel(self, **overrides: object) -> EmailChannel:
        fields: dict[str, object] = {
            "host": "smtp.example.com",
            "port": 587,
            "username": "me@example.com",
            "password": "app-pw",
            "recipient": "you@example.com",
        }
        fields.update(overrides)
        return EmailChannel(**fields)  # type: ignore[arg-type]

    def test_missing_credentials(self) -> None:
        with pytest.raises(ValueError):
            self._channel(password="")

    def test_build_message(self) -> None:
        mail = self._channel().build_message(render_success(_outcome(), now=NOW))
        assert mail["Subject"] == "✅ Tee Time Booked Successfully!"
        assert mail["From"] == "me@example.com"
        assert mail["To"] == "you@example.com"
        assert mail.is_multipart()

    async def test_starttls_delivery(self) -> None:
        with patch("autotee.notifiers.email.smtplib.SMTP") as smtp_cls:
            await self._channel().deliver(render_health_alert("hi"))
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("me@example.com", "app-pw")
        smtp.send_message.assert_called_once()

    async def test_implicit_tls_on_port_465(self) -> None:
        with patch("autotee.notifiers.email.smtplib.SMTP_SSL") as ssl_cls:
            await self._channel(port=465).deliver(render_health_alert("hi"))
        ssl_cls.return_value.__enter__.return_value.send_message.assert_called_once()

    async def test_smtp_failure_is_email_error(self) -> None:
        with patch("autotee.notifiers.email.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            with pytest.raises(EmailError, match="smtp.example.com:587"):
                await self._channel().deliver(render_health_alert("hi"))


# ---------------------------------------------------------------------------
# Pushover
# ---------------------------------------------------------------------------


class TestPushoverChannel:
    def _channel(self, rec: _Recorder) -> PushoverChannel:
        return PushoverChannel(
            token="tok", user="usr", transport=httpx.MockTransport(rec), wait=lambda rs: 0
        )

    async def test_delivers_form_payload(self) -> None:
        rec = _Recorder(httpx.Response(200, json={"status": 1, "request": "r-1"}))
        channel = self._channel(rec)
        await channel.deliver(render_failure("boom"))
        await channel.close()

        form = parse_qs(rec.requests[0].content.decode())
        assert rec.requests[0].url.path == "/1/messages.json"
        assert form["token"] == ["tok"]
        assert form["title"] == ["❌ Booking Failed"]
        assert form["sound"] == ["siren"]
        assert form["priority"] == ["1"]

    async def test_rejected_payload(self) -> None:
        rec = _Recorder(httpx.Response(400, json={"status": 0, "errors": ["user identifier is invalid"]}))
        with pytest.raises(PushoverError, match="user identifier is invalid"):
            await self._channel(rec).deliver(render_health_alert("x"))
        assert len(rec.requests) == 1

    async def test_server_error_retried(self) -> None:
        rec = _Recorder(httpx.Response(502), httpx.Response(200, json={"status": 1}))
        await self._channel(rec).deliver(render_health_alert("x"))
        assert len(rec.requests) == 2

    async def test_transport_failure(self) -> None:
        rec = _Recorder(httpx.ConnectError("refused"))
        with pytest.raises(PushoverError, match="transport failure"):
            await self._channel(rec).deliver(render_health_alert("x"))
        assert len(rec.requests) == 3

    def test_requires_credentials(self) -> None:
        with pytest.raises(ValueError):
            PushoverChannel(token="", user="usr")


# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------


class TestTelegramChannel:
    def _channel(self, rec: _Recorder, max_attempts: int = 4) -> TelegramChannel:
        return TelegramChannel(
            token="123:abc",
            chat_id="42",
            max_attempts=max_attempts,
            transport=httpx.MockTransport(rec),
            wait=lambda rs: 0,
        )

    async def test_sends_markdown(self) -> None:
        rec = _Recorder(httpx.Response(200, json={"ok": True, "result": {}}))
        await self._channel(rec).deliver(render_health_alert("Engine restarted."))

        request = rec.requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/bot123:abc/sendMessage"
        assert body["chat_id"] == "42"
        assert body["parse_mode"] == "MarkdownV2"
        assert body["text"].endswith("Engine restarted\\.")

    async def test_rate_limit_retried(self) -> None:
        rec = _Recorder(
            httpx.Response(429, json={"ok": False, "parameters": {"retry_after": 3}}),
            httpx.Response(200, json={"ok": True}),
        )
        await self._channel(rec).deliver(render_health_alert("x"))
        assert len(rec.requests) == 2

    async def test_bad_request_not_retried(self) -> None:
        rec = _Recorder(httpx.Response(400, json={"ok": False, "description": "chat not found"}))
        with pytest.raises(TelegramError, match="chat not found") as exc_info:
            await self._channel(rec).deliver(render_health_alert("x"))
        assert exc_info.value.status_code == 400
        assert len(rec.requests) == 1

    async def test_ok_false_is_error(self) -> None:
        rec = _Recorder(httpx.Response(200, json={"ok": False, "description": "blocked"}))
        with pytest.raises(TelegramError, match="blocked"):
            await self._channel(rec).deliver(render_health_alert("x"))

    async def test_server_errors_exhaust_budget(self) -> None:
        rec = _Recorder(httpx.Response(500))
        with pytest.raises(TelegramError):
            await self._channel(rec, max_attempts=2).deliver(render_health_alert("x"))
        assert len(rec.requests) == 2

    def test_render_escapes(self) -> None:
        text = TelegramChannel.render(render_failure("HTTP 503 (server)"))
        assert text.startswith("*❌ Tee Time Booking Failed*")
        assert "HTTP 503 \\(server\\)" in text
