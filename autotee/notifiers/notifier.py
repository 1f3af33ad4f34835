"""High-level notification entry point.

:class:`Notifier` is the single object the scheduler calls to announce a
booking, a final failure or a health alert.  It renders once per channel
call and fans the send out to every configured channel concurrently with
:func:`asyncio.gather` (``return_exceptions=True``): one channel failing
never prevents another from delivering, and no delivery error ever escapes
to the caller.  Failures are logged per channel and reported back in a
:class:`FanOutResult`.

With zero channels configured every call is a silent no-op.  In dry-run mode
messages are rendered and logged at ``INFO`` instead of being sent.

Typical usage::

    notifier = build_notifier(settings)
    result = await notifier.send_success(outcome, ctx)
    if result.failed:
        ...
    await notifier.close()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from autotee.core import events
from autotee.core.attempt_context import AttemptContext
from autotee.core.models import BookingOutcome
from autotee.core.settings import Settings
from autotee.notifiers.base import NotificationChannel
from autotee.notifiers.formatter import (
    Message,
    render_failure,
    render_health_alert,
    render_success,
)

__all__ = ["FanOutResult", "Notifier", "build_notifier"]

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    """Per-channel outcome of one fan-out.

    Attributes:
        delivered: Names of channels that accepted the message.
        failed: Channel name → error text for channels that did not.
    """

    delivered: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class Notifier:
    """Fan a rendered message out to every configured channel.

    Args:
        channels: Channels to deliver to.  May be empty.
        dry_run: Log messages instead of sending them.
    """

    def __init__(self, channels: Sequence[NotificationChannel] = (), *, dry_run: bool = False) -> None:
        self._channels = list(channels)
        self._dry_run = dry_run

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    @property
    def enabled(self) -> bool:
        return bool(self._channels) or self._dry_run

    async def send_success(
        self, outcome: BookingOutcome, ctx: AttemptContext | None = None
    ) -> FanOutResult:
        return await self._fan_out(render_success(outcome, ctx))

    async def send_failure(
        self,
        error: str,
        ctx: AttemptContext | None = None,
        *,
        last_attempt: datetime | None = None,
    ) -> FanOutResult:
        return await self._fan_out(render_failure(error, ctx, last_attempt=last_attempt))

    async def send_health_alert(self, alert: str) -> FanOutResult:
        return await self._fan_out(render_health_alert(alert))

    async def close(self) -> None:
        for channel in self._channels:
            try:
                await channel.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error closing %s channel: %s", channel.name, exc)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _fan_out(self, message: Message) -> FanOutResult:
        result = FanOutResult()
        if self._dry_run:
            logger.info("[dry-run] Would send %s notification: %s\n%s", message.kind, message.subject, message.text)
            return result
        if not self._channels:
            return result

        outcomes = await asyncio.gather(
            *(channel.deliver(message) for channel in self._channels), return_exceptions=True
        )
        for channel, outcome in zip(self._channels, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                result.failed[channel.name] = str(outcome)
                logger.error(
                    "%s notification via %s failed: %s",
                    message.kind,
                    channel.name,
                    outcome,
                    extra={"event": events.NOTIFY_ERROR},
                )
            else:
                result.delivered.append(channel.name)
                logger.info(
                    "%s notification sent via %s",
                    message.kind,
                    channel.name,
                    extra={"event": events.NOTIFY_SENT},
                )
        return result


def build_notifier(settings: Settings) -> Notifier:
    """Build a :class:`Notifier` with every channel *settings* fully configures."""
    channels: list[NotificationChannel] = []
    if settings.email_configured:
        from autotee.notifiers.email import EmailChannel  # noqa: PLC0415

        channels.append(
            EmailChannel(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                recipient=settings.notify_email_to,
                sender=settings.smtp_from,
                use_ssl=settings.smtp_use_ssl or None,
            )
        )
    if settings.pushover_configured:
        from autotee.notifiers.pushover import PushoverChannel  # noqa: PLC0415

        channels.append(PushoverChannel(token=settings.pushover_token, user=settings.pushover_user))
    if settings.telegram_configured:
        from autotee.notifiers.telegram import TelegramChannel  # noqa: PLC0415

        channels.append(
            TelegramChannel(token=settings.telegram_bot_token, chat_id=settings.telegram_chat_id)
        )

    if channels:
        logger.info("Notification channels: %s", ", ".join(c.name for c in channels))
    else:
        logger.info("No notification channels configured; notifications disabled")
    return Notifier(channels, dry_run=settings.notify_dry_run)
