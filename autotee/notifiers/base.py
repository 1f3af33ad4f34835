"""Abstract notification channel.

A channel knows how to deliver one rendered
:class:`~autotee.notifiers.formatter.Message`.  The three typed entry points
(:meth:`NotificationChannel.send_success`, :meth:`~NotificationChannel.send_failure`,
:meth:`~NotificationChannel.send_health_alert`) render through
:mod:`autotee.notifiers.formatter` and then call :meth:`deliver`, so concrete
channels only implement transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import ClassVar

from autotee.core.attempt_context import AttemptContext
from autotee.core.models import BookingOutcome
from autotee.notifiers.formatter import (
    Message,
    render_failure,
    render_health_alert,
    render_success,
)

__all__ = ["NotificationChannel"]


class NotificationChannel(ABC):
    """One outbound notification transport (email, push, chat).

    Subclasses set :attr:`name` and implement :meth:`deliver`, raising a
    :class:`~autotee.core.exceptions.NotificationError` subclass on failure.
    """

    name: ClassVar[str] = "channel"

    async def send_success(
        self, outcome: BookingOutcome, ctx: AttemptContext | None = None
    ) -> None:
        await self.deliver(render_success(outcome, ctx))

    async def send_failure(
        self,
        error: str,
        ctx: AttemptContext | None = None,
        *,
        last_attempt: datetime | None = None,
    ) -> None:
        await self.deliver(render_failure(error, ctx, last_attempt=last_attempt))

    async def send_health_alert(self, alert: str) -> None:
        await self.deliver(render_health_alert(alert))

    @abstractmethod
    async def deliver(self, message: Message) -> None:
        """Send *message* through this channel."""

    async def close(self) -> None:
        """Release transport resources.  Default is a no-op."""
