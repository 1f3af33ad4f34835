"""Pushover push-notification channel.

POSTs to ``https://api.pushover.net/1/messages.json`` with high priority.
Transport errors and 5xx responses are retried with :mod:`tenacity`; a
response whose JSON ``status`` is not ``1`` is an application error and is
raised immediately as :class:`~autotee.core.exceptions.PushoverError`.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from autotee.core.exceptions import PushoverError
from autotee.notifiers.base import NotificationChannel
from autotee.notifiers.formatter import Message, MessageKind

__all__ = ["PushoverChannel"]

logger = logging.getLogger(__name__)

_PUSHOVER_BASE_URL: Final[str] = "https://api.pushover.net"
_MESSAGES_PATH: Final[str] = "/1/messages.json"

#: High priority: bypasses the recipient's quiet hours.
_PRIORITY: Final[int] = 1

#: Notification sound per message kind.
_SOUNDS: Final[dict[MessageKind, str]] = {
    MessageKind.SUCCESS: "success",
    MessageKind.FAILURE: "siren",
    MessageKind.HEALTH: "persistent",
}

_DEFAULT_MAX_ATTEMPTS: Final[int] = 3
_DEFAULT_TIMEOUT: Final[float] = 10.0


class _RetryableServerError(PushoverError):
    """Internal sentinel raised on 5xx to trigger a tenacity retry."""


def _pushover_wait(retry_state: RetryCallState) -> float:
    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), 10.0)
    return base + random.uniform(0.0, base)


class PushoverChannel(NotificationChannel):
    """Deliver notifications through the Pushover API.

    Args:
        token: Application API token.
        user: User or group key.
        max_attempts: Total send attempts including the first.
        transport: Optional httpx transport, used by tests.
        wait: Optional tenacity wait callable, used by tests.
    """

    name = "pushover"

    def __init__(
        self,
        *,
        token: str,
        user: str,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        wait: Callable[[RetryCallState], float] | None = None,
    ) -> None:
        if not token or not user:
            raise ValueError("PushoverChannel requires a token and a user key.")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")
        self._token = token
        self._user = user
        self._max_attempts = max_attempts
        self._wait = wait or _pushover_wait
        self._http = httpx.AsyncClient(
            base_url=_PUSHOVER_BASE_URL, timeout=timeout, transport=transport
        )

    def payload(self, message: Message) -> dict[str, object]:
        return {
            "token": self._token,
            "user": self._user,
            "title": message.title,
            "message": message.text,
            "priority": _PRIORITY,
            "sound": _SOUNDS[message.kind],
        }

    async def deliver(self, message: Message) -> None:
        payload = self.payload(message)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "Pushover attempt %d/%d failed (%s), retrying",
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
            )

        try:
            async for attempt in AsyncRetrying(
                wait=self._wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type((_RetryableServerError, httpx.TransportError)),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    await self._single_attempt(payload)
        except httpx.TransportError as exc:
            raise PushoverError(f"transport failure: {exc}") from exc

    async def _single_attempt(self, payload: dict[str, object]) -> None:
        response = await self._http.post(_MESSAGES_PATH, data=payload)
        if response.status_code >= 500:
            raise _RetryableServerError(
                f"Transient server error: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise PushoverError(
                f"unparseable response: {response.text[:200]}", status_code=response.status_code
            ) from exc
        if response.status_code != 200 or body.get("status") != 1:
            errors = body.get("errors") or [f"status={body.get('status')}"]
            raise PushoverError("; ".join(str(e) for e in errors), status_code=response.status_code)
        logger.debug("Pushover accepted message (request=%s)", body.get("request"))

    async def close(self) -> None:
        if not self._http.is_closed:
            await self._http.aclose()
