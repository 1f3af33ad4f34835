"""Telegram Bot API channel.

:class:`TelegramChannel` wraps the ``sendMessage`` endpoint:

* one keep-alive :class:`httpx.AsyncClient` with an explicit timeout budget;
* retries with capped exponential back-off via :mod:`tenacity`;
* ``retry_after`` honouring on HTTP 429;
* ``"ok": false`` bodies on HTTP 200 surfaced as errors.

Message text is sent as MarkdownV2, escaped with
:func:`~autotee.notifiers.formatter.escape_mdv2`.
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

from autotee.core.exceptions import TelegramError, TelegramRateLimitError
from autotee.notifiers.base import NotificationChannel
from autotee.notifiers.formatter import Message, escape_mdv2

__all__ = ["TelegramChannel"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_TELEGRAM_BASE_URL: Final[str] = "https://api.telegram.org"

_DEFAULT_TIMEOUT: Final[httpx.Timeout] = httpx.Timeout(10.0, connect=5.0)

#: Default total send attempts (1 initial + 3 retries).
_DEFAULT_MAX_ATTEMPTS: Final[int] = 4

#: Hard cap on exponential back-off base (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0


class _RetryableServerError(TelegramError):
    """Internal sentinel raised on 5xx to trigger a tenacity retry."""


def _telegram_wait(retry_state: RetryCallState) -> float:
    """Honour a 429 ``retry_after`` exactly, else back off exponentially with jitter."""
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()
        if isinstance(exc, TelegramRateLimitError) and exc.retry_after > 0:
            return exc.retry_after
    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    return base + random.uniform(0.0, min(base, 5.0))


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class TelegramChannel(NotificationChannel):
    """Deliver notifications to a Telegram chat.

    Args:
        token: Bot token as provided by @BotFather.
        chat_id: Destination chat identifier.
        max_attempts: Total send attempts including the initial try.
        transport: Optional httpx transport, used by tests.
        wait: Optional tenacity wait callable, used by tests.

    Raises:
        ValueError: If ``token``, ``chat_id`` or ``max_attempts`` are invalid.
    """

    name = "telegram"

    def __init__(
        self,
        *,
        token: str,
        chat_id: str,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
        wait: Callable[[RetryCallState], float] | None = None,
    ) -> None:
        if not token:
            raise ValueError("TelegramChannel requires a non-empty token.")
        if not chat_id:
            raise ValueError("TelegramChannel requires a non-empty chat_id.")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")
        self._token = token
        self._chat_id = chat_id
        self._max_attempts = max_attempts
        self._wait = wait or _telegram_wait
        self._http = httpx.AsyncClient(
            base_url=_TELEGRAM_BASE_URL,
            timeout=_DEFAULT_TIMEOUT,
            transport=transport,
        )

    @staticmethod
    def render(message: Message) -> str:
        return f"*{escape_mdv2(message.subject)}*\n\n{escape_mdv2(message.text)}"

    async def deliver(self, message: Message) -> None:
        text = self.render(message)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "Telegram send attempt %d/%d failed (%s), retrying",
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
            )

        try:
            async for attempt in AsyncRetrying(
                wait=self._wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type(
                    (TelegramRateLimitError, _RetryableServerError, httpx.TransportError)
                ),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    await self._single_attempt(text)
        except httpx.TransportError as exc:
            raise TelegramError(f"transport failure: {exc}") from exc

    async def _single_attempt(self, text: str) -> None:
        endpoint = f"/bot{self._token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }
        response = await self._http.post(endpoint, json=payload)
        logger.debug("Telegram response: HTTP %d", response.status_code)

        if response.status_code == 200:
            _assert_telegram_ok(response)
            return
        if response.status_code == 429:
            raise TelegramRateLimitError(retry_after=_parse_retry_after(response))
        if response.status_code >= 500:
            raise _RetryableServerError(
                f"Transient server error: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        raise TelegramError(_extract_description(response), status_code=response.status_code)

    async def close(self) -> None:
        if not self._http.is_closed:
            await self._http.aclose()


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------


def _assert_telegram_ok(response: httpx.Response) -> None:
    try:
        body = response.json()
    except ValueError as exc:
        raise TelegramError(f"Could not parse Telegram 200 response: {exc}", status_code=200) from exc
    if not body.get("ok"):
        raise TelegramError(
            f"Telegram ok=false: {body.get('description', '(no description)')}",
            status_code=200,
        )


def _parse_retry_after(response: httpx.Response) -> float:
    """Read ``parameters.retry_after`` from the body, then the header; default 1 s."""
    try:
        ra = response.json().get("parameters", {}).get("retry_after")
        if ra is not None:
            return max(float(ra), 1.0)
    except ValueError:
        pass
    header = response.headers.get("retry-after", "")
    try:
        return max(float(header), 1.0) if header else 1.0
    except ValueError:
        return 1.0


def _extract_description(response: httpx.Response) -> str:
    try:
        return str(response.json().get("description") or f"HTTP {response.status_code}")
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
