"""Async HTTP client for the partner booking API.

Wraps :class:`httpx.AsyncClient` with:

* **Bearer authentication**: the token is attached to every request as an
  ``Authorization`` header and is never logged.
* **Automatic retries**: exponential back-off with random jitter via
  :mod:`tenacity`, applied to network errors, 5xx and 429 only.
* **Rate-limit awareness**: HTTP 429 honours the ``Retry-After`` header (or
  JSON body) between attempts, then raises
  :class:`~autotee.core.exceptions.ProviderRateLimitError` once retries are
  exhausted.
* **Structured error mapping**: every outcome other than 2xx becomes a
  :class:`~autotee.core.exceptions.ProviderError` subclass.  Raw ``httpx``
  exceptions never escape this module.

    ======================  ==================================  =========
    Outcome                 Raised                              Retried
    ======================  ==================================  =========
    401, 403                ProviderAuthError                   no
    404                     ProviderNotFoundError               no
    429                     ProviderRateLimitError              yes
    5xx, network, timeout   ProviderTransportError              yes
    other 4xx               ProviderRequestError                no
    ======================  ==================================  =========

Typical usage::

    async with PartnerHttpClient(
        base_url="https://api.lightspeedgolf.com/v1",
        token="…",
        provider="partner_api",
    ) as client:
        response = await client.get("/organizations/42")
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from autotee.core.exceptions import (
    ProviderAuthError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderTransportError,
)

__all__ = ["PartnerHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: HTTP status codes that signal a transient server-side fault (safe to retry).
_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({500, 502, 503, 504})

#: Status codes that mean the credentials are wrong or lack permission.
_AUTH_STATUS: Final[frozenset[int]] = frozenset({401, 403})

#: Default total request timeout in seconds.
_DEFAULT_TIMEOUT: Final[float] = 30.0

#: Default total attempts (1 initial + 2 retries).
_DEFAULT_MAX_ATTEMPTS: Final[int] = 3

#: Hard cap on exponential back-off base before adding jitter (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0

#: Upper bound on jitter added on top of the exponential base (seconds).
_MAX_BACKOFF_JITTER: Final[float] = 5.0

_USER_AGENT: Final[str] = "autotee/0.1.0"


# ---------------------------------------------------------------------------
# Internal sentinel exception
# ---------------------------------------------------------------------------


class _RetryableServerError(ProviderTransportError):
    """Internal: signals a 5xx status for tenacity to retry.

    Escapes the client only as a :class:`ProviderTransportError` once the
    retry budget is exhausted.
    """


# ---------------------------------------------------------------------------
# Retry wait strategy
# ---------------------------------------------------------------------------


def _provider_wait(retry_state: RetryCallState) -> float:
    """Compute the wait duration before the next retry attempt.

    * :class:`ProviderRateLimitError` with a positive ``retry_after``:
      honour that value exactly.
    * All other retryable errors: exponential back-off with random jitter,
      capped at :data:`_MAX_BACKOFF_BASE` seconds.
    """
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()
        if (
            isinstance(exc, ProviderRateLimitError)
            and exc.retry_after is not None
            and exc.retry_after > 0
        ):
            logger.debug("Honouring Retry-After of %.1f s", exc.retry_after)
            return exc.retry_after

    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    jitter = random.uniform(0.0, min(base, _MAX_BACKOFF_JITTER))
    return base + jitter


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class PartnerHttpClient:
    """Retrying, error-classifying HTTP client for one partner API host.

    Args:
        base_url: API root prepended to every request path.
        token: Bearer token.
        provider: Provider name used in raised errors and log lines.
        timeout: Total per-request timeout in seconds.
        max_attempts: Total attempts including the initial try (≥ 1).
        transport: Optional custom transport (``httpx.MockTransport`` in tests).
        wait: Optional tenacity wait callable replacing the default back-off.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        provider: str,
        timeout: float = _DEFAULT_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
        wait: Callable[[RetryCallState], float] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._provider = provider
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, 10.0))
        self._max_attempts = max_attempts
        self._transport = transport
        self._wait = wait or _provider_wait
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PartnerHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public request methods
    # ------------------------------------------------------------------

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        """Perform an HTTP GET with retries.

        Args:
            path: Request path relative to ``base_url``.
            params: Query-string parameters; ``None`` values are dropped.

        Returns:
            The :class:`httpx.Response` on HTTP 2xx.
        """
        return await self._request_with_retry("GET", path, params=_drop_none(params))

    async def post(self, path: str, *, json: Any | None = None) -> httpx.Response:
        """Perform an HTTP POST with a JSON body and retries.

        Returns:
            The :class:`httpx.Response` on HTTP 2xx.
        """
        return await self._request_with_retry("POST", path, json=json)

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call multiple times."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("PartnerHttpClient session closed.")
        self._http = None

    @property
    def is_open(self) -> bool:
        return self._http is not None and not self._http.is_closed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    "User-Agent": _USER_AGENT,
                },
            )
            logger.debug("PartnerHttpClient session opened (base_url=%r).", self._base_url)
        return self._http

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        retry_types = (ProviderTransportError, httpx.TransportError)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "HTTP %s %s attempt %d/%d failed (%s). Retrying…",
                method,
                path,
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
            )

        response: httpx.Response | None = None
        try:
            async for attempt in AsyncRetrying(
                wait=self._wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type(retry_types),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    response = await self._single_request(method, path, params=params, json=json)
        except httpx.TransportError as exc:
            raise ProviderTransportError(
                self._provider, f"{method} {path} failed: {type(exc).__name__}: {exc}"
            ) from exc

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def _single_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        json: Any | None,
    ) -> httpx.Response:
        """Perform exactly one HTTP request and classify its status.

        Raises:
            ProviderAuthError: On 401/403.
            ProviderNotFoundError: On 404.
            ProviderRateLimitError: On 429.
            _RetryableServerError: On 5xx (internal sentinel).
            ProviderRequestError: On any other non-2xx status.
            httpx.TransportError: Network-level failures (propagated for retry).
        """
        client = await self._ensure_client()
        response = await client.request(method, path, params=params, json=json)

        logger.debug("HTTP %s %s → %d", method, path, response.status_code)

        if response.is_success:
            return response

        status = response.status_code
        if status in _AUTH_STATUS:
            raise ProviderAuthError(
                self._provider,
                f"HTTP {status} on {method} {path}: credentials rejected or access forbidden",
            )
        if status == 404:
            raise ProviderNotFoundError(self._provider, f"HTTP 404 on {method} {path}")
        if status == 429:
            retry_after = _parse_retry_after(response)
            logger.warning("Partner API rate limit on %s %s; retry_after=%.1f s", method, path, retry_after)
            raise ProviderRateLimitError(self._provider, retry_after=retry_after)
        if status in _RETRYABLE_STATUS or status >= 500:
            raise _RetryableServerError(self._provider, f"Transient HTTP {status} on {method} {path}")

        raise ProviderRequestError(
            self._provider,
            f"HTTP {status} on {method} {path}: {response.text[:200]}",
            status_code=status,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _drop_none(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if params is None:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _parse_retry_after(response: httpx.Response) -> float:
    """Extract back-off duration from an HTTP 429 response (always ≥ 1.0 s)."""
    header = response.headers.get("retry-after", "")
    if header:
        try:
            return max(float(header), 1.0)
        except ValueError:
            logger.debug("Could not parse Retry-After header %r.", header)

    try:
        body = response.json()
    except ValueError:
        return 1.0
    if isinstance(body, dict):
        ra = body.get("retryAfter") or body.get("retry_after")
        if ra is not None:
            try:
                return max(float(ra), 1.0)
            except (TypeError, ValueError):
                pass
    return 1.0
