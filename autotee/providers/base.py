"""Provider interface contract for every reservation backend.

Every backend, whether it speaks a documented REST API or is driven through
its web front end with a real browser, must subclass :class:`BookingProvider`
and implement its five operations.  The scheduler only ever talks to this
contract, so both variants behave identically from its point of view.

Contract
--------
* :meth:`authenticate` establishes or renews the backend session.
* :meth:`is_healthy` is a cheap probe.  It never raises and never runs a full
  availability scan.
* :meth:`find_availability` returns only slots that pass
  :func:`autotee.core.criteria.filter_eligible` for the query.
* :meth:`book` returns a :class:`~autotee.core.models.BookingOutcome`; a
  backend that declines the booking yields ``success=False`` rather than an
  exception.
* :meth:`close` releases resources, is idempotent and never raises.

Only :class:`~autotee.core.exceptions.ProviderError` subclasses may escape a
provider.  Raw ``httpx`` or Playwright exceptions are translated at the
provider boundary.

Typical usage::

    async with PartnerApiProvider(...) as provider:
        await provider.authenticate()
        slots = await provider.find_availability(query)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar

from autotee.core.models import AvailabilityQuery, BookingOutcome, BookingRequest, Slot

__all__ = ["BookingProvider"]

logger = logging.getLogger(__name__)


class BookingProvider(ABC):
    """Abstract base for all reservation backends.

    Attributes:
        name: Short identifier used in logs and in
            :class:`~autotee.core.exceptions.ProviderError` messages.
    """

    name: ClassVar[str]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this provider.

        The default implementation is a no-op.
        """

    async def __aenter__(self) -> BookingProvider:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def authenticate(self) -> None:
        """Establish or renew the authenticated session.

        Raises:
            ProviderAuthError: Credentials were rejected.
            ProviderNotFoundError: The configured course does not exist.
            ProviderTransportError: The backend could not be reached.
        """

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Return ``True`` if the provider can serve requests right now."""

    @abstractmethod
    async def find_availability(self, query: AvailabilityQuery) -> list[Slot]:
        """Return the eligible slots for *query*, possibly empty.

        Raises:
            ProviderError: For failures the scheduler must classify.
        """

    @abstractmethod
    async def book(self, slot: Slot, request: BookingRequest) -> BookingOutcome:
        """Attempt to book *slot* for the party described by *request*.

        Returns:
            A successful outcome with the backend's booking id and/or
            confirmation code, or ``success=False`` when the backend declined.

        Raises:
            ProviderError: For transport or authentication failures.
        """
