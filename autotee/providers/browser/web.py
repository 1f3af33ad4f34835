"""Browser-automated provider for the booking website.

Drives a real Chromium session with Playwright because the website offers no
API access.  The provider:

* Logs in interactively, waiting a bounded time (``WEB_TWO_FACTOR_TIMEOUT_S``,
  two minutes by default) for an out-of-band second factor when the site asks
  for one.  A Playwright storage-state file can be configured to reuse a
  previous session.
* Opens the home course, then walks the requested date range one day at a
  time, skipping disallowed weekdays and pausing a random human-scale delay
  between days.
* Extracts slots from the rendered tee time cards.  A day whose extraction
  fails is logged and skipped; the rest of the scan carries on.
* Treats a redirect to the login page, or a course page that will not
  open, as a lost session: the provider reports itself unhealthy so the
  next tick logs in again.
* Translates every Playwright error into a
  :class:`~autotee.core.exceptions.ProviderError` subclass.

Configuration
-------------
``WEB_EMAIL`` / ``WEB_PASSWORD``
    Required for this provider to be selected.
``HOME_COURSE``
    Course name typed into the website's course search.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Final

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from autotee.core import events
from autotee.core.criteria import filter_eligible
from autotee.core.exceptions import BrowserProviderError, ProviderAuthError
from autotee.core.models import (
    AvailabilityQuery,
    BookingOutcome,
    BookingRequest,
    Locomotion,
    Preferences,
    Slot,
)
from autotee.core.settings import Settings
from autotee.providers.base import BookingProvider
from autotee.providers.browser.extract import RawCard, card_to_slot
from autotee.providers.browser.pacing import HumanPacer
from autotee.providers.browser.selectors import DEFAULT_SELECTORS, WebSelectors

__all__ = ["WebProvider"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PROVIDER_NAME: Final[str] = "web"

_NAVIGATION_TIMEOUT_MS: Final[int] = 30_000
_ELEMENT_TIMEOUT_MS: Final[int] = 10_000

_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
_VIEWPORT: Final[dict[str, int]] = {"width": 1366, "height": 768}
_LAUNCH_ARGS: Final[list[str]] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--no-first-run",
]
_HIDE_WEBDRIVER: Final[str] = (
    "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"
)


def _is_login_url(url: str) -> bool:
    lowered = url.lower()
    return "/login" in lowered or "/signin" in lowered


# ---------------------------------------------------------------------------
# Provider class
# ---------------------------------------------------------------------------


class WebProvider(BookingProvider):
    """Booking provider that automates the website with Playwright.

    Args:
        settings: Application settings carrying credentials and pacing.
        selectors: CSS selector table; the defaults match the live site.
        pacer: Human-delay source; built from settings when omitted.
        playwright_factory: Returns an object whose ``start()`` coroutine yields
            a :class:`Playwright` instance.  Replaced in tests.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        settings: Settings,
        *,
        selectors: WebSelectors = DEFAULT_SELECTORS,
        pacer: HumanPacer | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self._email = settings.web_email
        self._password = settings.web_password
        self._base_url = settings.web_base_url.rstrip("/")
        self._headless = settings.web_headless
        self._home_course = settings.home_course
        self._two_factor_timeout_ms = int(settings.web_two_factor_timeout_s * 1000)
        self._storage_state = (
            Path(settings.web_storage_state_path) if settings.web_storage_state_path else None
        )
        self._selectors = selectors
        self._pacer = pacer or HumanPacer(settings.browser_min_delay_s, settings.browser_max_delay_s)
        self._playwright_factory = playwright_factory

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._authenticated = False

    @property
    def login_url(self) -> str:
        return f"{self._base_url}/login"

    @property
    def search_url(self) -> str:
        return f"{self._base_url}/search"

    # ------------------------------------------------------------------
    # BookingProvider interface
    # ------------------------------------------------------------------

    async def authenticate(self) -> None:
        """Log in, waiting for a second factor if the site asks for one.

        Raises:
            ProviderAuthError: Still on the login page after submitting, or
                the second factor was not completed in time.
            BrowserProviderError: The browser could not be launched or the
                login page did not load.
        """
        self._authenticated = False
        page = await self._ensure_page()
        try:
            await page.goto(self.login_url, wait_until="networkidle", timeout=_NAVIGATION_TIMEOUT_MS)
            if not _is_login_url(page.url):
                logger.info("Existing web session is still valid; skipping login form.")
            else:
                await self._submit_login_form(page)
        except PlaywrightError as exc:
            raise BrowserProviderError(PROVIDER_NAME, f"Login flow failed: {exc}") from exc

        if _is_login_url(page.url):
            raise ProviderAuthError(PROVIDER_NAME, "Login failed: still on the login page")

        self._authenticated = True
        logger.info("Logged into booking website", extra={"event": events.PROVIDER_AUTH_OK})
        await self._save_storage_state()

    async def is_healthy(self) -> bool:
        """Browser connected, page open and logged in.  No network traffic."""
        return bool(
            self._authenticated
            and self._browser is not None
            and self._browser.is_connected()
            and self._page is not None
            and not self._page.is_closed()
        )

    async def find_availability(self, query: AvailabilityQuery) -> list[Slot]:
        """Scan the date range day by day and return the eligible slots.

        Raises:
            BrowserProviderError: Not logged in, the course page could not be
                opened, or the site redirected to its login page.  Other
                per-day failures are logged and skipped instead.
        """
        page = self._require_session()
        try:
            await self._open_course(page)
        except BrowserProviderError:
            self._authenticated = False
            raise
        self._check_session(page)

        slots: list[Slot] = []
        scanned = 0
        for day in query.iter_days():
            if scanned:
                await self._pacer.pause()
            scanned += 1
            try:
                day_slots = await self._scan_day(page, day, query)
            except (PlaywrightError, BrowserProviderError) as exc:
                self._check_session(page)
                logger.warning(
                    "Skipping %s: could not read tee times (%s)",
                    day.isoformat(),
                    exc,
                    extra={"event": events.PROVIDER_DAY_SKIPPED},
                )
                continue
            self._check_session(page)
            slots.extend(day_slots)

        eligible = filter_eligible(slots, query)
        logger.info(
            "Web scan: %d day(s), %d slot(s) read, %d eligible",
            scanned,
            len(slots),
            len(eligible),
        )
        return eligible

    async def book(self, slot: Slot, request: BookingRequest) -> BookingOutcome:
        """Click through the booking form for *slot*.

        A missing card, book button or confirmation yields a rejected outcome.

        Raises:
            BrowserProviderError: Any other Playwright failure mid-booking, or
                the session expired.  Either marks the session for renewal.
        """
        page = self._require_session()
        sel = self._selectors
        logger.info("Booking tee time %s (%s) via website", slot.id, slot.label)

        try:
            card = await page.query_selector(f'[data-id="{slot.id}"]') or await page.query_selector(
                f'[id="{slot.id}"]'
            )
            if card is None:
                self._check_session(page)
                return BookingOutcome.rejected(slot, f"Tee time {slot.id} is no longer on the page")

            book_button = await card.query_selector(sel.book_button)
            if book_button is None:
                return BookingOutcome.rejected(slot, f"No book button for tee time {slot.id}")

            await book_button.click()
            await self._pacer.pause()
            await self._fill_players(page, request.player_names)
            await self._select_locomotion(page, request.preferences)

            try:
                await page.wait_for_selector(sel.confirm_booking, timeout=_ELEMENT_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                return BookingOutcome.rejected(slot, "Booking confirmation step did not appear")
            await page.click(sel.confirm_booking)
            await page.wait_for_load_state("networkidle", timeout=_NAVIGATION_TIMEOUT_MS)

            confirmation = await self._text_of(page, sel.confirmation_number)
            message = await self._text_of(page, sel.confirmation_message) or "Booking completed"
        except PlaywrightError as exc:
            self._authenticated = False
            raise BrowserProviderError(PROVIDER_NAME, f"Booking {slot.id} failed: {exc}") from exc

        if confirmation or "success" in message.lower():
            return BookingOutcome.booked(
                slot,
                booking_id=slot.id,
                confirmation_code=confirmation,
                message=message,
            )
        return BookingOutcome.rejected(slot, "Booking confirmation not found", message=message)

    async def close(self) -> None:
        """Close page, context, browser and Playwright, each best-effort."""
        self._authenticated = False
        for label, closer in (
            ("page", self._page.close if self._page else None),
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as exc:  # noqa: BLE001
                logger.debug("Ignoring error while closing %s: %s", label, exc)
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    async def _ensure_page(self) -> Page:
        if self._page is not None and not self._page.is_closed():
            return self._page
        try:
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            if self._browser is None or not self._browser.is_connected():
                self._browser = await self._playwright.chromium.launch(
                    headless=self._headless, args=_LAUNCH_ARGS
                )
            storage_state = (
                str(self._storage_state)
                if self._storage_state is not None and self._storage_state.exists()
                else None
            )
            self._context = await self._browser.new_context(
                user_agent=_USER_AGENT,
                viewport=_VIEWPORT,
                locale="en-US",
                storage_state=storage_state,
            )
            await self._context.add_init_script(_HIDE_WEBDRIVER)
            self._page = await self._context.new_page()
        except PlaywrightError as exc:
            raise BrowserProviderError(PROVIDER_NAME, f"Browser launch failed: {exc}") from exc
        logger.debug("Browser session opened (headless=%s, reused_state=%s)", self._headless, storage_state is not None)
        return self._page

    def _require_session(self) -> Page:
        if not self._authenticated or self._page is None:
            raise BrowserProviderError(PROVIDER_NAME, "Browser session is not authenticated")
        return self._page

    def _check_session(self, page: Page) -> None:
        """Raise if *page* was redirected to the login page."""
        if not _is_login_url(str(page.url)):
            return
        self._authenticated = False
        logger.warning(
            "Web session expired; will log in again on the next tick",
            extra={"event": events.PROVIDER_SESSION_LOST},
        )
        raise BrowserProviderError(PROVIDER_NAME, "Session expired: redirected to the login page")

    async def _submit_login_form(self, page: Page) -> None:
        sel = self._selectors
        await page.wait_for_selector(sel.email_input, timeout=_ELEMENT_TIMEOUT_MS)
        await page.fill(sel.email_input, self._email)
        await self._pacer.pause()
        await page.fill(sel.password_input, self._password)
        await self._pacer.pause()
        await page.click(sel.login_button)

        try:
            await page.wait_for_load_state("networkidle", timeout=_ELEMENT_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            logger.debug("Page still busy after login submit; continuing")

        if await page.query_selector(sel.two_factor_input) is not None:
            await self._await_second_factor(page)

    async def _await_second_factor(self, page: Page) -> None:
        """Wait for the user to complete the second factor in the browser window."""
        logger.warning(
            "Second factor required: complete it in the browser within %d s",
            self._two_factor_timeout_ms // 1000,
        )
        try:
            await page.wait_for_selector(
                self._selectors.two_factor_input,
                state="detached",
                timeout=self._two_factor_timeout_ms,
            )
            await page.wait_for_load_state("networkidle", timeout=_NAVIGATION_TIMEOUT_MS)
        except PlaywrightTimeoutError as exc:
            raise ProviderAuthError(
                PROVIDER_NAME,
                f"Second factor not completed within {self._two_factor_timeout_ms // 1000} s",
            ) from exc
        logger.info("Second factor completed")

    async def _save_storage_state(self) -> None:
        if self._storage_state is None or self._context is None:
            return
        try:
            self._storage_state.parent.mkdir(parents=True, exist_ok=True)
            await self._context.storage_state(path=str(self._storage_state))
        except (OSError, PlaywrightError) as exc:
            logger.warning("Could not save browser session to %s: %s", self._storage_state, exc)

    # ------------------------------------------------------------------
    # Availability helpers
    # ------------------------------------------------------------------

    async def _open_course(self, page: Page) -> None:
        sel = self._selectors
        try:
            await page.goto(self.search_url, wait_until="networkidle", timeout=_NAVIGATION_TIMEOUT_MS)
            await page.wait_for_selector(sel.course_search, timeout=_ELEMENT_TIMEOUT_MS)
            await page.fill(sel.course_search, self._home_course)
            await self._pacer.pause()
            await page.wait_for_selector(sel.course_result, timeout=_ELEMENT_TIMEOUT_MS)
            await page.click(sel.course_result)
            await page.wait_for_load_state("networkidle", timeout=_NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as exc:
            raise BrowserProviderError(
                PROVIDER_NAME, f"Could not open course {self._home_course!r}: {exc}"
            ) from exc

    async def _scan_day(self, page: Page, day: dt.date, query: AvailabilityQuery) -> list[Slot]:
        """Read every tee time card shown for *day*.

        Cards that cannot be parsed are skipped.  A day with no cards at all
        returns an empty list.
        """
        sel = self._selectors
        await page.wait_for_selector(sel.date_input, timeout=_ELEMENT_TIMEOUT_MS)
        await page.fill(sel.date_input, day.isoformat())
        await self._pacer.pause()

        try:
            await page.select_option(sel.party_size_select, str(query.party_size))
        except PlaywrightError:
            logger.debug("Party size selector missing for %s", day)

        try:
            await page.wait_for_selector(sel.tee_time_card, timeout=_ELEMENT_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            logger.debug("No tee time cards rendered for %s", day)
            return []

        course_name = self._home_course
        slots: list[Slot] = []
        for element in await page.query_selector_all(sel.tee_time_card):
            card = await self._read_card(element)
            try:
                slots.append(card_to_slot(card, day, course_name))
            except ValueError as exc:
                logger.debug("Skipping unparseable card on %s: %s", day, exc)
        return slots

    async def _read_card(self, element: ElementHandle) -> RawCard:
        sel = self._selectors
        cart_el = await element.query_selector(sel.cart_option)
        return RawCard(
            time_text=await self._child_text(element, sel.tee_time_time),
            price_text=await self._child_text(element, sel.tee_time_price),
            holes_text=await self._child_text(element, sel.tee_time_holes),
            spots_text=await self._child_text(element, sel.tee_time_spots),
            element_id=(
                await element.get_attribute("data-id") or await element.get_attribute("id") or None
            ),
            walking_option=await element.query_selector(sel.walking_option) is not None,
            cart_option_text=(await cart_el.text_content() or "") if cart_el is not None else None,
        )

    # ------------------------------------------------------------------
    # Booking helpers
    # ------------------------------------------------------------------

    async def _fill_players(self, page: Page, names: tuple[str, ...]) -> None:
        inputs = await page.query_selector_all(self._selectors.player_name_input)
        for element, name in zip(inputs, names):
            await element.fill(name)
            await self._pacer.pause(0.5, 1.5)

    async def _select_locomotion(self, page: Page, prefs: Preferences) -> None:
        if prefs.locomotion is Locomotion.EITHER:
            return
        selector = (
            self._selectors.walking_option
            if prefs.locomotion is Locomotion.WALKING
            else self._selectors.cart_option
        )
        option = await page.query_selector(selector)
        if option is None:
            logger.debug("No %s option on the booking form", prefs.locomotion)
            return
        await option.click()
        await self._pacer.pause()

    # ------------------------------------------------------------------
    # Text helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _child_text(element: ElementHandle, selector: str) -> str:
        child = await element.query_selector(selector)
        if child is None:
            return ""
        return (await child.text_content() or "").strip()

    @staticmethod
    async def _text_of(page: Page, selector: str) -> str | None:
        element = await page.query_selector(selector)
        if element is None:
            return None
        text = (await element.text_content() or "").strip()
        return text or None
