"""Playwright-driven provider for the public booking website."""

from autotee.providers.browser.pacing import HumanPacer
from autotee.providers.browser.selectors import DEFAULT_SELECTORS, WebSelectors
from autotee.providers.browser.web import WebProvider

__all__ = ["DEFAULT_SELECTORS", "HumanPacer", "WebProvider", "WebSelectors"]
