"""Provider selection by configured credential shape.

The concrete provider is chosen once, when the engine is built, never per
call:

    ============================================  ====================
    Credentials present                           Provider
    ============================================  ====================
    token + org + facility + course ids           PartnerApiProvider
    web email + password (and a home course)      WebProvider
    neither                                       ConfigError
    ============================================  ====================
"""

from __future__ import annotations

import logging

from autotee.core.exceptions import ConfigError
from autotee.core.settings import Settings
from autotee.providers.base import BookingProvider

__all__ = ["build_provider"]

logger = logging.getLogger(__name__)


def build_provider(settings: Settings) -> BookingProvider:
    """Return the provider matching the configured credentials.

    Raises:
        ConfigError: No complete credential set is configured, or web
            credentials are set without a home course to search for.
    """
    kind = settings.provider_kind
    if kind == "partner_api":
        from autotee.providers.api.partner import PartnerApiProvider  # noqa: PLC0415

        logger.info("Using partner API provider (org=%s)", settings.partner_org_id)
        return PartnerApiProvider(settings)

    if kind == "web":
        if not settings.home_course:
            raise ConfigError("HOME_COURSE is required when using web credentials")
        from autotee.providers.browser.web import WebProvider  # noqa: PLC0415

        logger.info("Using browser provider for course %r", settings.home_course)
        return WebProvider(settings)

    raise ConfigError(
        "No provider credentials configured: set PARTNER_API_TOKEN, PARTNER_ORG_ID, "
        "PARTNER_FACILITY_ID and PARTNER_COURSE_ID, or WEB_EMAIL and WEB_PASSWORD"
    )
