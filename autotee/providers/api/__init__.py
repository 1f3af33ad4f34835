"""Structured partner API provider and its HTTP client."""

from autotee.providers.api.http_client import PartnerHttpClient
from autotee.providers.api.partner import PartnerApiProvider

__all__ = ["PartnerHttpClient", "PartnerApiProvider"]
