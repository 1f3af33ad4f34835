"""Booking backends behind one provider contract."""

from autotee.providers.base import BookingProvider
from autotee.providers.factory import build_provider

__all__ = ["BookingProvider", "build_provider"]
