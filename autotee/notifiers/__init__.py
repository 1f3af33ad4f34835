"""Outcome notifications: message rendering, channels and fan-out."""

from autotee.notifiers.base import NotificationChannel
from autotee.notifiers.formatter import Message, MessageKind, escape_mdv2
from autotee.notifiers.notifier import FanOutResult, Notifier, build_notifier

__all__ = [
    "FanOutResult",
    "Message",
    "MessageKind",
    "NotificationChannel",
    "Notifier",
    "build_notifier",
    "escape_mdv2",
]
