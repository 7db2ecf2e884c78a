"""Downstream notifier adapters."""

from .base import JobNotifier, fire_and_forget
from .memory import LoggingNotifier, NotificationEvent, RecordingNotifier
from .webhook import WebhookNotifier

__all__ = [
    "JobNotifier",
    "fire_and_forget",
    "LoggingNotifier",
    "NotificationEvent",
    "RecordingNotifier",
    "WebhookNotifier",
]
