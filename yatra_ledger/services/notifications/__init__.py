"""Notification services package."""

from yatra_ledger.services.notifications.interface import (
    NotificationPermissionError,
    NotificationService,
)
from yatra_ledger.services.notifications.logging_service import LoggingNotificationService

__all__ = [
    "LoggingNotificationService",
    "NotificationPermissionError",
    "NotificationService",
]
