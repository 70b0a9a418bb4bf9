"""
Structured-log notification surface.

Used when no desktop or browser surface is wired in: each notification
becomes one structured log line, so reminders remain visible in the
app's log stream.
"""

import structlog

from yatra_ledger.services.notifications.interface import NotificationService


class LoggingNotificationService(NotificationService):
    """Delivers notifications to the structured log."""

    def __init__(self, permission_granted: bool = True):
        self._permission_granted = permission_granted
        self._logger = structlog.get_logger("yatra_ledger.notifications")
        self.delivered_count = 0

    async def request_permission(self) -> bool:
        return self._permission_granted

    def notify(self, title: str, body: str, tag: str) -> None:
        self.delivered_count += 1
        self._logger.warning("notification", title=title, body=body, tag=tag)
