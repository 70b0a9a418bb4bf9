"""
Notification Interface

Delivery is best effort. Permission is asked for on every attempt and a
denial ends that attempt: callers never loop on it.
"""

from abc import ABC, abstractmethod


class NotificationService(ABC):
    """Abstract interface for the user-facing notification surface."""

    @abstractmethod
    async def request_permission(self) -> bool:
        """Return True if notifications may be delivered right now."""
        pass

    @abstractmethod
    def notify(self, title: str, body: str, tag: str) -> None:
        """
        Deliver one notification.

        Notifications sharing a tag replace each other on surfaces
        that support it.
        """
        pass


class NotificationPermissionError(Exception):
    """The user asked for something that needs notification permission."""
    pass
