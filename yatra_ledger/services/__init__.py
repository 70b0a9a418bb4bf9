"""Services package."""

from yatra_ledger.services.image import (
    CloudinaryReceiptStorage,
    InMemoryReceiptStorage,
    ReceiptStorage,
    ReceiptStorageError,
    ReceiptTooLargeError,
)
from yatra_ledger.services.notifications import (
    LoggingNotificationService,
    NotificationPermissionError,
    NotificationService,
)
from yatra_ledger.services.storage import (
    EventSource,
    GoogleSheetsClient,
    GoogleSheetsEventSource,
    InMemoryEventSource,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    NotFoundError,
    StorageError,
    Subscription,
    SubscriptionError,
)

__all__ = [
    # Receipt services
    "CloudinaryReceiptStorage",
    "InMemoryReceiptStorage",
    "ReceiptStorage",
    "ReceiptStorageError",
    "ReceiptTooLargeError",
    # Notification services
    "LoggingNotificationService",
    "NotificationPermissionError",
    "NotificationService",
    # Storage services
    "EventSource",
    "GoogleSheetsClient",
    "GoogleSheetsEventSource",
    "InMemoryEventSource",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "NotFoundError",
    "StorageError",
    "Subscription",
    "SubscriptionError",
]
