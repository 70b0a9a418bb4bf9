"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the event
source (trips and expenses) and the local key-value store (reminders).
"""

from yatra_ledger.services.storage.interface import (
    EventSource,
    KeyValueStore,
    Listener,
    NotFoundError,
    StorageError,
    Subscription,
    SubscriptionError,
    UPDATABLE_TRIP_FIELDS,
)
from yatra_ledger.services.storage.memory import (
    InMemoryEventSource,
    InMemoryKeyValueStore,
)
from yatra_ledger.services.storage.json_file import JsonFileKeyValueStore
from yatra_ledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsEventSource,
)

__all__ = [
    # Interfaces
    "EventSource",
    "KeyValueStore",
    "Listener",
    "Subscription",
    "UPDATABLE_TRIP_FIELDS",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "SubscriptionError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsEventSource",
    "InMemoryEventSource",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
]
