"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for every storage concern.
This allows us to:
1. Run the engine on an in-memory list, a file, or a remote live source
2. Use in-memory fakes for testing
3. Keep derivation logic decoupled from storage implementation

Two very different stores live here:
- EventSource: owns trips and expenses, pushes full ordered collections
- KeyValueStore: small, local, synchronous; holds reminder bookkeeping
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from yatra_ledger.models.trip import CollectionKind, RawRecord, ScopeKey


# Called with (records, None) on every change, or (None, error) on failure.
Listener = Callable[[Optional[list[RawRecord]], Optional[Exception]], None]


class Subscription(ABC):
    """Handle for one live collection subscription."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """
        Stop delivering updates.

        Must be idempotent. After it returns the source should not call the
        listener again, but consumers still guard against late deliveries.
        """
        pass


class EventSource(ABC):
    """
    Abstract interface for the trip/expense store.

    Any storage implementation (in-memory, spreadsheet, realtime database)
    must implement these methods.

    ORDERING CONTRACT:
    - Trips are pushed ordered by start date ascending
    - Expenses are pushed ordered by event timestamp descending
    - Ties keep the source's natural order
    """

    @abstractmethod
    def subscribe(
        self,
        collection: CollectionKind,
        scope: ScopeKey,
        listener: Listener,
    ) -> Subscription:
        """
        Subscribe to a live collection.

        Args:
            collection: Which collection (trips of an owner, expenses of a trip)
            scope: Owner id, plus trip id for expenses
            listener: Receives the complete current ordered set on each change

        Returns:
            A subscription handle
        """
        pass

    @abstractmethod
    async def create_trip(self, owner_id: str, data: dict[str, Any]) -> str:
        """
        Create a trip record.

        Returns:
            The new trip's id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_trip(
        self,
        owner_id: str,
        trip_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Update the mutable fields of a trip (budget, reminder interval).

        Raises:
            NotFoundError: If the trip doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def create_expense(
        self,
        owner_id: str,
        trip_id: str,
        data: dict[str, Any],
    ) -> str:
        """
        Create an expense record inside a trip.

        Returns:
            The new expense's id
        """
        pass

    @abstractmethod
    async def delete_expense(
        self,
        owner_id: str,
        trip_id: str,
        expense_id: str,
    ) -> bool:
        """
        Delete an expense.

        Returns:
            True if a record was deleted
        """
        pass


class KeyValueStore(ABC):
    """
    Abstract interface for durable local key-value storage.

    Synchronous by contract: the reminder scheduler reads then writes a
    record as one unit, without yielding in between.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are not an error."""
        pass


UPDATABLE_TRIP_FIELDS = frozenset({"budget", "reminderIntervalMinutes"})


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class SubscriptionError(StorageError):
    """A live subscription failed."""
    pass
