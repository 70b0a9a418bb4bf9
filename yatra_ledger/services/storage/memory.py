"""
In-Memory Storage Implementations

Used for local runs, demos and tests. The event source behaves like a
realtime database: every change pushes the complete ordered collection
to every subscriber of the affected scope, synchronously.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from yatra_ledger.models.trip import CollectionKind, RawRecord, ScopeKey
from yatra_ledger.normalization.normalizer import coerce_date, coerce_instant
from yatra_ledger.services.storage.interface import (
    UPDATABLE_TRIP_FIELDS,
    EventSource,
    KeyValueStore,
    Listener,
    NotFoundError,
    StorageError,
    Subscription,
)


_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class InMemorySubscription(Subscription):
    """Subscription handle for InMemoryEventSource."""

    def __init__(self, source: "InMemoryEventSource", key: tuple, listener: Listener):
        self._source = source
        self._key = key
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._source._remove(self._key, self)


class InMemoryEventSource(EventSource):
    """
    Event source backed by plain dicts.

    Records are kept in insertion order, which is the "natural order"
    used to break ordering ties.
    """

    def __init__(self):
        # owner_id -> {trip_id: data}
        self._trips: dict[str, dict[str, dict[str, Any]]] = {}
        # (owner_id, trip_id) -> {expense_id: data}
        self._expenses: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self._subscribers: dict[tuple, list[InMemorySubscription]] = {}

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        collection: CollectionKind,
        scope: ScopeKey,
        listener: Listener,
    ) -> Subscription:
        key = self._key(collection, scope)
        subscription = InMemorySubscription(self, key, listener)
        self._subscribers.setdefault(key, []).append(subscription)
        listener(self._snapshot(key), None)
        return subscription

    def subscriber_count(self, collection: CollectionKind, scope: ScopeKey) -> int:
        return len(self._subscribers.get(self._key(collection, scope), []))

    def fail(self, collection: CollectionKind, scope: ScopeKey, error: Exception) -> None:
        """Report a subscription-level failure to every subscriber of a scope."""
        for subscription in list(self._subscribers.get(self._key(collection, scope), [])):
            if subscription.active:
                subscription.listener(None, error)

    def _remove(self, key: tuple, subscription: InMemorySubscription) -> None:
        subscribers = self._subscribers.get(key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscribers.pop(key, None)

    def _key(self, collection: CollectionKind, scope: ScopeKey) -> tuple:
        if collection == CollectionKind.TRIPS:
            return (collection, scope.owner_id, None)
        return (collection, scope.owner_id, scope.parent_id)

    def _snapshot(self, key: tuple) -> list[RawRecord]:
        collection, owner_id, trip_id = key
        if collection == CollectionKind.TRIPS:
            records = self._trips.get(owner_id, {})
            ordered = sorted(records.items(), key=lambda item: _trip_sort_key(item[1]))
        else:
            records = self._expenses.get((owner_id, trip_id), {})
            ordered = sorted(
                records.items(),
                key=lambda item: _expense_sort_key(item[1]),
                reverse=True,
            )
        return [RawRecord(id=record_id, data=copy.deepcopy(data)) for record_id, data in ordered]

    def _publish(self, key: tuple) -> None:
        subscribers = list(self._subscribers.get(key, []))
        if not subscribers:
            return
        records = self._snapshot(key)
        for subscription in subscribers:
            if subscription.active:
                subscription.listener(list(records), None)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def seed_trip(self, owner_id: str, trip_id: str, data: dict[str, Any]) -> None:
        """Insert a trip with a known id (fixtures, imports)."""
        self._trips.setdefault(owner_id, {})[trip_id] = copy.deepcopy(data)
        self._publish((CollectionKind.TRIPS, owner_id, None))

    def seed_expense(
        self,
        owner_id: str,
        trip_id: str,
        expense_id: str,
        data: dict[str, Any],
    ) -> None:
        """Insert an expense with a known id (fixtures, imports)."""
        self._expenses.setdefault((owner_id, trip_id), {})[expense_id] = copy.deepcopy(data)
        self._publish((CollectionKind.EXPENSES, owner_id, trip_id))

    async def create_trip(self, owner_id: str, data: dict[str, Any]) -> str:
        trip_id = uuid4().hex
        self.seed_trip(owner_id, trip_id, data)
        return trip_id

    async def update_trip(
        self,
        owner_id: str,
        trip_id: str,
        fields: dict[str, Any],
    ) -> None:
        unknown = set(fields) - UPDATABLE_TRIP_FIELDS
        if unknown:
            raise StorageError(f"Trip fields are not updatable: {sorted(unknown)}")
        trip = self._trips.get(owner_id, {}).get(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip not found: {trip_id}")
        trip.update(copy.deepcopy(fields))
        self._publish((CollectionKind.TRIPS, owner_id, None))

    async def create_expense(
        self,
        owner_id: str,
        trip_id: str,
        data: dict[str, Any],
    ) -> str:
        if trip_id not in self._trips.get(owner_id, {}):
            raise NotFoundError(f"Trip not found: {trip_id}")
        expense_id = uuid4().hex
        self.seed_expense(owner_id, trip_id, expense_id, data)
        return expense_id

    async def delete_expense(
        self,
        owner_id: str,
        trip_id: str,
        expense_id: str,
    ) -> bool:
        expenses = self._expenses.get((owner_id, trip_id), {})
        if expenses.pop(expense_id, None) is None:
            return False
        self._publish((CollectionKind.EXPENSES, owner_id, trip_id))
        return True


def _trip_sort_key(data: dict[str, Any]) -> tuple:
    start = coerce_date(data.get("startDate"))
    # Trips without a start date sort last
    return (start is None, start.isoformat() if start else "")


def _expense_sort_key(data: dict[str, Any]) -> datetime:
    return coerce_instant(data.get("timestamp")) or _EARLIEST


class InMemoryKeyValueStore(KeyValueStore):
    """Process-lifetime key-value store."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
