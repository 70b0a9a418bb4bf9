"""
Live Collection Subscriber

Keeps one ordered entity list in step with a live collection in the
event source, and exposes {loading, error} status next to it.

GUARANTEES:
- Full-replace semantics: every push replaces the whole list, no patching
- One subscription at a time; changing scope tears the old one down first
- A late push from a torn-down subscription is discarded, never applied
  (every subscription carries a generation token checked on delivery)
- A failing subscription keeps the last good list and reports the error
"""

from typing import Callable, Generic, Optional, TypeVar

from yatra_ledger.audit import AuditLogger
from yatra_ledger.models.audit import AuditEventBuilder
from yatra_ledger.models.trip import CollectionKind, Expense, RawRecord, ScopeKey, Trip
from yatra_ledger.normalization import RecordNormalizer
from yatra_ledger.services.storage import EventSource, Subscription


T = TypeVar("T")

# records -> (entities, {rejected_id: reason})
Normalize = Callable[[list[RawRecord]], tuple[list[T], dict[str, str]]]


class LiveCollection(Generic[T]):
    """
    A continuously updated, ordered list of entities for one scope.
    """

    def __init__(
        self,
        source: EventSource,
        collection: CollectionKind,
        normalize: Normalize,
        audit_logger: Optional[AuditLogger] = None,
        on_change: Optional[Callable[["LiveCollection[T]"], None]] = None,
    ):
        self._source = source
        self._collection = collection
        self._normalize = normalize
        self._audit_logger = audit_logger
        self._on_change = on_change

        self._scope: Optional[ScopeKey] = None
        self._subscription: Optional[Subscription] = None
        self._generation = 0

        self._items: list[T] = []
        self._loading = False
        self._error: Optional[Exception] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def collection(self) -> CollectionKind:
        return self._collection

    @property
    def scope(self) -> Optional[ScopeKey]:
        return self._scope

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def items(self) -> list[T]:
        return list(self._items)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    # -------------------------------------------------------------------------
    # Scope management
    # -------------------------------------------------------------------------

    def _is_complete(self, scope: Optional[ScopeKey]) -> bool:
        if scope is None or not scope.owner_id:
            return False
        if self._collection == CollectionKind.EXPENSES and not scope.parent_id:
            return False
        return True

    def watch(self, scope: Optional[ScopeKey]) -> None:
        """
        Point the collection at a new scope.

        Watching the scope that is already active is a no-op. An
        incomplete scope (no owner, or no trip for expenses) leaves the
        collection empty and idle, which is not an error.
        """
        if not self._is_complete(scope):
            scope = None
        if scope is not None and scope == self._scope and self._subscription is not None:
            return

        self._teardown()
        self._generation += 1
        generation = self._generation

        self._scope = scope
        self._items = []
        self._error = None

        if scope is None:
            self._loading = False
            self._changed()
            return

        self._loading = True
        self._changed()

        self._log(AuditEventBuilder.subscription_started(
            self._collection.value, self._scope_label(scope), generation,
        ))
        self._subscription = self._source.subscribe(
            self._collection,
            scope,
            lambda records, error: self._deliver(generation, records, error),
        )

    def close(self) -> None:
        """Stop watching; the list becomes empty and idle."""
        self.watch(None)

    def _teardown(self) -> None:
        if self._subscription is None:
            return
        subscription, self._subscription = self._subscription, None
        subscription.unsubscribe()
        if self._scope is not None:
            self._log(AuditEventBuilder.subscription_closed(
                self._collection.value, self._scope_label(self._scope), self._generation,
            ))

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def _deliver(
        self,
        generation: int,
        records: Optional[list[RawRecord]],
        error: Optional[Exception],
    ) -> None:
        scope_label = self._scope_label(self._scope)

        if not self.is_current(generation):
            self._log(AuditEventBuilder.stale_update_discarded(
                self._collection.value, scope_label, generation, self._generation,
            ))
            return

        if error is not None:
            # Keep the last good list (stale but available)
            self._error = error
            self._loading = False
            self._log(AuditEventBuilder.subscription_failed(
                self._collection.value, scope_label, str(error),
            ))
            self._changed()
            return

        items, rejected = self._normalize(list(records or []))
        for record_id, reason in rejected.items():
            self._log(AuditEventBuilder.malformed_record(
                self._entity_name(), record_id, reason,
            ))

        self._items = items
        self._loading = False
        self._error = None
        self._changed()

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)

    def _log(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    def _entity_name(self) -> str:
        return "trip" if self._collection == CollectionKind.TRIPS else "expense"

    @staticmethod
    def _scope_label(scope: Optional[ScopeKey]) -> str:
        if scope is None:
            return ""
        if scope.parent_id:
            return f"{scope.owner_id}/{scope.parent_id}"
        return scope.owner_id


def trip_collection(
    source: EventSource,
    normalizer: RecordNormalizer,
    audit_logger: Optional[AuditLogger] = None,
    on_change: Optional[Callable[[LiveCollection[Trip]], None]] = None,
) -> LiveCollection[Trip]:
    """An owner's trips, ordered by start date ascending."""
    return LiveCollection(
        source,
        CollectionKind.TRIPS,
        lambda records: (normalizer.normalize_trips(records), {}),
        audit_logger=audit_logger,
        on_change=on_change,
    )


def expense_collection(
    source: EventSource,
    normalizer: RecordNormalizer,
    audit_logger: Optional[AuditLogger] = None,
    on_change: Optional[Callable[[LiveCollection[Expense]], None]] = None,
) -> LiveCollection[Expense]:
    """One trip's expenses, ordered by event timestamp descending."""
    return LiveCollection(
        source,
        CollectionKind.EXPENSES,
        normalizer.normalize_expenses,
        audit_logger=audit_logger,
        on_change=on_change,
    )
