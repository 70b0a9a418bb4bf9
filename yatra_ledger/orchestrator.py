"""
Main Orchestrator for Yatra Ledger

This module ties together all the components for one signed-in owner and
defines the end-to-end flows for:
1. Watching trips (trips → selected trip → expenses → snapshot → alerts)
2. User actions (create trip, add/delete expense, set budget, set reminder)
3. Reminders (one scheduler per watched trip with an interval)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Snapshots are only ever derived from the latest full-replace push
- Budget alerts are only evaluated once a trip's expenses have loaded
- Every user action is audited under one correlation id

This is the "glue" that keeps the live collections, the derived state
and the timers consistent with each other.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from yatra_ledger.audit import AuditLogger, create_correlation_id
from yatra_ledger.config import EngineSettings, get_settings
from yatra_ledger.engine import (
    BudgetAlertEvaluator,
    LiveCollection,
    ReminderScheduler,
    ReminderStore,
    daily_timeline,
    derive,
    expense_collection,
    summarize,
    trip_collection,
)
from yatra_ledger.models.audit import AuditEventBuilder
from yatra_ledger.models.reminder import ReminderCheckOutcome
from yatra_ledger.models.snapshot import BudgetAlert, DailySpend, SpendSummary, TripSnapshot
from yatra_ledger.models.trip import Expense, NewExpense, NewTrip, ScopeKey, Trip, utc_now
from yatra_ledger.normalization import RecordNormalizer
from yatra_ledger.services.image import (
    CloudinaryReceiptStorage,
    InMemoryReceiptStorage,
    ReceiptStorage,
    ReceiptStorageError,
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
    JsonFileKeyValueStore,
    KeyValueStore,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

BUDGET_ALERT_TITLE = "Trip budget"


class LedgerSession:
    """
    Live state and actions for one owner.

    Flow on every push:
    1. Trips push → resolve the selected trip, sync reminder schedulers
    2. Selected trip → (re)point the expense collection at it
    3. Expenses push → derive the snapshot
    4. Snapshot → budget alert evaluator (notifies on upward crossings)

    Reminder polling needs a running event loop. Pass
    poll_reminders=False to drive checks by hand with check_reminders().
    """

    def __init__(
        self,
        owner_id: str,
        source: EventSource,
        notifier: NotificationService,
        receipt_storage: ReceiptStorage,
        reminder_store: ReminderStore,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        poll_reminders: bool = True,
    ):
        self.owner_id = owner_id
        self._source = source
        self._notifier = notifier
        self._receipts = receipt_storage
        self._reminder_store = reminder_store
        self._settings = settings or get_settings().engine
        self._audit_logger = audit_logger
        self._clock = clock
        self._poll_reminders = poll_reminders

        self._tz = self._settings.tzinfo
        normalizer = RecordNormalizer(clock=clock)

        self._alerts = BudgetAlertEvaluator(
            warning_threshold=self._settings.warning_threshold,
            critical_threshold=self._settings.critical_threshold,
            on_alert=self._deliver_alert,
        )
        self._trips: LiveCollection[Trip] = trip_collection(
            source, normalizer, audit_logger, on_change=self._on_trips_changed,
        )
        self._expenses: LiveCollection[Expense] = expense_collection(
            source, normalizer, audit_logger, on_change=self._on_expenses_changed,
        )

        self._schedulers: dict[str, ReminderScheduler] = {}
        self._selected_trip_id: Optional[str] = None
        self._snapshot: Optional[TripSnapshot] = None
        self.raised_alerts: list[BudgetAlert] = []

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> None:
        """Start watching the owner's trips."""
        self._trips.watch(ScopeKey(owner_id=self.owner_id))

    def close(self) -> None:
        """Tear down both subscriptions and stop every reminder poll."""
        self._expenses.close()
        self._trips.close()
        for scheduler in self._schedulers.values():
            scheduler.stop()
        self._schedulers.clear()
        self._snapshot = None

    # -------------------------------------------------------------------------
    # Read state
    # -------------------------------------------------------------------------

    @property
    def trips(self) -> list[Trip]:
        return self._trips.items

    @property
    def expenses(self) -> list[Expense]:
        return self._expenses.items

    @property
    def trips_loading(self) -> bool:
        return self._trips.loading

    @property
    def expenses_loading(self) -> bool:
        return self._expenses.loading

    @property
    def error(self) -> Optional[Exception]:
        return self._trips.error or self._expenses.error

    @property
    def snapshot(self) -> Optional[TripSnapshot]:
        return self._snapshot

    @property
    def selected_trip(self) -> Optional[Trip]:
        """The chosen trip, falling back to the first one."""
        trips = self._trips.items
        if not trips:
            return None
        for trip in trips:
            if trip.id == self._selected_trip_id:
                return trip
        return trips[0]

    def summary(self) -> Optional[SpendSummary]:
        if self._snapshot is None:
            return None
        return summarize(self._snapshot)

    def timeline(self) -> list[DailySpend]:
        if self._snapshot is None:
            return []
        return daily_timeline(self._snapshot)

    def scheduler_for(self, trip_id: str) -> Optional[ReminderScheduler]:
        return self._schedulers.get(trip_id)

    def select_trip(self, trip_id: Optional[str]) -> None:
        """Choose a trip; an unknown id falls back to the first trip."""
        self._selected_trip_id = trip_id
        self._refresh_selection()

    # -------------------------------------------------------------------------
    # Push handling
    # -------------------------------------------------------------------------

    def _on_trips_changed(self, collection: LiveCollection[Trip]) -> None:
        trips = collection.items
        self._sync_schedulers(trips)
        self._refresh_selection()

    def _on_expenses_changed(self, collection: LiveCollection[Expense]) -> None:
        self._recompute()

    def _refresh_selection(self) -> None:
        trip = self.selected_trip
        if trip is None:
            self._expenses.watch(None)
        else:
            self._expenses.watch(ScopeKey(owner_id=self.owner_id, parent_id=trip.id))
        self._recompute()

    def _recompute(self) -> None:
        trip = self.selected_trip
        scope = self._expenses.scope
        if trip is None or scope is None or scope.parent_id != trip.id:
            self._snapshot = None
            return

        self._snapshot = derive(trip, self._expenses.items, self._tz)

        # An empty list while loading is not a real observation
        if not self._expenses.loading:
            self._alerts.observe(trip.id, trip.name, self._snapshot.budget_utilization)

    def _deliver_alert(self, alert: BudgetAlert) -> None:
        self.raised_alerts.append(alert)
        self._log(AuditEventBuilder.budget_alert_raised(
            alert.trip_id,
            alert.level.value,
            alert.previous_level.value,
            alert.utilization,
        ))
        try:
            self._notifier.notify(BUDGET_ALERT_TITLE, alert.message, alert.tag)
        except Exception as e:
            self._log(AuditEventBuilder.external_service_error("notifications", str(e)))

    def _sync_schedulers(self, trips: list[Trip]) -> None:
        watched = {trip.id: trip for trip in trips}

        for trip_id in list(self._schedulers):
            if trip_id not in watched:
                # Trip no longer watched: stop polling, keep its record
                self._schedulers.pop(trip_id).stop()
                self._alerts.forget(trip_id)

        for trip in trips:
            self._sync_scheduler(trip.id, trip.name, trip.reminder_interval_minutes)

    def _sync_scheduler(self, trip_id: str, trip_name: str, interval: Optional[int]) -> None:
        scheduler = self._schedulers.get(trip_id)

        if interval is None:
            if scheduler is not None:
                scheduler.disable()
                del self._schedulers[trip_id]
            else:
                self._reminder_store.remove(trip_id)
            return

        if scheduler is None:
            scheduler = ReminderScheduler(
                trip_id,
                trip_name,
                self._reminder_store,
                self._notifier,
                clock=self._clock,
                poll_seconds=self._settings.reminder_poll_seconds,
                audit_logger=self._audit_logger,
            )
            scheduler.restore(interval)
            self._schedulers[trip_id] = scheduler
        elif scheduler.interval != interval:
            scheduler.enable(interval)

        scheduler.rename(trip_name)
        if self._poll_reminders:
            scheduler.start()

    async def check_reminders(self) -> dict[str, ReminderCheckOutcome]:
        """Run one check for every scheduler."""
        schedulers = list(self._schedulers.values())
        outcomes = await asyncio.gather(*(scheduler.check() for scheduler in schedulers))
        return {
            scheduler.trip_id: outcome
            for scheduler, outcome in zip(schedulers, outcomes)
        }

    # -------------------------------------------------------------------------
    # User actions
    # -------------------------------------------------------------------------

    def _require_trip(self, trip_id: Optional[str]) -> str:
        if trip_id:
            return trip_id
        trip = self.selected_trip
        if trip is None:
            raise NotFoundError("No trip selected")
        return trip.id

    def _trip_name(self, trip_id: str) -> str:
        for trip in self._trips.items:
            if trip.id == trip_id:
                return trip.name
        return ""

    async def create_trip(self, new_trip: NewTrip) -> str:
        """
        Create a trip and select it.

        Raises:
            StorageError: If the source refuses the write
        """
        correlation_id = create_correlation_id()
        trip_id = await self._source.create_trip(self.owner_id, new_trip.to_record())
        self._log(AuditEventBuilder.trip_created(trip_id, new_trip.name, correlation_id))
        self.select_trip(trip_id)
        return trip_id

    async def add_expense(
        self,
        new_expense: NewExpense,
        receipt: Optional[bytes] = None,
        filename: str = "receipt.jpg",
        trip_id: Optional[str] = None,
    ) -> str:
        """
        Log an expense, uploading its receipt first.

        The receipt is uploaded before the record is written, so a
        failed upload creates nothing. If the record write fails the
        uploaded receipt is released again.

        Raises:
            NotFoundError: If there is no trip to log against
            ReceiptStorageError: If the receipt upload fails
            StorageError: If the source refuses the write
        """
        trip_id = self._require_trip(trip_id)
        correlation_id = create_correlation_id()

        image_url = None
        if receipt:
            image_url = await self._receipts.upload_receipt(receipt, filename)
            self._log(AuditEventBuilder.receipt_uploaded(
                trip_id, image_url, len(receipt), correlation_id,
            ))

        try:
            expense_id = await self._source.create_expense(
                self.owner_id, trip_id, new_expense.to_record(image_url),
            )
        except StorageError:
            if image_url:
                await self._release_receipt(image_url, correlation_id)
            raise

        self._log(AuditEventBuilder.expense_created(
            trip_id,
            expense_id,
            new_expense.amount,
            new_expense.category.value,
            correlation_id,
        ))
        return expense_id

    async def delete_expense(
        self,
        expense_id: str,
        trip_id: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> bool:
        """
        Delete an expense and release its receipt.

        The receipt reference is looked up in the current expense list
        when not given. Releasing it is best effort.
        """
        trip_id = self._require_trip(trip_id)
        correlation_id = create_correlation_id()

        if image_url is None:
            for expense in self._expenses.items:
                if expense.id == expense_id:
                    image_url = expense.image_url
                    break

        deleted = await self._source.delete_expense(self.owner_id, trip_id, expense_id)
        if deleted:
            self._log(AuditEventBuilder.expense_deleted(trip_id, expense_id, correlation_id))
        if image_url:
            await self._release_receipt(image_url, correlation_id)
        return deleted

    async def _release_receipt(self, image_url: str, correlation_id) -> None:
        try:
            await self._receipts.delete_receipt(image_url)
        except ReceiptStorageError as e:
            self._log(AuditEventBuilder.receipt_release_failed(image_url, str(e), correlation_id))

    async def set_budget(self, budget: float, trip_id: Optional[str] = None) -> None:
        """Change a trip's budget. The new snapshot arrives with the next push."""
        if budget < 0:
            raise ValueError("Budget cannot be negative")
        trip_id = self._require_trip(trip_id)
        correlation_id = create_correlation_id()

        fields = {"budget": float(budget)}
        await self._source.update_trip(self.owner_id, trip_id, fields)
        self._log(AuditEventBuilder.trip_updated(trip_id, fields, correlation_id))

    async def set_reminder(
        self,
        interval_minutes: Optional[int],
        trip_id: Optional[str] = None,
    ) -> None:
        """
        Enable, change or disable a trip's reminders.

        Enabling asks for notification permission first.

        Raises:
            NotificationPermissionError: Permission denied; the trip is unchanged
            ValueError: Non-positive interval
        """
        trip_id = self._require_trip(trip_id)
        if interval_minutes is not None and interval_minutes <= 0:
            raise ValueError("Reminder interval must be a positive number of minutes")

        if interval_minutes is not None:
            granted = await self._notifier.request_permission()
            if not granted:
                self._log(AuditEventBuilder.reminder_permission_denied(trip_id))
                raise NotificationPermissionError(
                    "Notifications are blocked; reminders cannot be enabled"
                )

        scheduler = self._schedulers.get(trip_id)
        if interval_minutes is not None and (scheduler is None or not scheduler.enabled):
            # Turning reminders on starts a fresh baseline, whatever was left on disk
            self._reminder_store.remove(trip_id)

        correlation_id = create_correlation_id()
        fields = {"reminderIntervalMinutes": interval_minutes}
        await self._source.update_trip(self.owner_id, trip_id, fields)
        self._log(AuditEventBuilder.trip_updated(trip_id, fields, correlation_id))

        # Sources that push later still get the scheduler in step now
        self._sync_scheduler(trip_id, self._trip_name(trip_id), interval_minutes)

    def _log(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)


def create_app_components(
    owner_id: str,
    use_remote_storage: bool = True,
) -> tuple[LedgerSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        owner_id: The signed-in owner
        use_remote_storage: Whether to use Google Sheets and Cloudinary.
                    Set to False to run entirely in memory.

    Returns:
        (session, sheets_client)
    """
    settings = get_settings()
    audit_logger = AuditLogger(history_size=settings.engine.audit_history_size)

    sheets_client = None
    source: EventSource = InMemoryEventSource()
    receipt_storage: ReceiptStorage = InMemoryReceiptStorage(
        max_bytes=settings.app.max_receipt_size_bytes,
    )

    if use_remote_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            source = GoogleSheetsEventSource(sheets_client)
        except (StorageError, ValidationError) as e:
            # Storage not configured - continue in memory
            logger.warning("remote_storage_unavailable", error=str(e))
            sheets_client = None

        try:
            receipt_storage = CloudinaryReceiptStorage()
        except ValidationError as e:
            logger.warning("receipt_storage_unavailable", error=str(e))

    kv: Optional[KeyValueStore] = None
    store_file = settings.engine.reminder_store_file
    if store_file is not None:
        try:
            kv = JsonFileKeyValueStore(store_file)
        except StorageError as e:
            logger.warning("reminder_store_unavailable", error=str(e))

    reminder_store = ReminderStore(
        kv,
        key_prefix=settings.engine.reminder_key_prefix,
        audit_logger=audit_logger,
    )
    notifier = LoggingNotificationService(
        permission_granted=settings.engine.notifications_enabled,
    )

    session = LedgerSession(
        owner_id,
        source,
        notifier,
        receipt_storage,
        reminder_store,
        settings=settings.engine,
        audit_logger=audit_logger,
    )
    return session, sheets_client
