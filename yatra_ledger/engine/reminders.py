"""
Reminder Scheduler

Periodically nudges the user to log expenses for a trip.

GUARANTEES:
- While enabled, a trip is never reminded twice within its interval,
  measured from the durable last_notified instant (survives restarts)
- Missed polls collapse into a single reminder; no backlog is queued
- A permission denial fires nothing and leaves the baseline untouched
- A check that suspended for permission re-validates its generation
  before firing; a disable or interval change in between makes it stale
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from yatra_ledger.audit import AuditLogger
from yatra_ledger.models.audit import AuditEventBuilder
from yatra_ledger.models.reminder import ReminderCheckOutcome, ReminderState
from yatra_ledger.models.trip import utc_now
from yatra_ledger.services.notifications import NotificationService
from yatra_ledger.services.storage import InMemoryKeyValueStore, KeyValueStore, StorageError


logger = structlog.get_logger(__name__)

REMINDER_TITLE = "Log your expenses"


def reminder_body(trip_name: str) -> str:
    return f"It has been a while since you updated expenses for {trip_name or 'your trip'}."


def reminder_tag(trip_id: str) -> str:
    return f"yatra-ledger-{trip_id}"


class ReminderStore:
    """
    Per-trip reminder records over a key-value store.

    If the backing store is missing or starts failing, records are kept in
    memory for the rest of the session. The degradation is logged once.
    """

    def __init__(
        self,
        kv: Optional[KeyValueStore],
        key_prefix: str = "yatra-ledger-reminders",
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self._fallback = InMemoryKeyValueStore()
        self._prefix = key_prefix
        self._audit_logger = audit_logger
        self._degraded = False
        if kv is None:
            self._degrade("no durable store configured")

    @property
    def degraded(self) -> bool:
        return self._degraded

    def key_for(self, trip_id: str) -> str:
        return f"{self._prefix}:{trip_id}"

    def _degrade(self, reason: str) -> None:
        if self._degraded:
            return
        self._degraded = True
        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.reminder_store_degraded(reason))
        else:
            logger.warning("reminder_store_degraded", error=reason)

    def _call(self, operation: str, *args: Any) -> Any:
        if not self._degraded and self._kv is not None:
            try:
                return getattr(self._kv, operation)(*args)
            except (StorageError, OSError) as e:
                self._degrade(str(e))
        return getattr(self._fallback, operation)(*args)

    def load(self, trip_id: str) -> Optional[ReminderState]:
        """Stored record for a trip, or None if absent or unreadable."""
        value = self._call("get", self.key_for(trip_id))
        if not isinstance(value, dict):
            return None
        try:
            state = ReminderState.model_validate(value)
        except ValidationError:
            logger.warning("reminder_record_invalid", trip_id=trip_id)
            return None
        if state.last_notified.tzinfo is None:
            state = state.model_copy(
                update={"last_notified": state.last_notified.replace(tzinfo=timezone.utc)}
            )
        return state

    def save(self, trip_id: str, state: ReminderState) -> None:
        self._call("set", self.key_for(trip_id), state.model_dump(mode="json"))

    def remove(self, trip_id: str) -> None:
        self._call("delete", self.key_for(trip_id))


class ReminderScheduler:
    """
    Reminder timer for one trip.

    States: disabled, or enabled with an interval in minutes. Every state
    change bumps the generation token.
    """

    def __init__(
        self,
        trip_id: str,
        trip_name: str,
        store: ReminderStore,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
        poll_seconds: float = 60.0,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.trip_id = trip_id
        self.trip_name = trip_name
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._poll_seconds = poll_seconds
        self._audit_logger = audit_logger

        self._interval: Optional[int] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def interval(self) -> Optional[int]:
        return self._interval

    @property
    def enabled(self) -> bool:
        return self._interval is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def rename(self, trip_name: str) -> None:
        self.trip_name = trip_name

    def state(self) -> Optional[ReminderState]:
        """The durable record, if reminders are enabled."""
        if not self.enabled:
            return None
        return self._store.load(self.trip_id)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def enable(self, interval: int) -> ReminderState:
        """
        Turn reminders on, or change the interval.

        From disabled the baseline is now. While enabled the existing
        last_notified is kept and only the interval changes.
        """
        if interval <= 0:
            raise ValueError("Reminder interval must be a positive number of minutes")

        existing = self._store.load(self.trip_id) if self.enabled else None
        if existing is not None:
            state = ReminderState(interval=interval, last_notified=existing.last_notified)
        else:
            state = ReminderState(interval=interval, last_notified=self._clock())

        return self._apply(state, fresh_baseline=existing is None)

    def restore(self, interval: int) -> ReminderState:
        """
        Resume after a restart with the interval stored on the trip.

        An existing durable record keeps its last_notified; without one
        the baseline is now.
        """
        if interval <= 0:
            raise ValueError("Reminder interval must be a positive number of minutes")

        existing = self._store.load(self.trip_id)
        if existing is not None:
            state = ReminderState(interval=interval, last_notified=existing.last_notified)
        else:
            state = ReminderState(interval=interval, last_notified=self._clock())

        return self._apply(state, fresh_baseline=existing is None)

    def _apply(self, state: ReminderState, fresh_baseline: bool) -> ReminderState:
        self._store.save(self.trip_id, state)
        self._interval = state.interval
        self._generation += 1
        self._log(AuditEventBuilder.reminder_enabled(
            self.trip_id, state.interval, fresh_baseline,
        ))
        return state

    def disable(self) -> None:
        """Turn reminders off, forget the record and stop polling."""
        was_enabled = self.enabled
        self._interval = None
        self._generation += 1
        self._store.remove(self.trip_id)
        self.stop()
        if was_enabled:
            self._log(AuditEventBuilder.reminder_disabled(self.trip_id))

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def check(self) -> ReminderCheckOutcome:
        """Run one poll and report what it did."""
        if not self.enabled:
            return ReminderCheckOutcome.DISABLED

        generation = self._generation
        interval = self._interval
        now = self._clock()

        state = self._store.load(self.trip_id)
        if state is None:
            self._store.save(self.trip_id, ReminderState(interval=interval, last_notified=now))
            return ReminderCheckOutcome.NOT_DUE

        if state.last_notified > now:
            # Clock moved backwards
            self._store.save(self.trip_id, ReminderState(interval=interval, last_notified=now))
            self._log(AuditEventBuilder.reminder_baseline_reset(
                self.trip_id, state.last_notified, now,
            ))
            return ReminderCheckOutcome.NOT_DUE

        current = ReminderState(interval=interval, last_notified=state.last_notified)
        if not current.is_due(now):
            return ReminderCheckOutcome.NOT_DUE

        try:
            granted = await self._notifier.request_permission()
        except Exception as e:
            self._log(AuditEventBuilder.external_service_error("notifications", str(e)))
            return ReminderCheckOutcome.FAILED

        if not self.enabled or generation != self._generation:
            return ReminderCheckOutcome.STALE

        if not granted:
            self._log(AuditEventBuilder.reminder_permission_denied(self.trip_id))
            return ReminderCheckOutcome.PERMISSION_DENIED

        try:
            self._notifier.notify(
                REMINDER_TITLE,
                reminder_body(self.trip_name),
                reminder_tag(self.trip_id),
            )
        except Exception as e:
            self._log(AuditEventBuilder.external_service_error("notifications", str(e)))
            return ReminderCheckOutcome.FAILED

        self._store.save(self.trip_id, ReminderState(interval=interval, last_notified=now))

        overdue = (now - current.last_notified - current.interval_delta).total_seconds() / 60
        self._log(AuditEventBuilder.reminder_fired(self.trip_id, interval, overdue))
        return ReminderCheckOutcome.FIRED

    def start(self) -> None:
        """
        Start the poll task on the running event loop.

        The first check runs immediately. Calling start while running,
        or while disabled, does nothing.
        """
        if not self.enabled or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while self.enabled:
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log(AuditEventBuilder.system_error(
                    type(e).__name__, str(e), details={"trip_id": self.trip_id},
                ))
            await asyncio.sleep(self._poll_seconds)

    def _log(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)
