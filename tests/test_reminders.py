"""Tests for the reminder store and scheduler."""

import asyncio
from datetime import timedelta

import pytest

from yatra_ledger.engine import ReminderScheduler, ReminderStore, reminder_tag
from yatra_ledger.models import AuditEventType, ReminderCheckOutcome, ReminderState
from yatra_ledger.services.storage import InMemoryKeyValueStore

from conftest import BrokenKeyValueStore, RecordingNotifier, START


@pytest.fixture
def store(kv, audit_logger) -> ReminderStore:
    return ReminderStore(kv, key_prefix="test-reminders", audit_logger=audit_logger)


def make_scheduler(store, notifier, clock, **kwargs) -> ReminderScheduler:
    return ReminderScheduler("t1", "Goa", store, notifier, clock=clock, **kwargs)


class TestReminderStore:
    """Tests for durable reminder records."""

    def test_round_trip_through_json_values(self, store, kv):
        """Test that records are stored as JSON-serialisable values under a per-trip key."""
        store.save("t1", ReminderState(interval=30, last_notified=START))
        assert kv.get("test-reminders:t1") == {
            "interval": 30,
            "last_notified": "2024-03-10T12:00:00Z",
        }
        assert store.load("t1") == ReminderState(interval=30, last_notified=START)

    def test_missing_and_invalid_records(self, store, kv):
        """Test that absent or unreadable records load as None."""
        assert store.load("t1") is None
        kv.set("test-reminders:t1", {"interval": 0})
        assert store.load("t1") is None
        kv.set("test-reminders:t1", "garbage")
        assert store.load("t1") is None

    def test_remove(self, store, kv):
        """Test that removing deletes the durable key."""
        store.save("t1", ReminderState(interval=30, last_notified=START))
        store.remove("t1")
        assert kv.get("test-reminders:t1") is None

    def test_degrades_once_to_memory(self, audit_logger):
        """Test that a failing store degrades to memory and logs once."""
        broken = BrokenKeyValueStore()
        store = ReminderStore(broken, audit_logger=audit_logger)

        store.save("t1", ReminderState(interval=30, last_notified=START))
        store.save("t2", ReminderState(interval=45, last_notified=START))

        assert store.degraded
        assert broken.calls == 1
        assert store.load("t1").interval == 30
        degraded = [
            event for event in audit_logger.recent_events()
            if event.event_type == AuditEventType.REMINDER_STORE_DEGRADED
        ]
        assert len(degraded) == 1

    def test_no_backing_store(self):
        """Test that a store without a backend works in memory."""
        store = ReminderStore(None)
        assert store.degraded
        store.save("t1", ReminderState(interval=30, last_notified=START))
        assert store.load("t1").interval == 30


class TestReminderTransitions:
    """Tests for enable / restore / disable."""

    def test_enable_sets_fresh_baseline(self, store, notifier, clock):
        """Test that enabling from disabled records now as the baseline."""
        scheduler = make_scheduler(store, notifier, clock)
        state = scheduler.enable(60)
        assert state == ReminderState(interval=60, last_notified=START)
        assert scheduler.enabled
        assert store.load("t1") == state

    def test_enable_while_enabled_keeps_last_notified(self, store, notifier, clock):
        """Test that changing the interval keeps the baseline."""
        scheduler = make_scheduler(store, notifier, clock)
        scheduler.enable(60)
        clock.advance(minutes=20)
        state = scheduler.enable(30)
        assert state.interval == 30
        assert state.last_notified == START

    def test_restore_adopts_existing_record(self, store, notifier, clock):
        """Test that a restart keeps the durable baseline."""
        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(minutes=50)))
        scheduler = make_scheduler(store, notifier, clock)
        state = scheduler.restore(60)
        assert state.last_notified == START - timedelta(minutes=50)

    def test_restore_without_record_starts_fresh(self, store, notifier, clock):
        """Test that restoring with no record uses now."""
        scheduler = make_scheduler(store, notifier, clock)
        assert scheduler.restore(45).last_notified == START

    def test_disable_removes_record(self, store, notifier, clock):
        """Test that disabling deletes the durable record and stops work."""
        scheduler = make_scheduler(store, notifier, clock)
        scheduler.enable(60)
        scheduler.disable()
        assert store.load("t1") is None
        assert not scheduler.enabled

        clock.advance(hours=5)
        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.DISABLED
        assert notifier.permission_requests == 0

    def test_enable_rejects_non_positive_interval(self, store, notifier, clock):
        """Test interval validation."""
        scheduler = make_scheduler(store, notifier, clock)
        with pytest.raises(ValueError):
            scheduler.enable(0)

    def test_transitions_bump_generation(self, store, notifier, clock):
        """Test that every state change invalidates in-flight checks."""
        scheduler = make_scheduler(store, notifier, clock)
        generations = [scheduler.generation]
        scheduler.enable(60)
        generations.append(scheduler.generation)
        scheduler.enable(30)
        generations.append(scheduler.generation)
        scheduler.disable()
        generations.append(scheduler.generation)
        assert generations == sorted(set(generations))


class TestReminderCheck:
    """Tests for a single poll."""

    def test_not_due_before_interval(self, store, notifier, clock):
        """Test that 59 minutes after the last reminder nothing fires."""
        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(minutes=59)))
        scheduler = make_scheduler(store, notifier, clock)
        scheduler.restore(60)

        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.NOT_DUE
        assert notifier.sent == []
        assert notifier.permission_requests == 0

    def test_fires_once_when_due(self, store, notifier, clock):
        """Test that 61 minutes after the last reminder exactly one fires."""
        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(minutes=61)))
        scheduler = make_scheduler(store, notifier, clock)
        scheduler.restore(60)

        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.FIRED
        assert notifier.sent == [(
            "Log your expenses",
            "It has been a while since you updated expenses for Goa.",
            "yatra-ledger-t1",
        )]
        assert store.load("t1").last_notified == START

        # Immediately polling again stays quiet
        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.NOT_DUE
        assert len(notifier.sent) == 1

    def test_baseline_is_the_check_instant(self, store, clock):
        """Test that last_notified is the time the check started, not when delivery finished."""

        class SlowNotifier(RecordingNotifier):
            def notify(self, title, body, tag):
                clock.advance(minutes=5)
                super().notify(title, body, tag)

        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(minutes=61)))
        scheduler = make_scheduler(store, SlowNotifier(), clock)
        scheduler.restore(60)

        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.FIRED
        assert store.load("t1").last_notified == START

    def test_permission_denied_keeps_baseline(self, store, clock):
        """Test that a denial fires nothing and leaves last_notified unchanged."""
        notifier = RecordingNotifier(granted=False)
        last = START - timedelta(minutes=61)
        store.save("t1", ReminderState(interval=60, last_notified=last))
        scheduler = make_scheduler(store, notifier, clock)
        scheduler.restore(60)

        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.PERMISSION_DENIED
        assert notifier.sent == []
        assert store.load("t1").last_notified == last

    def test_missed_polls_fire_once(self, store, notifier, clock):
        """Test that a long suspension yields a single reminder."""
        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(hours=10)))
        scheduler = make_scheduler(store, notifier, clock)
        scheduler.restore(60)

        outcomes = [asyncio.run(scheduler.check()) for _ in range(3)]
        assert outcomes.count(ReminderCheckOutcome.FIRED) == 1
        assert len(notifier.sent) == 1

    def test_clock_skew_resets_baseline(self, store, notifier, clock, audit_logger):
        """Test that a future last_notified is reset to now without firing."""
        store.save("t1", ReminderState(interval=60, last_notified=START + timedelta(days=1)))
        scheduler = make_scheduler(store, notifier, clock, audit_logger=audit_logger)
        scheduler.restore(60)

        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.NOT_DUE
        assert store.load("t1").last_notified == START
        assert notifier.sent == []
        assert any(
            event.event_type == AuditEventType.REMINDER_BASELINE_RESET
            for event in audit_logger.recent_events()
        )

    def test_disable_during_permission_request_is_stale(self, store, clock):
        """Test that a check suspended on permission does not fire after disable."""
        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(minutes=61)))

        async def scenario():
            gate = asyncio.Event()
            notifier = RecordingNotifier(gate=gate)
            scheduler = make_scheduler(store, notifier, clock)
            scheduler.restore(60)

            pending = asyncio.create_task(scheduler.check())
            await asyncio.sleep(0)
            scheduler.disable()
            gate.set()
            return await pending, notifier

        outcome, notifier = asyncio.run(scenario())
        assert outcome == ReminderCheckOutcome.STALE
        assert notifier.sent == []
        assert store.load("t1") is None

    def test_notifier_failure_is_contained(self, store, clock, audit_logger):
        """Test that a raising notification surface fails only that check."""
        notifier = RecordingNotifier(fail_with=RuntimeError("surface gone"))
        last = START - timedelta(minutes=61)
        store.save("t1", ReminderState(interval=60, last_notified=last))
        scheduler = make_scheduler(store, notifier, clock, audit_logger=audit_logger)
        scheduler.restore(60)

        assert asyncio.run(scheduler.check()) == ReminderCheckOutcome.FAILED
        assert store.load("t1").last_notified == last

    def test_restart_keeps_timing_guarantee(self, kv, notifier, clock):
        """Test that a new scheduler over the same store does not fire early."""
        first = make_scheduler(ReminderStore(kv), notifier, clock)
        first.enable(60)
        clock.advance(minutes=30)

        second = make_scheduler(ReminderStore(kv), notifier, clock)
        second.restore(60)
        assert asyncio.run(second.check()) == ReminderCheckOutcome.NOT_DUE

        clock.advance(minutes=31)
        assert asyncio.run(second.check()) == ReminderCheckOutcome.FIRED

    def test_trips_do_not_share_records(self, store, notifier, clock):
        """Test that reminder keys are per trip."""
        goa = ReminderScheduler("t1", "Goa", store, notifier, clock=clock)
        leh = ReminderScheduler("t2", "Leh", store, notifier, clock=clock)
        goa.enable(60)
        leh.enable(60)
        leh.disable()
        assert store.load("t1") is not None
        assert reminder_tag("t2") == "yatra-ledger-t2"


class TestReminderPolling:
    """Tests for the asyncio poll task."""

    def test_first_check_runs_immediately(self, store, notifier, clock):
        """Test that start() checks without waiting a full cadence."""
        store.save("t1", ReminderState(interval=60, last_notified=START - timedelta(minutes=90)))

        async def scenario():
            scheduler = make_scheduler(store, notifier, clock, poll_seconds=3600)
            scheduler.restore(60)
            scheduler.start()
            await asyncio.sleep(0.01)
            running = scheduler.running
            scheduler.stop()
            return running

        assert asyncio.run(scenario())
        assert len(notifier.sent) == 1

    def test_disable_cancels_poll_task(self, store, notifier, clock):
        """Test that disabling stops the poll task."""

        async def scenario():
            scheduler = make_scheduler(store, notifier, clock, poll_seconds=0.01)
            scheduler.enable(60)
            scheduler.start()
            await asyncio.sleep(0.02)
            scheduler.disable()
            await asyncio.sleep(0)
            return scheduler.running

        assert asyncio.run(scenario()) is False
        assert notifier.sent == []

    def test_start_while_disabled_does_nothing(self, store, notifier, clock):
        """Test that a disabled scheduler never polls."""

        async def scenario():
            scheduler = make_scheduler(store, notifier, clock)
            scheduler.start()
            return scheduler.running

        assert asyncio.run(scenario()) is False
