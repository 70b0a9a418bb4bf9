"""
Engine Package

Subscription, derivation, alerting and reminder logic. Nothing in here
knows which backend pushes the records.
"""

from yatra_ledger.engine.aggregation import (
    budget_utilization,
    daily_timeline,
    derive,
    summarize,
)
from yatra_ledger.engine.alerts import AlertHandler, BudgetAlertEvaluator
from yatra_ledger.engine.reminders import (
    REMINDER_TITLE,
    ReminderScheduler,
    ReminderStore,
    reminder_body,
    reminder_tag,
)
from yatra_ledger.engine.subscriber import (
    LiveCollection,
    expense_collection,
    trip_collection,
)

__all__ = [
    "AlertHandler",
    "BudgetAlertEvaluator",
    "LiveCollection",
    "REMINDER_TITLE",
    "ReminderScheduler",
    "ReminderStore",
    "budget_utilization",
    "daily_timeline",
    "derive",
    "expense_collection",
    "reminder_body",
    "reminder_tag",
    "summarize",
    "trip_collection",
]
