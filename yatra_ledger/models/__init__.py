"""
Data Models Package

This package contains all Pydantic models used in Yatra Ledger.
All data flowing through the engine must conform to these schemas.
"""

from yatra_ledger.models.trip import (
    CATEGORY_LABELS,
    CollectionKind,
    Expense,
    ExpenseCategory,
    Location,
    NewExpense,
    NewTrip,
    RawRecord,
    ScopeKey,
    Trip,
    utc_now,
)
from yatra_ledger.models.snapshot import (
    AlertLevel,
    BudgetAlert,
    DailySpend,
    SpendSummary,
    TripSnapshot,
)
from yatra_ledger.models.reminder import ReminderCheckOutcome, ReminderState
from yatra_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Trip models
    "CATEGORY_LABELS",
    "CollectionKind",
    "Expense",
    "ExpenseCategory",
    "Location",
    "NewExpense",
    "NewTrip",
    "RawRecord",
    "ScopeKey",
    "Trip",
    "utc_now",
    # Derived models
    "AlertLevel",
    "BudgetAlert",
    "DailySpend",
    "SpendSummary",
    "TripSnapshot",
    # Reminder models
    "ReminderCheckOutcome",
    "ReminderState",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
