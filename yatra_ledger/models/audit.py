"""
Audit Models for Yatra Ledger

Every significant action in the engine is logged for audit purposes.
This provides:
1. Traceability of user actions (trips, expenses, reminder settings)
2. Debugging information when a subscription or collaborator misbehaves
3. A record of every notification the engine decided to send

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from yatra_ledger.models.trip import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Live collections
    SUBSCRIPTION_STARTED = "subscription_started"
    SUBSCRIPTION_CLOSED = "subscription_closed"
    SUBSCRIPTION_FAILED = "subscription_failed"
    STALE_UPDATE_DISCARDED = "stale_update_discarded"
    MALFORMED_RECORD = "malformed_record"

    # User actions
    TRIP_CREATED = "trip_created"
    TRIP_UPDATED = "trip_updated"
    EXPENSE_CREATED = "expense_created"
    EXPENSE_DELETED = "expense_deleted"
    RECEIPT_UPLOADED = "receipt_uploaded"
    RECEIPT_RELEASE_FAILED = "receipt_release_failed"

    # Derived analytics
    BUDGET_ALERT_RAISED = "budget_alert_raised"

    # Reminders
    REMINDER_ENABLED = "reminder_enabled"
    REMINDER_DISABLED = "reminder_disabled"
    REMINDER_FIRED = "reminder_fired"
    REMINDER_PERMISSION_DENIED = "reminder_permission_denied"
    REMINDER_BASELINE_RESET = "reminder_baseline_reset"
    REMINDER_STORE_DEGRADED = "reminder_store_degraded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'trip', 'expense', 'collection')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one add-expense action)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(trip_id, expense_id, amount, correlation_id)
        event = AuditEventBuilder.reminder_fired(trip_id, interval)
    """

    @staticmethod
    def subscription_started(collection: str, scope: str, generation: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_STARTED,
            severity=AuditSeverity.DEBUG,
            entity_type="collection",
            entity_id=scope,
            description=f"Subscribed to {collection}",
            details={"collection": collection, "generation": generation},
        )

    @staticmethod
    def subscription_closed(collection: str, scope: str, generation: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_CLOSED,
            severity=AuditSeverity.DEBUG,
            entity_type="collection",
            entity_id=scope,
            description=f"Unsubscribed from {collection}",
            details={"collection": collection, "generation": generation},
        )

    @staticmethod
    def subscription_failed(collection: str, scope: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="collection",
            entity_id=scope,
            description=f"Live {collection} subscription failed; keeping last known data",
            error_message=error_message,
            details={"collection": collection},
        )

    @staticmethod
    def stale_update_discarded(
        collection: str,
        scope: str,
        stale_generation: int,
        current_generation: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_UPDATE_DISCARDED,
            severity=AuditSeverity.DEBUG,
            entity_type="collection",
            entity_id=scope,
            description=f"Discarded late {collection} update from a closed subscription",
            details={
                "collection": collection,
                "stale_generation": stale_generation,
                "current_generation": current_generation,
            },
        )

    @staticmethod
    def malformed_record(entity_type: str, record_id: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MALFORMED_RECORD,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=record_id,
            description=f"Dropped malformed {entity_type} record",
            details={"reason": reason},
        )

    @staticmethod
    def trip_created(trip_id: str, name: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRIP_CREATED,
            entity_type="trip",
            entity_id=trip_id,
            correlation_id=correlation_id,
            description=f"Trip created: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def trip_updated(trip_id: str, fields: dict, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRIP_UPDATED,
            entity_type="trip",
            entity_id=trip_id,
            correlation_id=correlation_id,
            description=f"Trip updated: {', '.join(sorted(fields))}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def expense_created(
        trip_id: str,
        expense_id: str,
        amount: float,
        category: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense logged: {category} {amount:.2f}",
            details={"trip_id": trip_id, "amount": amount, "category": category},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(trip_id: str, expense_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Expense removed",
            details={"trip_id": trip_id},
            is_user_action=True,
        )

    @staticmethod
    def receipt_uploaded(trip_id: str, url: str, size: int, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_UPLOADED,
            entity_type="receipt",
            entity_id=url,
            correlation_id=correlation_id,
            description="Receipt image uploaded",
            details={"trip_id": trip_id, "size_bytes": size},
        )

    @staticmethod
    def receipt_release_failed(url: str, error_message: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_RELEASE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            entity_id=url,
            correlation_id=correlation_id,
            description="Could not release receipt image after expense delete",
            error_message=error_message,
        )

    @staticmethod
    def budget_alert_raised(
        trip_id: str,
        level: str,
        previous_level: str,
        utilization: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT_RAISED,
            severity=AuditSeverity.WARNING,
            entity_type="trip",
            entity_id=trip_id,
            description=f"Budget {level}: {utilization:.2f}% used",
            details={
                "level": level,
                "previous_level": previous_level,
                "utilization": utilization,
            },
        )

    @staticmethod
    def reminder_enabled(trip_id: str, interval: int, fresh_baseline: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_ENABLED,
            entity_type="trip",
            entity_id=trip_id,
            description=f"Reminders every {interval} minutes",
            details={"interval": interval, "fresh_baseline": fresh_baseline},
        )

    @staticmethod
    def reminder_disabled(trip_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_DISABLED,
            entity_type="trip",
            entity_id=trip_id,
            description="Reminders disabled",
        )

    @staticmethod
    def reminder_fired(trip_id: str, interval: int, overdue_minutes: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_FIRED,
            entity_type="trip",
            entity_id=trip_id,
            description="Expense reminder delivered",
            details={"interval": interval, "overdue_minutes": round(overdue_minutes, 1)},
        )

    @staticmethod
    def reminder_permission_denied(trip_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_PERMISSION_DENIED,
            severity=AuditSeverity.DEBUG,
            entity_type="trip",
            entity_id=trip_id,
            description="Reminder due but notifications are not permitted",
        )

    @staticmethod
    def reminder_baseline_reset(trip_id: str, recorded: datetime, now: datetime) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_BASELINE_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="trip",
            entity_id=trip_id,
            description="Recorded reminder time is in the future; baseline reset",
            details={"recorded": recorded.isoformat(), "now": now.isoformat()},
        )

    @staticmethod
    def reminder_store_degraded(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_STORE_DEGRADED,
            severity=AuditSeverity.WARNING,
            entity_type="reminder_store",
            description="Durable reminder store unavailable; keeping reminders in memory",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
