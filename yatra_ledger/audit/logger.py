"""
Audit Logger

DESIGN DECISION: Every significant action in the engine is logged.
This provides:
1. Complete traceability of user actions
2. Debugging capability for live subscriptions and timers
3. A recent-activity feed the UI can show

The audit logger:
- Is synchronous, because subscription callbacks and recomputation are
- Gracefully handles sink failures (never breaks the caller)
- Supports correlation IDs to trace related events
"""

from collections import deque
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from yatra_ledger.models.audit import AuditEvent, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


AuditSink = Callable[[AuditEvent], None]


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. A bounded in-memory history (for the activity feed and tests)

    An optional sink receives every event as well, e.g. to forward it
    to a remote store.
    """

    def __init__(
        self,
        history_size: int = 500,
        sink: Optional[AuditSink] = None,
    ):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to keep in memory.
            sink: Extra destination for events. Failures are logged, not raised.
        """
        self._history: deque[AuditEvent] = deque(maxlen=history_size)
        self._sink = sink
        self._logger = structlog.get_logger("yatra_ledger.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Returns True if the sink accepted the event
        (or no sink is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        self._history.append(event)

        if self._sink:
            try:
                self._sink(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_sink_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent events, newest first."""
        events = list(self._history)[-limit:]
        events.reverse()
        return events

    def events_for(self, entity_id: str) -> list[AuditEvent]:
        """All retained events about one entity, oldest first."""
        return [event for event in self._history if event.entity_id == entity_id]


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
