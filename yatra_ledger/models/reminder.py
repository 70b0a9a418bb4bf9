"""
Reminder Models

ReminderState is the only engine-owned data that outlives the process.
It encodes a timing guarantee ("never twice within the interval"), so it
must not reset just because the app restarted.
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ReminderState(BaseModel):
    """Durable per-trip reminder bookkeeping."""
    model_config = ConfigDict(frozen=True)

    interval: int = Field(..., gt=0, description="Minutes between reminders")
    last_notified: datetime = Field(
        ...,
        description="Instant of the last successful notification (or baseline)"
    )

    @property
    def interval_delta(self) -> timedelta:
        return timedelta(minutes=self.interval)

    def is_due(self, now: datetime) -> bool:
        return now - self.last_notified >= self.interval_delta


class ReminderCheckOutcome(str, Enum):
    """What a single scheduler poll did."""
    DISABLED = "disabled"                    # No work performed
    NOT_DUE = "not_due"                      # Interval not yet elapsed
    PERMISSION_DENIED = "permission_denied"  # Due, but cannot deliver
    FIRED = "fired"                          # One notification delivered
    STALE = "stale"                          # Scheduler changed while suspended
    FAILED = "failed"                        # Notification surface raised
