"""
Core Data Models for Yatra Ledger

These models define the strict schemas for trips and expenses once they
have left the storage layer. They are designed to:
1. Enforce type safety at runtime
2. Carry every defaulted field explicitly (no optional chaining downstream)
3. Be serializable for storage and logging

DESIGN DECISION: Storage hands us loosely-typed records. The normalizer turns
them into these models at construction time, so the rest of the engine can
rely on every field being present and typed.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    The set is closed: anything else coming out of storage is a
    malformed record, not a new category.
    """
    FOOD = "food"
    DRINKS = "drinks"
    SHOPPING = "shopping"
    EXPERIENCE = "experience"
    COUNTER = "counter"
    TRAVEL = "travel"
    LOCAL_COMMUTE = "local commute"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]


CATEGORY_LABELS: dict[ExpenseCategory, str] = {
    ExpenseCategory.FOOD: "Food",
    ExpenseCategory.DRINKS: "Drinks",
    ExpenseCategory.SHOPPING: "Shopping",
    ExpenseCategory.EXPERIENCE: "Experience",
    ExpenseCategory.COUNTER: "Counter",
    ExpenseCategory.TRAVEL: "Travel",
    ExpenseCategory.LOCAL_COMMUTE: "Local Commute",
}


class CollectionKind(str, Enum):
    """The two live collections the event source exposes."""
    TRIPS = "trips"
    EXPENSES = "expenses"


# =============================================================================
# STORAGE-FACING MODELS
# =============================================================================

class ScopeKey(BaseModel):
    """
    Identifies one live collection: the owner's trips, or one trip's expenses.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str
    parent_id: Optional[str] = None


class RawRecord(BaseModel):
    """
    One stored record exactly as the event source pushed it.

    `data` is deliberately untyped: the normalizer is the only place
    that interprets it.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    data: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# DOMAIN ENTITIES
# =============================================================================

class Location(BaseModel):
    """Where an expense happened. Any subset of the fields may be present."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    label: Optional[str] = Field(default=None, max_length=200)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class Trip(BaseModel):
    """
    A trip as the engine sees it.

    The engine never mutates a Trip; every push from storage
    rebuilds the whole list.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    destination: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: float = Field(default=0.0, ge=0)
    currency: str = ""
    gradient_seed: str = Field(
        ...,
        description="Presentation seed; destination, then id, when not stored"
    )
    reminder_interval_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        description="Reminder interval; None means reminders are disabled"
    )
    created_at: datetime

    @property
    def reminders_enabled(self) -> bool:
        return self.reminder_interval_minutes is not None


class Expense(BaseModel):
    """
    A single spend inside a trip.

    Expenses are immutable once created; the only lifecycle event
    after creation is deletion.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    amount: float = Field(..., ge=0, description="Amount in the trip's currency")
    category: ExpenseCategory
    timestamp: datetime = Field(..., description="When the spend occurred")
    location: Optional[Location] = None
    notes: str = ""
    image_url: Optional[str] = Field(
        default=None,
        description="Opaque receipt reference owned by the image store"
    )
    created_at: datetime


# =============================================================================
# USER INPUT MODELS
# =============================================================================

class NewTrip(BaseModel):
    """Trip details as entered by the user, before storage assigns an id."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    destination: str = Field(..., min_length=1, max_length=200)
    start_date: date
    end_date: date
    budget: float = Field(default=0.0, ge=0)
    currency: str = Field(default="INR", min_length=1, max_length=10)
    reminder_interval_minutes: Optional[int] = Field(default=None, gt=0)

    def to_record(self) -> dict[str, Any]:
        """Storage payload for this trip."""
        return {
            "name": self.name,
            "destination": self.destination,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "budget": self.budget,
            "currency": self.currency,
            "gradientSeed": self.destination,
            "reminderIntervalMinutes": self.reminder_interval_minutes,
            "createdAt": utc_now().isoformat(),
        }


class NewExpense(BaseModel):
    """
    Expense details as entered by the user.

    A zero amount is refused here: there is nothing to log.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: float = Field(..., gt=0)
    category: ExpenseCategory = ExpenseCategory.FOOD
    timestamp: datetime = Field(default_factory=utc_now)
    location: Optional[Location] = None
    notes: str = Field(default="", max_length=1000)

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_record(self, image_url: Optional[str] = None) -> dict[str, Any]:
        """Storage payload for this expense."""
        location = None
        if self.location is not None:
            location = self.location.model_dump(exclude_none=True) or None
        return {
            "amount": self.amount,
            "category": self.category.value,
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
            "location": location,
            "notes": self.notes,
            "imageUrl": image_url,
            "createdAt": utc_now().isoformat(),
        }
