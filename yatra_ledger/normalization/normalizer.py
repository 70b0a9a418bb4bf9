"""
Record Normalizer

DESIGN DECISION: Normalization happens once, at construction time.
Storage hands us loosely-typed dicts whose timestamps may be datetimes,
ISO strings, epoch numbers or backend timestamp objects. We convert
everything here so the rest of the engine never does optional chaining.

RULES:
1. Pure and total - a raw record never makes the normalizer raise
2. Optional fields are defaulted (gradient seed, notes, reminders, ...)
3. Financial fields are NEVER fabricated: an expense without a usable
   amount, category or event timestamp is rejected, not guessed
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from yatra_ledger.models.trip import (
    Expense,
    ExpenseCategory,
    Location,
    RawRecord,
    Trip,
    utc_now,
)


# Epoch values above this are taken to be milliseconds
_MILLISECONDS_CUTOFF = 1e11

# Instants closer than a day to the datetime limits overflow in some zones
_EARLIEST_INSTANT = datetime.min.replace(tzinfo=timezone.utc) + timedelta(days=1)
_LATEST_INSTANT = datetime.max.replace(tzinfo=timezone.utc) - timedelta(days=1)


# =============================================================================
# FIELD COERCION
# =============================================================================

def coerce_instant(value: Any) -> Optional[datetime]:
    """
    Convert any supported timestamp representation to an aware UTC datetime.

    Returns None when the value cannot be interpreted, or when the instant
    lies within a day of the representable range.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        try:
            if value.tzinfo is None:
                instant = value.replace(tzinfo=timezone.utc)
            else:
                instant = value.astimezone(timezone.utc)
        except (OverflowError, ValueError):
            return None
        if not _EARLIEST_INSTANT <= instant <= _LATEST_INSTANT:
            return None
        return instant

    if isinstance(value, date):
        return coerce_instant(datetime(value.year, value.month, value.day))

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _from_epoch(float(text))
        except ValueError:
            pass
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return coerce_instant(datetime.fromisoformat(text))
        except ValueError:
            return None

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            if isinstance(nanos, (int, float)) and not isinstance(nanos, bool):
                return _from_epoch(float(seconds) + float(nanos) / 1e9, allow_millis=False)
        return None

    # Backend timestamp objects (protobuf Timestamp, Firestore, ...)
    for method_name in ("to_datetime", "ToDatetime", "to_pydatetime"):
        method = getattr(value, method_name, None)
        if callable(method):
            try:
                converted = method()
            except Exception:
                return None
            if isinstance(converted, datetime):
                return coerce_instant(converted)
            return None

    return None


def _from_epoch(seconds: float, allow_millis: bool = True) -> Optional[datetime]:
    if not math.isfinite(seconds):
        return None
    if allow_millis and abs(seconds) > _MILLISECONDS_CUTOFF:
        seconds = seconds / 1000.0
    try:
        instant = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return coerce_instant(instant)


def coerce_date(value: Any) -> Optional[date]:
    """Convert a stored calendar date (ISO string, date, datetime) to a date."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    instant = coerce_instant(value)
    return instant.date() if instant else None


def coerce_number(value: Any) -> Optional[float]:
    """Parse a finite number from a number or numeric string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_amount(value: Any) -> Optional[float]:
    """A finite, non-negative amount, or None."""
    number = coerce_number(value)
    if number is None or number < 0:
        return None
    return number


def coerce_interval(value: Any) -> Optional[int]:
    """A positive whole number of minutes, or None (reminders disabled)."""
    number = coerce_number(value)
    if number is None or number < 1:
        return None
    return int(number)


def coerce_category(value: Any) -> Optional[ExpenseCategory]:
    """Map a stored category string onto the closed category set."""
    if isinstance(value, ExpenseCategory):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower().replace("_", " ").replace("-", " ")
    try:
        return ExpenseCategory(key)
    except ValueError:
        return None


def coerce_location(value: Any) -> Optional[Location]:
    """Keep whichever of lat/lng/label are usable; None if none are."""
    if isinstance(value, Location):
        return value
    if not isinstance(value, dict):
        return None

    lat = coerce_number(value.get("lat"))
    lng = coerce_number(value.get("lng"))
    if lat is not None and not -90 <= lat <= 90:
        lat = None
    if lng is not None and not -180 <= lng <= 180:
        lng = None
    label = _optional_text(value.get("label"))
    if label is not None:
        label = label[:200]

    if lat is None and lng is None and label is None:
        return None
    return Location(lat=lat, lng=lng, label=label)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


# =============================================================================
# NORMALIZER
# =============================================================================

class RecordNormalizer:
    """
    Converts raw stored records into Trip and Expense entities.

    The only input besides the record is the clock, used to default a
    missing creation timestamp (a display nicety, never an error).
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def normalize_trip(self, trip_id: str, data: dict[str, Any]) -> Trip:
        """
        Build a Trip from a raw record.

        Every field has a safe default, so this always succeeds.
        """
        data = data if isinstance(data, dict) else {}
        destination = _text(data.get("destination"))

        return Trip(
            id=trip_id,
            name=_text(data.get("name")),
            destination=destination,
            start_date=coerce_date(data.get("startDate")),
            end_date=coerce_date(data.get("endDate")),
            budget=coerce_amount(data.get("budget")) or 0.0,
            currency=_text(data.get("currency")),
            gradient_seed=_text(data.get("gradientSeed")) or destination or trip_id,
            reminder_interval_minutes=coerce_interval(data.get("reminderIntervalMinutes")),
            created_at=coerce_instant(data.get("createdAt")) or self._clock(),
        )

    def check_expense(self, data: dict[str, Any]) -> Optional[str]:
        """
        Return why a raw expense cannot be normalized, or None if it can.

        Amount, category and event timestamp are the source's responsibility.
        """
        if not isinstance(data, dict):
            return "record is not a mapping"
        if coerce_amount(data.get("amount")) is None:
            return "amount is missing or not a non-negative number"
        if coerce_category(data.get("category")) is None:
            return f"unknown category: {data.get('category')!r}"
        if coerce_instant(data.get("timestamp")) is None:
            return "event timestamp is missing or unreadable"
        return None

    def normalize_expense(
        self,
        expense_id: str,
        data: dict[str, Any],
    ) -> Optional[Expense]:
        """
        Build an Expense from a raw record.

        Returns None for a malformed record instead of inventing
        an amount, category or timestamp.
        """
        if self.check_expense(data) is not None:
            return None

        return Expense(
            id=expense_id,
            amount=coerce_amount(data.get("amount")),
            category=coerce_category(data.get("category")),
            timestamp=coerce_instant(data.get("timestamp")),
            location=coerce_location(data.get("location")),
            notes=_text(data.get("notes")),
            image_url=_optional_text(data.get("imageUrl")),
            created_at=coerce_instant(data.get("createdAt")) or self._clock(),
        )

    def normalize_trips(self, records: Iterable[RawRecord]) -> list[Trip]:
        """Normalize a pushed trip collection, keeping its order."""
        return [self.normalize_trip(record.id, record.data) for record in records]

    def normalize_expenses(
        self,
        records: Iterable[RawRecord],
    ) -> tuple[list[Expense], dict[str, str]]:
        """
        Normalize a pushed expense collection, keeping its order.

        Returns:
            (expenses, {rejected_record_id: reason})
        """
        expenses = []
        rejected = {}
        for record in records:
            reason = self.check_expense(record.data)
            if reason is not None:
                rejected[record.id] = reason
                continue
            expenses.append(self.normalize_expense(record.id, record.data))
        return expenses, rejected
