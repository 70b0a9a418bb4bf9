"""
Derived Models

Nothing in this module is persisted. Every value is recomputed from the
current trip and its current expenses.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from yatra_ledger.models.trip import ExpenseCategory, Trip


class TripSnapshot(Trip):
    """
    A trip plus the analytics derived from its expenses.

    INVARIANT: total_spend == sum(category_totals) == sum(daily_totals),
    up to floating-point rounding.
    """

    total_spend: float = 0.0
    daily_totals: dict[date, float] = Field(
        default_factory=dict,
        description="Local calendar date -> summed amount; only dates with spend"
    )
    category_totals: dict[ExpenseCategory, float] = Field(
        default_factory=dict,
        description="Category -> summed amount; only categories with spend"
    )
    budget_utilization: float = Field(
        default=0.0,
        ge=0,
        description="Percent of budget spent, 2 decimals, not clamped at 100"
    )
    expense_count: int = Field(default=0, ge=0)


class DailySpend(BaseModel):
    """One point on the daily spend timeline."""
    model_config = ConfigDict(frozen=True)

    day: date
    amount: float


class SpendSummary(BaseModel):
    """The headline numbers shown for the selected trip."""
    model_config = ConfigDict(frozen=True)

    total_spend: float
    average_daily_spend: float = Field(
        ...,
        description="Total divided by the number of recorded days"
    )
    peak_daily_spend: float
    remaining_budget: float = Field(..., ge=0, description="Never below zero")
    recorded_days: int = Field(..., ge=0)


class AlertLevel(str, Enum):
    """
    Budget alert bands, ordered from least to most severe.
    """
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    AlertLevel.NORMAL: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.CRITICAL: 2,
}


class BudgetAlert(BaseModel):
    """An upward crossing into the warning or critical band."""
    model_config = ConfigDict(frozen=True)

    trip_id: str
    trip_name: str
    level: AlertLevel
    previous_level: AlertLevel
    utilization: float

    @property
    def tag(self) -> str:
        """Dedupe tag for the notification surface."""
        return f"budget-{self.level.value}-{self.trip_id}"

    @property
    def message(self) -> str:
        if self.level == AlertLevel.CRITICAL:
            return (
                f"Alert: {self.trip_name} has consumed "
                f"{self.utilization:.0f}% of the budget."
            )
        return f"Heads-up: {self.trip_name} is at {self.utilization:.0f}% budget."
