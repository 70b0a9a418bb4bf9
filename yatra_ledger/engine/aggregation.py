"""
Aggregation Engine

DESIGN DECISION: Derivation is a pure function of (trip, expenses, tz).
It runs synchronously on every full-replace push, in a single pass over
the expenses, with no clock, no randomness and no hidden state. Calling
it twice with the same inputs gives the same snapshot.

The time zone used to bucket expenses into calendar days is an explicit
argument. Day totals never depend on where the process happens to run.
"""

from datetime import date, tzinfo
from typing import Iterable

from yatra_ledger.models.snapshot import DailySpend, SpendSummary, TripSnapshot
from yatra_ledger.models.trip import Expense, ExpenseCategory, Trip


_CATEGORY_ORDER = {category: index for index, category in enumerate(ExpenseCategory)}


def budget_utilization(total_spend: float, budget: float) -> float:
    """
    Percent of budget spent, rounded to 2 decimals.

    0 when there is no budget. Not clamped: 150.0 means 50% over.
    """
    if not budget:
        return 0.0
    return round(total_spend / budget * 100, 2)


def derive(trip: Trip, expenses: Iterable[Expense], tz: tzinfo) -> TripSnapshot:
    """
    Derive the analytics snapshot for one trip.

    Args:
        trip: The trip the expenses belong to
        expenses: The trip's current expenses, in any order
        tz: Time zone whose calendar days the daily totals use

    Returns:
        The trip plus total, daily and category totals and utilization
    """
    total_spend = 0.0
    daily: dict[date, float] = {}
    by_category: dict[ExpenseCategory, float] = {}
    count = 0

    for expense in expenses:
        amount = expense.amount
        total_spend += amount
        day = expense.timestamp.astimezone(tz).date()
        daily[day] = daily.get(day, 0.0) + amount
        by_category[expense.category] = by_category.get(expense.category, 0.0) + amount
        count += 1

    return TripSnapshot(
        **trip.model_dump(),
        total_spend=total_spend,
        daily_totals={day: daily[day] for day in sorted(daily)},
        category_totals={
            category: by_category[category]
            for category in sorted(by_category, key=_CATEGORY_ORDER.__getitem__)
        },
        budget_utilization=budget_utilization(total_spend, trip.budget),
        expense_count=count,
    )


def daily_timeline(snapshot: TripSnapshot) -> list[DailySpend]:
    """Daily totals as a date-ordered series."""
    return [
        DailySpend(day=day, amount=amount)
        for day, amount in sorted(snapshot.daily_totals.items())
    ]


def summarize(snapshot: TripSnapshot) -> SpendSummary:
    """
    Headline numbers for a trip.

    Average daily spend is over the days that have spend; with no
    recorded days it falls back to the total (which is then 0).
    """
    recorded_days = len(snapshot.daily_totals)
    return SpendSummary(
        total_spend=snapshot.total_spend,
        average_daily_spend=snapshot.total_spend / (recorded_days or 1),
        peak_daily_spend=max(snapshot.daily_totals.values(), default=0.0),
        remaining_budget=max(snapshot.budget - snapshot.total_spend, 0.0),
        recorded_days=recorded_days,
    )
