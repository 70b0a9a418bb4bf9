"""
Budget Alert Evaluator

A per-trip state machine over utilization bands. It exists to rate-limit
budget notifications: snapshots are recomputed on every push, but the user
hears about each band at most once per upward crossing.

STATE: session-scoped and in memory only. It is deliberately separate
from the durable reminder store.
"""

from typing import Callable, Optional

from yatra_ledger.models.snapshot import AlertLevel, BudgetAlert


AlertHandler = Callable[[BudgetAlert], None]


class BudgetAlertEvaluator:
    """
    Tracks the last observed alert level per trip.

    Rules:
    1. The first observation of a trip only seeds its level
    2. Moving up into warning or critical fires one alert
    3. Staying in a band, or moving down, never fires
    """

    def __init__(
        self,
        warning_threshold: float = 75.0,
        critical_threshold: float = 90.0,
        on_alert: Optional[AlertHandler] = None,
    ):
        if critical_threshold <= warning_threshold:
            raise ValueError("Critical threshold must be above warning threshold")
        self._warning = warning_threshold
        self._critical = critical_threshold
        self._on_alert = on_alert
        self._levels: dict[str, AlertLevel] = {}

    def classify(self, utilization: float) -> AlertLevel:
        """Band for a utilization percentage."""
        if utilization >= self._critical:
            return AlertLevel.CRITICAL
        if utilization >= self._warning:
            return AlertLevel.WARNING
        return AlertLevel.NORMAL

    def observe(
        self,
        trip_id: str,
        trip_name: str,
        utilization: float,
    ) -> Optional[BudgetAlert]:
        """
        Record a new utilization for a trip.

        Returns:
            The alert that fired, or None
        """
        level = self.classify(utilization)
        previous = self._levels.get(trip_id)
        self._levels[trip_id] = level

        if previous is None or level.rank <= previous.rank:
            return None

        alert = BudgetAlert(
            trip_id=trip_id,
            trip_name=trip_name,
            level=level,
            previous_level=previous,
            utilization=utilization,
        )
        if self._on_alert:
            self._on_alert(alert)
        return alert

    def level_for(self, trip_id: str) -> Optional[AlertLevel]:
        return self._levels.get(trip_id)

    def forget(self, trip_id: str) -> None:
        """Drop a trip's state; its next observation seeds again."""
        self._levels.pop(trip_id, None)
