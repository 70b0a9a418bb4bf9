"""
Shared fixtures for Yatra Ledger tests.

No real network or notification calls: every collaborator is a fake.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from yatra_ledger.audit import AuditLogger
from yatra_ledger.config import EngineSettings
from yatra_ledger.services.notifications import NotificationService
from yatra_ledger.services.storage import (
    InMemoryEventSource,
    InMemoryKeyValueStore,
    KeyValueStore,
    StorageError,
)


OWNER = "owner-1"
START = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(NotificationService):
    """Records notifications; permission and failures are configurable."""

    def __init__(
        self,
        granted: bool = True,
        gate: Optional[asyncio.Event] = None,
        fail_with: Optional[Exception] = None,
    ):
        self.granted = granted
        self.gate = gate
        self.fail_with = fail_with
        self.permission_requests = 0
        self.sent: list[tuple[str, str, str]] = []

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.granted

    def notify(self, title: str, body: str, tag: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((title, body, tag))


class BrokenKeyValueStore(KeyValueStore):
    """A durable store that fails on every call."""

    def __init__(self):
        self.calls = 0

    def get(self, key: str) -> Optional[Any]:
        self.calls += 1
        raise StorageError("disk unavailable")

    def set(self, key: str, value: Any) -> None:
        self.calls += 1
        raise StorageError("disk unavailable")

    def delete(self, key: str) -> None:
        self.calls += 1
        raise StorageError("disk unavailable")


def expense_data(amount, category="food", timestamp=START, **extra) -> dict[str, Any]:
    data = {
        "amount": amount,
        "category": category,
        "timestamp": timestamp.isoformat() if isinstance(timestamp, datetime) else timestamp,
        "createdAt": START.isoformat(),
    }
    data.update(extra)
    return data


def trip_data(name="Goa", budget=1000, start="2024-03-09", **extra) -> dict[str, Any]:
    data = {
        "name": name,
        "destination": name,
        "startDate": start,
        "endDate": "2024-03-15",
        "budget": budget,
        "currency": "INR",
        "createdAt": START.isoformat(),
    }
    data.update(extra)
    return data


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def source() -> InMemoryEventSource:
    return InMemoryEventSource()


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger(history_size=200)


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        _env_file=None,
        timezone="UTC",
        reminder_store_path=None,
    )
