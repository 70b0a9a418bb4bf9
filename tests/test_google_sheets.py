"""Tests for the Google Sheets event source against a fake spreadsheet."""

import asyncio
from datetime import timedelta

import pytest

from yatra_ledger.models import CollectionKind, ScopeKey
from yatra_ledger.services.storage import GoogleSheetsEventSource, NotFoundError, StorageError
from yatra_ledger.services.storage.google_sheets import (
    EXPENSE_COLUMNS,
    TRIP_COLUMNS,
    record_to_row,
)

from conftest import OWNER, START, expense_data, trip_data


class FakeWorksheet:
    """The subset of gspread.Worksheet the event source uses."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None) -> None:
        self.rows.append(list(row))

    def update_cell(self, row: int, col: int, value: str) -> None:
        self.rows[row - 1][col - 1] = value

    def delete_rows(self, index: int) -> None:
        del self.rows[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    poll_interval_seconds = 60.0

    def __init__(self):
        self.sheets = {
            CollectionKind.TRIPS: FakeWorksheet(TRIP_COLUMNS),
            CollectionKind.EXPENSES: FakeWorksheet(EXPENSE_COLUMNS),
        }

    def get_sheet(self, collection: CollectionKind) -> FakeWorksheet:
        return self.sheets[collection]


@pytest.fixture
def client() -> FakeSheetsClient:
    client = FakeSheetsClient()
    trips = client.sheets[CollectionKind.TRIPS]
    trips.append_row(record_to_row(CollectionKind.TRIPS, "t2", OWNER, trip_data("Leh", start="2024-06-01")))
    trips.append_row(record_to_row(CollectionKind.TRIPS, "t1", OWNER, trip_data("Goa")))
    trips.append_row(record_to_row(CollectionKind.TRIPS, "x1", "someone-else", trip_data("Oslo")))

    expenses = client.sheets[CollectionKind.EXPENSES]
    expenses.append_row(record_to_row(
        CollectionKind.EXPENSES, "e1", OWNER, expense_data(10, timestamp=START - timedelta(hours=1)), trip_id="t1",
    ))
    expenses.append_row(record_to_row(
        CollectionKind.EXPENSES, "e2", OWNER, expense_data(20), trip_id="t1",
    ))
    expenses.append_row(record_to_row(
        CollectionKind.EXPENSES, "e3", OWNER, expense_data(30), trip_id="t2",
    ))
    return client


class TestFetch:
    """Tests for scope filtering and ordering."""

    def test_trips_filtered_by_owner_and_ordered(self, client):
        """Test that only the owner's trips come back, by start date."""
        source = GoogleSheetsEventSource(client)
        records = source.fetch(CollectionKind.TRIPS, ScopeKey(owner_id=OWNER))
        assert [record.id for record in records] == ["t1", "t2"]

    def test_expenses_filtered_by_trip_and_newest_first(self, client):
        """Test that only the trip's expenses come back, newest first."""
        source = GoogleSheetsEventSource(client)
        records = source.fetch(CollectionKind.EXPENSES, ScopeKey(owner_id=OWNER, parent_id="t1"))
        assert [record.id for record in records] == ["e2", "e1"]


class TestSubscriptions:
    """Tests for polling subscriptions."""

    def test_push_on_subscribe_and_after_write(self, client):
        """Test that a write wakes the subscription and pushes the new set."""
        source = GoogleSheetsEventSource(client)
        scope = ScopeKey(owner_id=OWNER, parent_id="t1")

        async def scenario():
            pushes = []
            subscription = source.subscribe(
                CollectionKind.EXPENSES,
                scope,
                lambda records, error: pushes.append([record.id for record in records]),
            )
            await asyncio.sleep(0.1)
            new_id = await source.create_expense(
                OWNER, "t1", expense_data(5, timestamp=START + timedelta(hours=1)),
            )
            await asyncio.sleep(0.1)
            subscription.unsubscribe()
            return pushes, new_id

        pushes, new_id = asyncio.run(scenario())
        assert pushes == [["e2", "e1"], [new_id, "e2", "e1"]]

    def test_subscribe_requires_running_loop(self, client):
        """Test that polling subscriptions need an event loop."""
        source = GoogleSheetsEventSource(client)
        with pytest.raises(RuntimeError):
            source.subscribe(CollectionKind.TRIPS, ScopeKey(owner_id=OWNER), lambda r, e: None)


class TestWrites:
    """Tests for writes against the sheet."""

    def test_update_trip_cells(self, client):
        """Test that the budget cell is rewritten."""
        source = GoogleSheetsEventSource(client)
        asyncio.run(source.update_trip(OWNER, "t1", {"budget": 2500.0}))
        records = source.fetch(CollectionKind.TRIPS, ScopeKey(owner_id=OWNER))
        assert records[0].data["budget"] == "2500.0"

    def test_update_missing_trip(self, client):
        """Test that updating an unknown trip raises NotFoundError."""
        source = GoogleSheetsEventSource(client)
        with pytest.raises(NotFoundError):
            asyncio.run(source.update_trip(OWNER, "nope", {"budget": 1}))

    def test_update_rejects_other_fields(self, client):
        """Test that only budget and reminder interval are writable."""
        source = GoogleSheetsEventSource(client)
        with pytest.raises(StorageError):
            asyncio.run(source.update_trip(OWNER, "t1", {"name": "x"}))

    def test_delete_expense(self, client):
        """Test row deletion."""
        source = GoogleSheetsEventSource(client)
        assert asyncio.run(source.delete_expense(OWNER, "t1", "e1")) is True
        assert asyncio.run(source.delete_expense(OWNER, "t1", "e1")) is False
