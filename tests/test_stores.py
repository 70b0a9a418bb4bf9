"""Tests for storage and receipt collaborators."""

import asyncio

import pytest

from yatra_ledger.models import CollectionKind, ScopeKey
from yatra_ledger.normalization import RecordNormalizer
from yatra_ledger.services.image import (
    InMemoryReceiptStorage,
    ReceiptTooLargeError,
    public_id_from_url,
)
from yatra_ledger.services.storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    NotFoundError,
    StorageError,
)
from yatra_ledger.services.storage.google_sheets import (
    EXPENSE_COLUMNS,
    TRIP_COLUMNS,
    record_to_row,
    row_to_record,
)

from conftest import OWNER, START, expense_data, trip_data


class TestJsonFileKeyValueStore:
    """Tests for the durable JSON file store."""

    def test_set_get_delete(self, tmp_path):
        """Test basic operations persist across instances."""
        path = tmp_path / "nested" / "reminders.json"
        store = JsonFileKeyValueStore(path)
        store.set("a", {"interval": 60})

        assert JsonFileKeyValueStore(path).get("a") == {"interval": 60}

        store.delete("a")
        store.delete("missing")
        assert JsonFileKeyValueStore(path).get("a") is None

    def test_missing_file_reads_empty(self, tmp_path):
        """Test that a fresh store has no keys."""
        assert JsonFileKeyValueStore(tmp_path / "none.json").get("a") is None

    def test_corrupt_file_reads_empty(self, tmp_path):
        """Test that a corrupt file does not crash the reader."""
        path = tmp_path / "reminders.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileKeyValueStore(path)
        assert store.get("a") is None

        store.set("a", 1)
        assert store.get("a") == 1

    def test_unserialisable_value_raises_storage_error(self, tmp_path):
        """Test that a failed write surfaces as StorageError and leaves no temp file."""
        store = JsonFileKeyValueStore(tmp_path / "reminders.json")
        with pytest.raises(StorageError):
            store.set("a", object())
        assert [p.name for p in tmp_path.iterdir()] == []


class TestInMemoryKeyValueStore:
    """Tests for the process-lifetime store."""

    def test_values_are_copied(self):
        """Test that callers cannot mutate stored values in place."""
        store = InMemoryKeyValueStore()
        value = {"interval": 60}
        store.set("a", value)
        value["interval"] = 5
        assert store.get("a") == {"interval": 60}
        assert store.keys() == ["a"]


class TestInMemoryEventSource:
    """Tests for the in-memory event source writes."""

    def test_only_budget_and_interval_are_updatable(self, source):
        """Test that other trip fields cannot be written."""
        source.seed_trip(OWNER, "t1", trip_data())
        with pytest.raises(StorageError):
            asyncio.run(source.update_trip(OWNER, "t1", {"name": "Renamed"}))

    def test_update_unknown_trip(self, source):
        """Test that updating a missing trip raises NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(source.update_trip(OWNER, "nope", {"budget": 10}))

    def test_expense_needs_existing_trip(self, source):
        """Test that expenses cannot be created for a missing trip."""
        with pytest.raises(NotFoundError):
            asyncio.run(source.create_expense(OWNER, "nope", expense_data(10)))

    def test_delete_reports_whether_something_was_deleted(self, source):
        """Test delete_expense return values."""
        source.seed_trip(OWNER, "t1", trip_data())
        expense_id = asyncio.run(source.create_expense(OWNER, "t1", expense_data(10)))
        assert asyncio.run(source.delete_expense(OWNER, "t1", expense_id)) is True
        assert asyncio.run(source.delete_expense(OWNER, "t1", expense_id)) is False

    def test_unreadable_timestamps_sort_last(self, source):
        """Test that expenses with unusable event times still push, oldest position."""
        source.seed_trip(OWNER, "t1", trip_data())
        source.seed_expense(OWNER, "t1", "edge", expense_data(5, timestamp="9999-12-31T23:00:00-05:00"))
        source.seed_expense(OWNER, "t1", "e1", expense_data(10))

        pushes = []
        source.subscribe(
            CollectionKind.EXPENSES,
            ScopeKey(owner_id=OWNER, parent_id="t1"),
            lambda records, error: pushes.append([record.id for record in records]),
        )
        assert pushes == [["e1", "edge"]]

    def test_unsubscribe_is_idempotent(self, source):
        """Test that unsubscribing twice is harmless."""
        scope = ScopeKey(owner_id=OWNER)
        subscription = source.subscribe(CollectionKind.TRIPS, scope, lambda records, error: None)
        subscription.unsubscribe()
        subscription.unsubscribe()
        assert source.subscriber_count(CollectionKind.TRIPS, scope) == 0


class TestSheetRows:
    """Tests for spreadsheet row conversion."""

    def test_expense_row_round_trip(self):
        """Test that an expense survives row conversion and normalization."""
        data = expense_data(
            "125.50",
            category="local commute",
            location={"lat": 15.5, "label": "Panaji"},
            notes="auto",
        )
        row = record_to_row(CollectionKind.EXPENSES, "e1", OWNER, data, trip_id="t1")
        assert len(row) == len(EXPENSE_COLUMNS)
        assert row[EXPENSE_COLUMNS.index("lng")] == ""

        record = row_to_record(CollectionKind.EXPENSES, row)
        assert record.id == "e1"
        assert record.data["tripId"] == "t1"
        assert record.data["location"] == {"lat": "15.5", "label": "Panaji"}

        expense = RecordNormalizer().normalize_expense(record.id, record.data)
        assert expense.amount == 125.5
        assert expense.timestamp == START
        assert expense.location.lat == 15.5

    def test_trip_row_empty_cells_are_missing(self):
        """Test that empty cells become missing fields."""
        row = record_to_row(CollectionKind.TRIPS, "t1", OWNER, {"name": "Goa", "budget": 0})
        assert len(row) == len(TRIP_COLUMNS)
        record = row_to_record(CollectionKind.TRIPS, row)
        assert "destination" not in record.data
        assert "reminderIntervalMinutes" not in record.data

    def test_short_rows(self):
        """Test that trailing empty cells trimmed by the API are tolerated."""
        record = row_to_record(CollectionKind.TRIPS, ["t1", OWNER, "Goa"])
        assert record.data == {"ownerId": OWNER, "name": "Goa"}


class TestReceipts:
    """Tests for receipt storage helpers."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            (
                "https://res.cloudinary.com/demo/image/upload/v1710072000/yatra_ledger/receipts/abc_123.jpg",
                "yatra_ledger/receipts/abc_123",
            ),
            (
                "https://res.cloudinary.com/demo/image/upload/c_fill,w_200/v17/receipts/abc.png?x=1",
                "receipts/abc",
            ),
            ("https://res.cloudinary.com/demo/image/upload/receipts/abc.jpg", "receipts/abc"),
            ("memory://receipts/abc/r.jpg", None),
        ],
    )
    def test_public_id_from_url(self, url, expected):
        """Test public ID recovery from delivery URLs."""
        assert public_id_from_url(url) == expected

    def test_in_memory_upload_and_release(self):
        """Test the in-memory receipt store."""
        storage = InMemoryReceiptStorage(max_bytes=10)
        url = asyncio.run(storage.upload_receipt(b"receipt", "r.jpg"))
        assert storage.receipts[url] == b"receipt"
        asyncio.run(storage.delete_receipt(url))
        asyncio.run(storage.delete_receipt(url))
        assert storage.receipts == {}

    def test_in_memory_size_limit(self):
        """Test that oversized receipts are refused."""
        storage = InMemoryReceiptStorage(max_bytes=4)
        with pytest.raises(ReceiptTooLargeError):
            asyncio.run(storage.upload_receipt(b"too large", "r.jpg"))
