"""
Google Sheets Event Source

DESIGN DECISION: Google Sheets works as a shared remote store because:
1. Travelers can view and fix their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Sheets has no push API, so live subscriptions poll and push the full
  ordered collection whenever the rows for the scope change
- No transactions (each write is one row operation)
- Filtering and ordering happen in Python

The implementation follows the EventSource interface, so the engine does
not know it is talking to a spreadsheet.
"""

import asyncio
from typing import Any, Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from yatra_ledger.config import get_settings
from yatra_ledger.models.trip import CollectionKind, RawRecord, ScopeKey
from yatra_ledger.normalization.normalizer import coerce_date, coerce_instant
from yatra_ledger.services.storage.interface import (
    UPDATABLE_TRIP_FIELDS,
    EventSource,
    Listener,
    NotFoundError,
    StorageError,
    Subscription,
    SubscriptionError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Trips sheet
TRIP_COLUMNS = [
    "id",
    "ownerId",
    "name",
    "destination",
    "startDate",
    "endDate",
    "budget",
    "currency",
    "gradientSeed",
    "reminderIntervalMinutes",
    "createdAt",
]

# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "ownerId",
    "tripId",
    "amount",
    "category",
    "timestamp",
    "lat",
    "lng",
    "locationLabel",
    "notes",
    "imageUrl",
    "createdAt",
]

_LOCATION_COLUMNS = {"lat": "lat", "lng": "lng", "locationLabel": "label"}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def poll_interval_seconds(self) -> float:
        return self._settings.poll_interval_seconds

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, collection: CollectionKind) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection == CollectionKind.TRIPS:
            title, columns = self._settings.trips_sheet_name, TRIP_COLUMNS
        else:
            title, columns = self._settings.expenses_sheet_name, EXPENSE_COLUMNS

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


def _cell(row: list, index: int) -> str:
    try:
        return row[index]
    except IndexError:
        return ""


def row_to_record(collection: CollectionKind, row: list) -> RawRecord:
    """
    Convert a spreadsheet row to a raw record.

    Empty cells become missing fields; the normalizer does the typing.
    """
    columns = TRIP_COLUMNS if collection == CollectionKind.TRIPS else EXPENSE_COLUMNS
    data: dict[str, Any] = {}
    location: dict[str, Any] = {}

    for index, column in enumerate(columns[1:], start=1):
        value = _cell(row, index)
        if value == "":
            continue
        if column in _LOCATION_COLUMNS and collection == CollectionKind.EXPENSES:
            location[_LOCATION_COLUMNS[column]] = value
        else:
            data[column] = value

    if location:
        data["location"] = location
    return RawRecord(id=_cell(row, 0), data=data)


def record_to_row(
    collection: CollectionKind,
    record_id: str,
    owner_id: str,
    data: dict[str, Any],
    trip_id: Optional[str] = None,
) -> list[str]:
    """Convert a storage payload to a spreadsheet row."""
    values = dict(data)
    values["id"] = record_id
    values["ownerId"] = owner_id

    if collection == CollectionKind.EXPENSES:
        values["tripId"] = trip_id
        location = values.pop("location", None) or {}
        for column, key in _LOCATION_COLUMNS.items():
            values[column] = location.get(key)
        columns = EXPENSE_COLUMNS
    else:
        columns = TRIP_COLUMNS

    return ["" if values.get(column) is None else str(values[column]) for column in columns]


class GoogleSheetsSubscription(Subscription):
    """A polling subscription; cancelling it stops the poll task."""

    def __init__(self, collection: CollectionKind, scope: ScopeKey):
        self.collection = collection
        self.scope = scope
        self.active = True
        self.refresh = asyncio.Event()
        self.task: Optional[asyncio.Task] = None

    def unsubscribe(self) -> None:
        self.active = False
        if self.task is not None and not self.task.done():
            self.task.cancel()


class GoogleSheetsEventSource(EventSource):
    """
    Google Sheets implementation of the event source.

    One worksheet per collection, one record per row. Every subscription
    is an asyncio task, so subscribe() must be called from a running loop.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._poll_interval = poll_interval_seconds or self._client.poll_interval_seconds
        self._subscriptions: list[GoogleSheetsSubscription] = []

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def fetch(self, collection: CollectionKind, scope: ScopeKey) -> list[RawRecord]:
        """Read the ordered collection for one scope."""
        sheet = self._client.get_sheet(collection)
        rows = sheet.get_all_values()[1:]  # Skip header

        records = []
        for row in rows:
            if not row or not _cell(row, 0):
                continue
            if _cell(row, 1) != scope.owner_id:
                continue
            if collection == CollectionKind.EXPENSES and _cell(row, 2) != scope.parent_id:
                continue
            records.append(row_to_record(collection, row))

        if collection == CollectionKind.TRIPS:
            records.sort(key=lambda r: _start_key(r.data))
        else:
            records.sort(key=lambda r: _timestamp_key(r.data), reverse=True)
        return records

    def subscribe(
        self,
        collection: CollectionKind,
        scope: ScopeKey,
        listener: Listener,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        subscription = GoogleSheetsSubscription(collection, scope)
        subscription.task = loop.create_task(self._poll(subscription, listener))
        self._subscriptions = [s for s in self._subscriptions if s.active]
        self._subscriptions.append(subscription)
        return subscription

    async def _poll(self, subscription: GoogleSheetsSubscription, listener: Listener) -> None:
        last: Optional[list[RawRecord]] = None

        while subscription.active:
            try:
                records = await asyncio.to_thread(
                    self.fetch, subscription.collection, subscription.scope
                )
            except Exception as e:
                logger.warning(
                    "sheets_poll_failed",
                    collection=subscription.collection.value,
                    error=str(e),
                )
                last = None
                if subscription.active:
                    listener(None, SubscriptionError(f"Failed to read {subscription.collection.value}: {e}"))
            else:
                if subscription.active and records != last:
                    last = records
                    listener(records, None)

            try:
                await asyncio.wait_for(subscription.refresh.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
            subscription.refresh.clear()

    def _wake(self, collection: CollectionKind) -> None:
        for subscription in self._subscriptions:
            if subscription.active and subscription.collection == collection:
                subscription.refresh.set()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, collection: CollectionKind, row: list[str]) -> None:
        sheet = self._client.get_sheet(collection)
        sheet.append_row(row, value_input_option="RAW")

    def _find_row(
        self,
        sheet: gspread.Worksheet,
        record_id: str,
        owner_id: str,
    ) -> Optional[int]:
        all_rows = sheet.get_all_values()
        # Start from 2 (row 1 is header)
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and _cell(row, 0) == record_id and _cell(row, 1) == owner_id:
                return idx
        return None

    def _update_cells(
        self,
        owner_id: str,
        trip_id: str,
        fields: dict[str, Any],
    ) -> None:
        sheet = self._client.get_sheet(CollectionKind.TRIPS)
        row_idx = self._find_row(sheet, trip_id, owner_id)
        if row_idx is None:
            raise NotFoundError(f"Trip not found: {trip_id}")
        for field, value in fields.items():
            col_idx = TRIP_COLUMNS.index(field) + 1
            sheet.update_cell(row_idx, col_idx, "" if value is None else str(value))

    def _delete_row(self, owner_id: str, expense_id: str) -> bool:
        sheet = self._client.get_sheet(CollectionKind.EXPENSES)
        row_idx = self._find_row(sheet, expense_id, owner_id)
        if row_idx is None:
            return False
        sheet.delete_rows(row_idx)
        return True

    async def create_trip(self, owner_id: str, data: dict[str, Any]) -> str:
        trip_id = uuid4().hex
        row = record_to_row(CollectionKind.TRIPS, trip_id, owner_id, data)
        try:
            await asyncio.to_thread(self._append, CollectionKind.TRIPS, row)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save trip: {e}")
        self._wake(CollectionKind.TRIPS)
        return trip_id

    async def update_trip(
        self,
        owner_id: str,
        trip_id: str,
        fields: dict[str, Any],
    ) -> None:
        unknown = set(fields) - UPDATABLE_TRIP_FIELDS
        if unknown:
            raise StorageError(f"Trip fields are not updatable: {sorted(unknown)}")
        try:
            await asyncio.to_thread(self._update_cells, owner_id, trip_id, fields)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update trip: {e}")
        self._wake(CollectionKind.TRIPS)

    async def create_expense(
        self,
        owner_id: str,
        trip_id: str,
        data: dict[str, Any],
    ) -> str:
        expense_id = uuid4().hex
        row = record_to_row(CollectionKind.EXPENSES, expense_id, owner_id, data, trip_id=trip_id)
        try:
            await asyncio.to_thread(self._append, CollectionKind.EXPENSES, row)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")
        self._wake(CollectionKind.EXPENSES)
        return expense_id

    async def delete_expense(
        self,
        owner_id: str,
        trip_id: str,
        expense_id: str,
    ) -> bool:
        try:
            deleted = await asyncio.to_thread(self._delete_row, owner_id, expense_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")
        if deleted:
            self._wake(CollectionKind.EXPENSES)
        return deleted


def _start_key(data: dict[str, Any]) -> tuple:
    start = coerce_date(data.get("startDate"))
    return (start is None, start.isoformat() if start else "")


def _timestamp_key(data: dict[str, Any]) -> float:
    instant = coerce_instant(data.get("timestamp"))
    return instant.timestamp() if instant else float("-inf")
