"""
Google Sheets Record Store

DESIGN DECISION: Google Sheets is offered as a zero-setup backend because:
1. A household can read their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for one household)
- No transactions (the proposal workflow orders its writes so a failure
  never leaves an accepted proposal without its split row)
- Limited query capabilities (we filter in Python)

Each table is one worksheet whose first row holds the column names.
Cells are JSON encoded so numbers, lists and nulls survive the round trip.
"""

import json
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pay_allocator.config import get_settings
from pay_allocator.services.storage.interface import (
    DuplicateError,
    Record,
    RecordStore,
    StorageError,
    StoreConnectionError,
    Table,
    UnauthenticatedError,
    normalize_record,
    record_matches,
    sort_records,
)


# Column layout for each worksheet
TABLE_COLUMNS: dict[Table, list[str]] = {
    Table.ACCOUNTS: ["id", "name", "type", "owner_ids"],
    Table.EXPENSES: [
        "id",
        "name",
        "raw_amount",
        "raw_frequency",
        "normalised_amount",
        "account_id",
        "category_id",
        "created_by",
        "created_at",
        "updated_at",
    ],
    Table.EXPENSE_SPLITS: ["id", "expense_id", "user_id", "ratio"],
    Table.INCOME: ["id", "user_id", "source", "raw_amount", "raw_frequency", "created_at"],
    Table.CATEGORIES: ["id", "name"],
    Table.SPLIT_SUGGESTIONS: [
        "id",
        "expense_id",
        "from_user_id",
        "to_user_id",
        "suggested_ratio",
        "suggested_amount",
        "status",
        "created_at",
    ],
    Table.USERS: ["id", "name", "email"],
    Table.AUDIT_LOG: [
        "id",
        "event_id",
        "timestamp",
        "event_type",
        "severity",
        "entity_type",
        "entity_id",
        "actor_id",
        "correlation_id",
        "description",
        "details",
        "error_code",
        "error_message",
    ],
}

_RETRY = dict(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(StoreConnectionError),
    reraise=True,
)


def encode_row(table: Table, record: Mapping[str, Any]) -> list[str]:
    """Convert a record to a worksheet row in column order."""
    return [
        "" if record.get(column) is None else json.dumps(record.get(column))
        for column in TABLE_COLUMNS[table]
    ]


def decode_row(table: Table, row: list[str]) -> Record:
    """Convert a worksheet row back to a record."""
    # Handle missing columns gracefully
    def safe_get(index: int) -> Any:
        try:
            cell = row[index]
        except IndexError:
            return None
        return json.loads(cell) if cell else None

    return {
        column: safe_get(index)
        for index, column in enumerate(TABLE_COLUMNS[table])
    }


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(**_RETRY)
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
                raise UnauthenticatedError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

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

    def get_table_sheet(self, table: Table) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(table.value)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=table.value,
                rows=self._settings.rows_per_new_sheet,
                cols=len(TABLE_COLUMNS[table]),
            )
            sheet.append_row(TABLE_COLUMNS[table])
        return sheet


class GoogleSheetsRecordStore(RecordStore):
    """
    Google Sheets implementation of the record store.

    Sheets has no sessions of its own; the store acts as the user named
    by GOOGLE_SHEETS_PRINCIPAL_ID.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        principal_id: Optional[UUID] = None,
    ):
        self._client = client or GoogleSheetsClient()
        configured = principal_id
        if configured is None:
            setting = get_settings().google_sheets.principal_id
            configured = UUID(setting) if setting else None
        self._principal = configured

    def _sheet(self, table: Table) -> gspread.Worksheet:
        try:
            return self._client.get_table_sheet(table)
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e)

    def _data_rows(self, sheet: gspread.Worksheet) -> list[list[str]]:
        try:
            return sheet.get_all_values()[1:]  # Skip header
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e)

    @retry(**_RETRY)
    async def query(
        self,
        table: Table,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
    ) -> list[Record]:
        """List records with optional filters."""
        sheet = self._sheet(table)
        records = []
        for row in self._data_rows(sheet):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                record = decode_row(table, row)
            except ValueError:
                continue  # Skip malformed rows
            if record_matches(record, filters):
                records.append(record)
        return sort_records(records, order)

    @retry(**_RETRY)
    async def insert(self, table: Table, record: Record) -> Record:
        """Append a record as a new row."""
        stored = normalize_record(record)
        stored.setdefault("id", str(uuid4()))
        sheet = self._sheet(table)
        if any(row and row[0] == json.dumps(stored["id"]) for row in self._data_rows(sheet)):
            raise DuplicateError(f"{table.value} already has a record with id {stored['id']}")
        try:
            sheet.append_row(encode_row(table, stored), value_input_option="RAW")
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e)
        return {column: stored.get(column) for column in TABLE_COLUMNS[table]}

    @retry(**_RETRY)
    async def update(
        self,
        table: Table,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        """Rewrite every matching row with the patch applied."""
        sheet = self._sheet(table)
        changes = normalize_record(patch)
        count = 0
        # Start from 2 (row 1 is header)
        for idx, row in enumerate(self._data_rows(sheet), start=2):
            if not row or not row[0]:
                continue
            record = decode_row(table, row)
            if not record_matches(record, filters):
                continue
            record.update(changes)
            try:
                sheet.update(
                    values=[encode_row(table, record)],
                    range_name=f"A{idx}",
                    value_input_option="RAW",
                )
            except gspread.exceptions.APIError as e:
                raise _translate_api_error(e)
            count += 1
        return count

    @retry(**_RETRY)
    async def delete(self, table: Table, filters: Mapping[str, Any]) -> int:
        """Delete every matching row."""
        sheet = self._sheet(table)
        targets = [
            idx
            for idx, row in enumerate(self._data_rows(sheet), start=2)
            if row and row[0] and record_matches(decode_row(table, row), filters)
        ]
        # Bottom-up so earlier deletions don't shift later indexes
        for idx in reversed(targets):
            try:
                sheet.delete_rows(idx)
            except gspread.exceptions.APIError as e:
                raise _translate_api_error(e)
        return len(targets)

    async def current_principal(self) -> UUID:
        if self._principal is None:
            raise UnauthenticatedError(
                "No principal configured for the Google Sheets store"
            )
        return self._principal


def _translate_api_error(error: gspread.exceptions.APIError) -> StorageError:
    """Tag a Sheets API failure as transient (throttling, server) or permanent."""
    status = getattr(getattr(error, "response", None), "status_code", None)
    if status in (401, 403):
        return UnauthenticatedError(f"Google Sheets refused the credentials: {error}")
    if status == 429 or (status is not None and status >= 500):
        return StoreConnectionError(f"Google Sheets unavailable: {error}")
    return StorageError(f"Google Sheets request failed: {error}")
