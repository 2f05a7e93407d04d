"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted remote record store because:
1. The user owns the spreadsheet; there is no third-party database to trust
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

The spreadsheet is an UNTRUSTED store: every row it holds has already
been through the mapper, so sensitive columns are base64 ciphertext and
nonces. Opening the sheet shows dates, types and categories - never
amounts or notes.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python, plaintext columns only)

Network calls are retried on transient API errors. Nothing above this
layer retries.
"""

import json
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from datum.config import get_settings
from datum.models.audit import AuditEvent, AuditEventType, AuditSeverity
from datum.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    Record,
    RecordQuery,
    RecordStoreInterface,
    StorageError,
)
from datum.services.storage.memory import apply_query


# Column layout of the transactions sheet (storage shape only)
TRANSACTION_COLUMNS = [
    "id",
    "encrypted_amount",
    "iv_amount",
    "type",
    "transaction_date",
    "category_id",
    "mood",
    "encrypted_notes",
    "iv_notes",
    "tags",
    "created_at",
    "updated_at",
]

# Plaintext reference data
CATEGORY_COLUMNS = [
    "id",
    "name",
    "icon",
    "color",
    "created_at",
    "updated_at",
]

TAG_COLUMNS = [
    "id",
    "name",
    "created_at",
]

# Columns holding JSON lists
JSON_COLUMNS = {"tags"}

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
    "is_user_action",
]


network_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @network_retry
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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except (ValueError, gspread.exceptions.GSpreadException) as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS, rows=200)

    def get_tags_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.tags_sheet_name, TAG_COLUMNS, rows=500)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def record_to_row(columns: list[str], record: Record) -> list[str]:
    """Serialize a storage-shaped record to sheet cells."""
    row = []
    for column in columns:
        value = record.get(column)
        if value is None:
            row.append("")
        elif column in JSON_COLUMNS:
            row.append(json.dumps(value))
        else:
            row.append(str(getattr(value, "value", value)))
    return row


def _parse_json_cell(cell: str):
    if not cell:
        return []
    try:
        return json.loads(cell)
    except ValueError:
        # Hand-edited cell; left raw so record validation reports it
        return cell


def row_to_record(columns: list[str], row: list[str]) -> Record:
    """Parse sheet cells back into a record (empty cells become None)."""
    record: Record = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if column in JSON_COLUMNS:
            record[column] = _parse_json_cell(cell)
        else:
            record[column] = cell if cell != "" else None
    return record


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the remote record store.

    One worksheet per table, one record per row, header row first.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._tables = {
            "transactions": (self._client.get_transactions_sheet, TRANSACTION_COLUMNS),
            "categories": (self._client.get_categories_sheet, CATEGORY_COLUMNS),
            "tags": (self._client.get_tags_sheet, TAG_COLUMNS),
        }

    def _sheet(self, table: str) -> tuple[gspread.Worksheet, list[str]]:
        try:
            get_sheet, columns = self._tables[table]
        except KeyError:
            raise StorageError(f"Unknown table: {table}")
        return get_sheet(), columns

    @network_retry
    def _fetch_rows(self, sheet: gspread.Worksheet) -> list[list[str]]:
        return sheet.get_all_values()

    @network_retry
    def _append_row(self, sheet: gspread.Worksheet, row: list[str]) -> None:
        sheet.append_row(row, value_input_option="RAW")

    @network_retry
    def _write_row(self, sheet: gspread.Worksheet, row_number: int, row: list[str]) -> None:
        sheet.update(
            range_name=f"A{row_number}",
            values=[row],
            value_input_option="RAW",
        )

    @network_retry
    def _delete_row(self, sheet: gspread.Worksheet, row_number: int) -> None:
        sheet.delete_rows(row_number)

    def _find_row(self, rows: list[list[str]], record_id: str) -> Optional[int]:
        # Row 1 is the header; sheet rows are 1-based
        for row_number, row in enumerate(rows[1:], start=2):
            if row and row[0] == record_id:
                return row_number
        return None

    async def insert(self, table: str, record: Record) -> Record:
        """Append a storage-shaped record."""
        try:
            sheet, columns = self._sheet(table)
            record_id = str(record["id"])
            if self._find_row(self._fetch_rows(sheet), record_id) is not None:
                raise DuplicateError(f"Record already exists: {record_id}")
            row = record_to_row(columns, record)
            self._append_row(sheet, row)
            return row_to_record(columns, row)
        except StorageError:
            raise
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to insert record: {e}")

    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        """Merge a patch into an existing row."""
        try:
            sheet, columns = self._sheet(table)
            rows = self._fetch_rows(sheet)
            row_number = self._find_row(rows, str(record_id))
            if row_number is None:
                raise NotFoundError(f"Record not found: {record_id}")

            record = row_to_record(columns, rows[row_number - 1])
            record.update(patch)
            row = record_to_row(columns, record)
            self._write_row(sheet, row_number, row)
            return row_to_record(columns, row)
        except StorageError:
            raise
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to update record: {e}")

    async def delete(self, table: str, record_id: str) -> None:
        """Delete a row by record id."""
        try:
            sheet, _ = self._sheet(table)
            row_number = self._find_row(self._fetch_rows(sheet), str(record_id))
            if row_number is None:
                raise NotFoundError(f"Record not found: {record_id}")
            self._delete_row(sheet, row_number)
        except StorageError:
            raise
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to delete record: {e}")

    async def select(self, table: str, query: Optional[RecordQuery] = None) -> list[Record]:
        """Select rows, filtering on plaintext columns in Python."""
        query = query or RecordQuery()
        try:
            sheet, columns = self._sheet(table)
            rows = self._fetch_rows(sheet)[1:]  # Skip header
            records = [row_to_record(columns, row) for row in rows if row and row[0]]
            return apply_query(records, query)
        except StorageError:
            raise
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to select records: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        record = row_to_record(AUDIT_COLUMNS, row)
        return AuditEvent(
            event_id=record["event_id"],
            timestamp=record["timestamp"],
            event_type=AuditEventType(record["event_type"]),
            severity=AuditSeverity(record["severity"]),
            entity_type=record["entity_type"],
            entity_id=record["entity_id"],
            correlation_id=record["correlation_id"],
            description=record["description"] or "",
            details=json.loads(record["details_json"]) if record["details_json"] else {},
            error_code=record["error_code"],
            error_message=record["error_message"],
            is_user_action=(record["is_user_action"] or "").lower() == "true",
        )

    @network_retry
    def _append(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are reported, not raised."""
        try:
            self._append(event.to_sheets_row())
            return True
        except (StorageError, gspread.exceptions.GSpreadException):
            # Audit logging should not break the main flow;
            # AuditLogger records the failure locally
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and row[0]:
                    try:
                        events.append(self._row_to_event(row))
                    except ValueError:
                        continue  # Skip malformed rows

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to get audit events: {e}")
