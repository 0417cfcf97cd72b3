"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. Users can view their data directly in Sheets
2. No database server required
3. Built-in backup (Google's infrastructure)

LAYOUT: One worksheet row per table. The table's columns and rows are
JSON-serialized into single cells, so a table is always read and written
as one whole snapshot.

PROVISIONING: The tables worksheet is NOT created implicitly. If it is
missing, every table operation raises StorageNotProvisionedError and the
caller runs provision() once, as an explicit setup step. The audit sheet
is still created on demand because audit writes must never block the
main flow.

TRADEOFFS:
- Not suitable for high-volume data (fine for personal use)
- No transactions (one row per table keeps writes independent)
- Limited query capabilities (we filter in Python)
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_settings
from src.config.settings import GoogleSheetsSettings
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.table import Column, Row, Table, utc_now
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
    StorageNotProvisionedError,
    TableStorageInterface,
    TableTooLargeError,
)

logger = structlog.get_logger(__name__)


# Column mappings for the tables sheet
TABLE_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "description",
    "columns_json",
    "rows_json",
    "theme_color",
    "created_at",
    "updated_at",
]

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
    "error_message",
    "is_user_action",
]

# Google Sheets rejects any cell longer than this
MAX_CELL_CHARS = 50000

# Retry transient API failures, never a missing worksheet or an oversized table
sheets_retry = retry(
    retry=retry_if_not_exception_type((StorageNotProvisionedError, TableTooLargeError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
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

    def get_tables_sheet(self) -> gspread.Worksheet:
        """
        Get the tables worksheet.

        Raises:
            StorageNotProvisionedError: If the worksheet does not exist
        """
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(self._settings.tables_sheet_name)
        except gspread.WorksheetNotFound:
            raise StorageNotProvisionedError(
                f"Worksheet '{self._settings.tables_sheet_name}' does not exist; "
                "run the storage setup first"
            )

    def create_tables_sheet(self) -> gspread.Worksheet:
        """Get or create the tables worksheet with its header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(self._settings.tables_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.tables_sheet_name,
                rows=1000,
                cols=len(TABLE_COLUMNS),
            )
            sheet.append_row(TABLE_COLUMNS)
            return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.audit_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.audit_sheet_name,
                rows=5000,  # More rows for audit log
                cols=len(AUDIT_COLUMNS),
            )
            sheet.append_row(AUDIT_COLUMNS)
        return sheet


class GoogleSheetsTableStorage(TableStorageInterface):
    """
    Google Sheets implementation of table storage.

    Tables are stored one per worksheet row, keyed by table id, with the
    owner id in its own column for filtering.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _table_to_row(self, owner_id: str, table: Table) -> list:
        """
        Convert a Table to a spreadsheet row.

        Raises:
            TableTooLargeError: If the columns or rows JSON would not fit
                                in one cell
        """
        columns_json = json.dumps([column.model_dump(mode="json") for column in table.columns])
        rows_json = json.dumps([row.model_dump(mode="json") for row in table.rows])
        for label, payload in (("columns", columns_json), ("rows", rows_json)):
            if len(payload) > MAX_CELL_CHARS:
                raise TableTooLargeError(
                    f"Table '{table.name}' is too large to save: its {label} take "
                    f"{len(payload)} characters, the limit per cell is {MAX_CELL_CHARS}"
                )

        return [
            table.id,
            owner_id,
            table.name,
            table.description,
            columns_json,
            rows_json,
            table.theme_color or "",
            table.created_at.isoformat(),
            utc_now().isoformat(),
        ]

    def _row_to_table(self, row: list) -> Table:
        """Convert a spreadsheet row to a Table."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        columns = [Column(**data) for data in json.loads(safe_get(4, "[]"))]
        rows = [Row.model_validate(data) for data in json.loads(safe_get(5, "[]"))]

        return Table(
            id=safe_get(0),
            name=safe_get(2),
            description=safe_get(3),
            columns=columns,
            rows=rows,
            theme_color=safe_get(6) or None,
            created_at=datetime.fromisoformat(safe_get(7)),
        )

    @sheets_retry
    async def list_tables(self, owner_id: str) -> list[Table]:
        """List a user's tables, newest first."""
        try:
            sheet = self._client.get_tables_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            tables = []
            for row in all_rows:
                if not row or not row[0]:  # Skip empty rows
                    continue
                if len(row) < 2 or row[1] != owner_id:
                    continue

                try:
                    tables.append(self._row_to_table(row))
                except Exception as e:
                    logger.warning(
                        "table_row_malformed",
                        table_id=row[0],
                        error=str(e),
                    )

            tables.sort(key=lambda t: t.created_at, reverse=True)
            return tables
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list tables: {e}")

    @sheets_retry
    async def upsert_table(self, owner_id: str, table: Table) -> Table:
        """Replace the row holding this table, or append a new one."""
        try:
            new_row = self._table_to_row(owner_id, table)
            sheet = self._client.get_tables_sheet()
            all_rows = sheet.get_all_values()

            # Start from 2 (row 1 is header)
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == table.id:
                    end_cell = rowcol_to_a1(idx, len(TABLE_COLUMNS))
                    sheet.update(
                        range_name=f"A{idx}:{end_cell}",
                        values=[new_row],
                        value_input_option="RAW",
                    )
                    return table

            sheet.append_row(new_row, value_input_option="RAW")
            return table
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save table: {e}")

    @sheets_retry
    async def delete_table(self, table_id: str) -> None:
        """Delete a table by ID. Unknown ids are ignored."""
        try:
            sheet = self._client.get_tables_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == table_id:
                    sheet.delete_rows(idx)
                    return
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete table: {e}")

    async def provision(self) -> None:
        """Create the tables worksheet if it does not exist."""
        try:
            self._client.create_tables_sheet()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to provision table storage: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception as e:
                logger.warning("audit_row_malformed", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                event for event in self._read_events()
                if event.entity_type == entity_type and event.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
        correlation_id: Optional[UUID] = None,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            events = self._read_events()
            if correlation_id is not None:
                events = [e for e in events if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
