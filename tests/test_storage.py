"""
Tests for table storage and the audit logger.

The Google Sheets backend runs against a fake spreadsheet; no network.
"""

import json
from datetime import datetime, timezone

import gspread
import pytest

from src.audit import AuditLogger
from src.config.settings import GoogleSheetsSettings
from src.models.audit import AuditEventBuilder, AuditEventType
from src.models.table import Column, ColumnType, Row, Table
from src.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
    InMemoryTableStorage,
    StorageError,
    StorageNotProvisionedError,
    TableTooLargeError,
)
from src.services.storage.google_sheets import AUDIT_COLUMNS, MAX_CELL_CHARS, TABLE_COLUMNS


class FakeWorksheet:
    """The subset of gspread.Worksheet the storage layer uses."""

    def __init__(self, title):
        self.title = title
        self.values: list[list] = []

    def get_all_values(self):
        return [list(row) for row in self.values]

    def append_row(self, row, value_input_option=None):
        self.values.append(list(row))

    def update(self, range_name=None, values=None, value_input_option=None):
        # Only whole-row updates starting at column A are issued
        row_number = int(range_name.split(":")[0][1:])
        self.values[row_number - 1] = list(values[0])

    def delete_rows(self, index):
        del self.values[index - 1]


class FakeSpreadsheet:
    def __init__(self):
        self.sheets: dict[str, FakeWorksheet] = {}

    def worksheet(self, title):
        if title not in self.sheets:
            raise gspread.WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title, rows, cols):
        sheet = FakeWorksheet(title)
        self.sheets[title] = sheet
        return sheet


@pytest.fixture
def sheets_client():
    settings = GoogleSheetsSettings(
        credentials_path=__file__,
        spreadsheet_id="spreadsheet-1",
    )
    client = GoogleSheetsClient(settings)
    client._spreadsheet = FakeSpreadsheet()
    return client


def _table(table_id="t1", name="Budget", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)):
    return Table(
        id=table_id,
        name=name,
        columns=[
            Column(key="item"),
            Column(key="amount", type=ColumnType.CURRENCY, aggregation="sum"),
            Column(key="paid", type=ColumnType.CHECKBOX),
        ],
        rows=[Row(id="r1", cells={"item": "Rent", "amount": 1500.0, "paid": True})],
        created_at=created_at,
        theme_color="#10b981",
    )


class TestInMemoryTableStorage:
    """Dict-backed storage."""

    async def test_upsert_and_list(self):
        storage = InMemoryTableStorage()
        await storage.upsert_table("u1", _table("a", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        await storage.upsert_table("u1", _table("b", created_at=datetime(2024, 2, 1, tzinfo=timezone.utc)))
        await storage.upsert_table("u2", _table("c"))

        tables = await storage.list_tables("u1")
        assert [t.id for t in tables] == ["b", "a"]

    async def test_upsert_replaces(self):
        storage = InMemoryTableStorage()
        await storage.upsert_table("u1", _table(name="Old"))
        await storage.upsert_table("u1", _table(name="New"))
        tables = await storage.list_tables("u1")
        assert [t.name for t in tables] == ["New"]

    async def test_snapshots_are_copies(self):
        storage = InMemoryTableStorage()
        table = _table()
        await storage.upsert_table("u1", table)
        table.rows[0].cells["amount"] = 0
        stored = (await storage.list_tables("u1"))[0]
        assert stored.rows[0].cells["amount"] == 1500.0

    async def test_delete_unknown_is_noop(self):
        storage = InMemoryTableStorage()
        await storage.delete_table("missing")
        assert storage.table_ids == set()

    async def test_not_provisioned(self):
        storage = InMemoryTableStorage(provisioned=False)
        with pytest.raises(StorageNotProvisionedError):
            await storage.list_tables("u1")
        await storage.provision()
        assert await storage.list_tables("u1") == []

    async def test_not_provisioned_is_storage_error(self):
        assert issubclass(StorageNotProvisionedError, StorageError)

    async def test_fail_with(self):
        storage = InMemoryTableStorage()
        storage.fail_with = OSError("disk")
        with pytest.raises(StorageError, match="disk"):
            await storage.upsert_table("u1", _table())


class TestGoogleSheetsTableStorage:
    """Sheets backend over a fake spreadsheet."""

    async def test_missing_worksheet_is_not_provisioned(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        with pytest.raises(StorageNotProvisionedError):
            await storage.list_tables("u1")

    async def test_provision_creates_header(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        sheet = sheets_client._spreadsheet.sheets["FinanceTables"]
        assert sheet.values == [TABLE_COLUMNS]

        # Provisioning twice is harmless
        await storage.provision()
        assert sheet.values == [TABLE_COLUMNS]

    async def test_round_trip(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        table = _table()

        await storage.upsert_table("u1", table)
        loaded = await storage.list_tables("u1")

        assert loaded == [table]
        assert await storage.list_tables("someone-else") == []

    async def test_row_layout(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        await storage.upsert_table("u1", _table())

        row = sheets_client._spreadsheet.sheets["FinanceTables"].values[1]
        assert row[:3] == ["t1", "u1", "Budget"]
        assert json.loads(row[4])[1] == {
            "key": "amount", "label": "", "type": "currency", "aggregation": "sum",
        }
        assert json.loads(row[5]) == [
            {"id": "r1", "cells": {"item": "Rent", "amount": 1500.0, "paid": True}}
        ]

    async def test_upsert_updates_in_place(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        await storage.upsert_table("u1", _table("a", name="First"))
        await storage.upsert_table("u1", _table("b"))
        await storage.upsert_table("u1", _table("a", name="Renamed"))

        sheet = sheets_client._spreadsheet.sheets["FinanceTables"]
        assert [row[0] for row in sheet.values[1:]] == ["a", "b"]
        assert sheet.values[1][2] == "Renamed"

    async def test_delete(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        await storage.upsert_table("u1", _table("a"))
        await storage.upsert_table("u1", _table("b"))

        await storage.delete_table("a")
        await storage.delete_table("missing")

        assert [t.id for t in await storage.list_tables("u1")] == ["b"]

    async def test_malformed_rows_skipped(self, sheets_client):
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        await storage.upsert_table("u1", _table("good"))
        sheet = sheets_client._spreadsheet.sheets["FinanceTables"]
        sheet.values.append(["bad", "u1", "Broken", "", "{not json", "[]", "", "", ""])
        sheet.values.append([])

        assert [t.id for t in await storage.list_tables("u1")] == ["good"]

    async def test_legacy_rows_read(self, sheets_client):
        """Flat rows and 'string' columns from older records still load."""
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        sheet = sheets_client._spreadsheet.sheets["FinanceTables"]
        sheet.values.append([
            "old", "u1", "Legacy", "",
            json.dumps([{"key": "cat", "label": "Categoria", "type": "string"}]),
            json.dumps([{"id": "r1", "cat": "Casa"}]),
            "", "2023-05-01T00:00:00+00:00", "",
        ])

        table = (await storage.list_tables("u1"))[0]
        assert table.columns[0].type == ColumnType.TEXT
        assert table.rows[0].cells == {"cat": "Casa"}

    async def test_oversized_table_rejected_without_write(self, sheets_client):
        """A snapshot over the per-cell limit fails fast and leaves the sheet alone."""
        storage = GoogleSheetsTableStorage(sheets_client)
        await storage.provision()
        table = _table("big")
        table.rows = [
            Row(id=f"r{i}", cells={"item": "x" * 100, "amount": float(i)})
            for i in range(600)
        ]

        with pytest.raises(TableTooLargeError) as excinfo:
            await storage.upsert_table("u1", table)

        assert isinstance(excinfo.value, StorageError)
        assert str(MAX_CELL_CHARS) in str(excinfo.value)
        sheet = sheets_client._spreadsheet.sheets["FinanceTables"]
        assert sheet.values == [TABLE_COLUMNS]


class TestAuditStorageAndLogger:
    """Audit persistence and the logger front end."""

    async def test_audit_sheet_created_on_demand(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        event = AuditEventBuilder.table_deleted(table_id="t1")

        assert await storage.append_event(event) is True
        sheet = sheets_client._spreadsheet.sheets["AuditLog"]
        assert sheet.values[0] == AUDIT_COLUMNS
        assert sheet.values[1][0] == str(event.event_id)

    async def test_events_by_entity_and_recent(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        first = AuditEventBuilder.table_created(table_id="t1", name="A", source="user")
        second = AuditEventBuilder.table_deleted(table_id="t1")
        other = AuditEventBuilder.table_deleted(table_id="t2")
        for event in (first, second, other):
            await storage.append_event(event)

        events = await storage.get_events_by_entity("table", "t1")
        assert [e.event_type for e in events] == [
            AuditEventType.TABLE_CREATED, AuditEventType.TABLE_DELETED,
        ]
        assert events[0].details == {"name": "A", "source": "user"}
        assert len(await storage.get_recent_events(limit=2)) == 2

    async def test_logger_keeps_events_in_memory(self):
        audit_logger = AuditLogger()
        await audit_logger.log_table_deleted(table_id="t1")
        await audit_logger.log_persist_failed(
            table_id="t1", operation="update", error_message="boom",
        )
        assert [e.event_type for e in audit_logger.events] == [
            AuditEventType.TABLE_DELETED, AuditEventType.PERSIST_FAILED,
        ]

    async def test_logger_survives_storage_failure(self):
        class BrokenAuditStorage:
            async def append_event(self, event):
                raise RuntimeError("sheet gone")

        audit_logger = AuditLogger(BrokenAuditStorage())
        ok = await audit_logger.log(AuditEventBuilder.storage_provisioned())
        assert ok is False
        assert len(audit_logger.events) == 1
