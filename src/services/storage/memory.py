"""
In-Memory Storage Implementation

Keeps table snapshots in a dict. Used by the test suite and for running
without Google credentials. Snapshots are deep-copied on the way in and
out, so callers can never alias stored state.

Can be constructed unprovisioned to exercise the setup flow.
"""

from typing import Optional

from src.models.table import Table
from src.services.storage.interface import (
    StorageError,
    StorageNotProvisionedError,
    TableStorageInterface,
)


class InMemoryTableStorage(TableStorageInterface):
    """Dict-backed table storage."""

    def __init__(self, provisioned: bool = True):
        self._provisioned = provisioned
        # table_id -> (owner_id, table)
        self._tables: dict[str, tuple[str, Table]] = {}
        # Set to an exception to make the next calls fail (for tests)
        self.fail_with: Optional[Exception] = None

    def _check(self) -> None:
        if not self._provisioned:
            raise StorageNotProvisionedError("In-memory table storage is not provisioned")
        if self.fail_with is not None:
            raise StorageError(str(self.fail_with)) from self.fail_with

    async def list_tables(self, owner_id: str) -> list[Table]:
        self._check()
        tables = [
            table.model_copy(deep=True)
            for owner, table in self._tables.values()
            if owner == owner_id
        ]
        tables.sort(key=lambda t: t.created_at, reverse=True)
        return tables

    async def upsert_table(self, owner_id: str, table: Table) -> Table:
        self._check()
        self._tables[table.id] = (owner_id, table.model_copy(deep=True))
        return table.model_copy(deep=True)

    async def delete_table(self, table_id: str) -> None:
        self._check()
        self._tables.pop(table_id, None)

    async def provision(self) -> None:
        self._provisioned = True

    @property
    def table_ids(self) -> set[str]:
        return set(self._tables)
