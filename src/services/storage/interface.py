"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the table engine decoupled from storage

Storage deals in whole tables only. Every edit produces a new table
snapshot and the snapshot is written in full; there is no partial-field
update.

NOT PROVISIONED vs FAILURE: When the backing store itself does not exist
yet (e.g. the worksheet was never created), implementations raise
StorageNotProvisionedError so the caller can route the user to a one-time
setup step. Every other problem is a plain StorageError.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.table import Table


class TableStorageInterface(ABC):
    """
    Abstract interface for table storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_tables(self, owner_id: str) -> list[Table]:
        """
        List all tables owned by a user.

        Args:
            owner_id: The owning user's identifier

        Returns:
            Tables, newest first

        Raises:
            StorageNotProvisionedError: If the backing store is missing
            StorageError: On any other failure
        """
        pass

    @abstractmethod
    async def upsert_table(self, owner_id: str, table: Table) -> Table:
        """
        Insert a table or replace the stored snapshot with the same id.

        Args:
            owner_id: The owning user's identifier
            table: The full table snapshot

        Returns:
            The table as stored

        Raises:
            StorageNotProvisionedError: If the backing store is missing
            StorageError: On any other failure
        """
        pass

    @abstractmethod
    async def delete_table(self, table_id: str) -> None:
        """
        Delete a table by ID. Deleting an unknown id is not an error.

        Raises:
            StorageNotProvisionedError: If the backing store is missing
            StorageError: On any other failure
        """
        pass

    @abstractmethod
    async def provision(self) -> None:
        """
        One-time setup of the backing store (idempotent).

        Raises:
            StorageError: If setup fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        correlation_id: Optional[UUID] = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first), optionally
        restricted to one correlation id.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageNotProvisionedError(StorageError):
    """The backing store does not exist yet; run the setup step."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class TableTooLargeError(StorageError):
    """The table snapshot exceeds what the backend can hold in one record."""
    pass
