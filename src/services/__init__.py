"""Services package."""

from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
    InMemoryTableStorage,
    StorageError,
    StorageNotProvisionedError,
    TableTooLargeError,
    TableStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTableStorage",
    "InMemoryTableStorage",
    "StorageError",
    "StorageNotProvisionedError",
    "TableTooLargeError",
    "TableStorageInterface",
]
