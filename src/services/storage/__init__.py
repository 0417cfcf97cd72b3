"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves
tests and offline use.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
    StorageNotProvisionedError,
    TableTooLargeError,
    TableStorageInterface,
)
from src.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
)
from src.services.storage.memory import InMemoryTableStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "TableStorageInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    "StorageNotProvisionedError",
    "TableTooLargeError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTableStorage",
    "InMemoryTableStorage",
]
