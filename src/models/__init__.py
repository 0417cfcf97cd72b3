"""
Data Models Package

This package contains all Pydantic models used in the Finance Tables system.
All data flowing through the system must conform to these schemas.
"""

from src.models.table import (
    AggregationType,
    CategoryTotal,
    CellValue,
    ChatMessage,
    ChatRole,
    Column,
    ColumnTotal,
    ColumnType,
    DashboardSummary,
    DuplicationMode,
    RecentEntry,
    Row,
    Table,
    TableDraft,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from src.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Table models
    "AggregationType",
    "CategoryTotal",
    "CellValue",
    "ChatMessage",
    "ChatRole",
    "Column",
    "ColumnTotal",
    "ColumnType",
    "DashboardSummary",
    "DuplicationMode",
    "RecentEntry",
    "Row",
    "Table",
    "TableDraft",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
