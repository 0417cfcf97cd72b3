"""
Audit Models for Finance Tables

Every table lifecycle change, persistence failure and assistant
interaction is logged for audit purposes. This provides:
1. Traceability of what happened to each table
2. Debugging information when storage or the assistant fails
3. A record of local changes that never reached storage

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from src.models.table import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Table lifecycle
    TABLE_CREATED = "table_created"
    TABLE_UPDATED = "table_updated"
    TABLE_DELETED = "table_deleted"
    TABLE_DUPLICATED = "table_duplicated"

    # Persistence
    PERSIST_FAILED = "persist_failed"
    STORAGE_NOT_PROVISIONED = "storage_not_provisioned"
    STORAGE_PROVISIONED = "storage_provisioned"

    # Assistant
    DRAFT_GENERATED = "draft_generated"
    DRAFT_REJECTED = "draft_rejected"
    DRAFT_ACCEPTED = "draft_accepted"
    ADVICE_GENERATED = "advice_generated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'table', 'draft', 'chat')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one chat request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.table_created(table_id, name, "user")
        event = AuditEventBuilder.persist_failed(table_id, "upsert", str(e))
    """

    @staticmethod
    def table_created(
        table_id: str,
        name: str,
        source: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TABLE_CREATED,
            entity_type="table",
            entity_id=table_id,
            correlation_id=correlation_id,
            description=f"Table created: {name}",
            details={
                "name": name,
                "source": source,
            },
            is_user_action=True,
        )

    @staticmethod
    def table_updated(
        table_id: str,
        column_count: int,
        row_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TABLE_UPDATED,
            severity=AuditSeverity.DEBUG,
            entity_type="table",
            entity_id=table_id,
            correlation_id=correlation_id,
            description="Table snapshot saved",
            details={
                "column_count": column_count,
                "row_count": row_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def table_deleted(
        table_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TABLE_DELETED,
            entity_type="table",
            entity_id=table_id,
            correlation_id=correlation_id,
            description="Table deleted",
            is_user_action=True,
        )

    @staticmethod
    def table_duplicated(
        source_id: str,
        new_id: str,
        mode: str,
        multiplier: float,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TABLE_DUPLICATED,
            entity_type="table",
            entity_id=new_id,
            correlation_id=correlation_id,
            description=f"Table duplicated ({mode}) from {source_id}",
            details={
                "source_id": source_id,
                "mode": mode,
                "multiplier": multiplier,
            },
            is_user_action=True,
        )

    @staticmethod
    def persist_failed(
        table_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSIST_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="table",
            entity_id=table_id,
            correlation_id=correlation_id,
            description=f"Could not {operation} table; local copy kept as unsynced",
            details={
                "operation": operation,
            },
            error_message=error_message,
        )

    @staticmethod
    def storage_not_provisioned(
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_NOT_PROVISIONED,
            severity=AuditSeverity.WARNING,
            entity_type="storage",
            correlation_id=correlation_id,
            description="Table storage is not provisioned; setup required",
            error_message=error_message,
        )

    @staticmethod
    def storage_provisioned() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_PROVISIONED,
            entity_type="storage",
            description="Table storage provisioned",
            is_user_action=True,
        )

    @staticmethod
    def draft_generated(
        name: str,
        column_count: int,
        row_count: int,
        warnings: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_GENERATED,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Assistant drafted table: {name}",
            details={
                "column_count": column_count,
                "row_count": row_count,
                "warnings": warnings,
            },
        )

    @staticmethod
    def draft_rejected(
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            correlation_id=correlation_id,
            description="Assistant returned an unusable table draft",
            error_message=error_message,
        )

    @staticmethod
    def draft_accepted(
        table_id: str,
        name: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_ACCEPTED,
            entity_type="table",
            entity_id=table_id,
            correlation_id=correlation_id,
            description=f"User accepted drafted table: {name}",
            is_user_action=True,
        )

    @staticmethod
    def advice_generated(
        table_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_GENERATED,
            entity_type="chat",
            correlation_id=correlation_id,
            description=f"Assistant answered using {table_count} tables",
            details={
                "table_count": table_count,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
