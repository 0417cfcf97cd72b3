"""
Audit Logger

DESIGN DECISION: Every table lifecycle change and assistant interaction
is logged. This provides:
1. Traceability of each table's history
2. Debugging capability for storage and assistant failures
3. A record of local edits that never reached storage

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()
        # Most recent events, kept in memory for inspection
        self.events: deque[AuditEvent] = deque(maxlen=1000)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self.events.append(event)
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_table_created(
        self,
        table_id: str,
        name: str,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new table (source: user, assistant, copy or projection)."""
        await self.log(AuditEventBuilder.table_created(
            table_id=table_id,
            name=name,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_table_updated(
        self,
        table_id: str,
        column_count: int,
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.table_updated(
            table_id=table_id,
            column_count=column_count,
            row_count=row_count,
            correlation_id=correlation_id,
        ))

    async def log_table_deleted(
        self,
        table_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.table_deleted(
            table_id=table_id,
            correlation_id=correlation_id,
        ))

    async def log_table_duplicated(
        self,
        source_id: str,
        new_id: str,
        mode: str,
        multiplier: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.table_duplicated(
            source_id=source_id,
            new_id=new_id,
            mode=mode,
            multiplier=multiplier,
            correlation_id=correlation_id,
        ))

    async def log_persist_failed(
        self,
        table_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage write that failed; the local copy stays unsynced."""
        await self.log(AuditEventBuilder.persist_failed(
            table_id=table_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_storage_not_provisioned(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_not_provisioned(
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_storage_provisioned(self) -> None:
        await self.log(AuditEventBuilder.storage_provisioned())

    async def log_draft_generated(
        self,
        name: str,
        column_count: int,
        row_count: int,
        warnings: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.draft_generated(
            name=name,
            column_count=column_count,
            row_count=row_count,
            warnings=warnings,
            correlation_id=correlation_id,
        ))

    async def log_draft_rejected(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.draft_rejected(
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_draft_accepted(
        self,
        table_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.draft_accepted(
            table_id=table_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_advice_generated(
        self,
        table_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.advice_generated(
            table_count=table_count,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a chat request).
    Pass it through all subsequent operations.
    """
    return uuid4()
