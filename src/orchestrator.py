"""
Main Orchestrator for Finance Tables

This module ties the table engine, storage, assistant and audit log
together and defines the end-to-end flows:
1. Workspace (load an owner's tables, create, edit, duplicate, delete)
2. Table view (an editing session over one table: filter, totals, edits)
3. Chat (prompt -> table draft or advice -> user accepts draft -> saved)

DESIGN DECISION: Optimistic persistence.
Every mutation is applied to the in-memory workspace first and then
written to storage as a whole-table snapshot. If the write fails:
- The local change is KEPT (no rollback)
- The table id is marked unsynced (or the delete is kept pending)
- The failure is logged and audited, and the error is re-raised
sync() retries everything that is still unsynced.

CRITICAL: A missing backing store is not a transient failure. It sets
needs_setup so the caller can run provision_storage() once.

The assistant never writes tables. A draft becomes a table only through
ChatSession.accept_draft(), i.e. on explicit user action.
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import structlog

from src.agents import (
    AdvisorAgent,
    AssistantBusyError,
    AssistantError,
    MalformedDraftError,
    TableDraftAgent,
)
from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.models.table import (
    AggregationType,
    CellValue,
    ChatMessage,
    ChatRole,
    Column,
    ColumnTotal,
    ColumnType,
    DashboardSummary,
    DuplicationMode,
    Row,
    Table,
    TableDraft,
    utc_now,
)
from src.queries import DashboardAggregator
from src.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
    InMemoryTableStorage,
    StorageError,
    StorageNotProvisionedError,
    TableStorageInterface,
)
from src.tables import (
    add_column,
    add_row,
    compute_totals,
    conform_rows,
    duplicate_table,
    filter_rows,
    migrate_column_type,
    remove_column,
    remove_row,
    rename_column,
    to_display,
    update_cell,
    update_column,
)
from src.tables.identity import IdGenerator, new_id, unique_id

logger = structlog.get_logger(__name__)

DEFAULT_TABLE_NAME = "New Table"

GREETING = (
    "Hi! I'm your finance assistant. How can I help today? I can build custom "
    "tables with checkboxes, currency columns and colors to keep you organized."
)

# Words that mark a chat message as a request for a new table
# (Portuguese and English).
TABLE_REQUEST_KEYWORDS = (
    "crie", "tabela", "planilha", "monte", "faca", "faça", "gerar",
    "create", "table", "spreadsheet", "build", "generate",
)


class WorkspaceError(Exception):
    """Base exception for workspace operations."""
    pass


class UnknownTableError(WorkspaceError):
    """The workspace holds no table with this id."""

    def __init__(self, table_id: str):
        self.table_id = table_id
        super().__init__(f"No table with id {table_id}")


class ReadOnlyViewError(WorkspaceError):
    """A write was attempted through a read-only table view."""
    pass


class TableWorkspace:
    """
    An owner's collection of tables, kept in memory and mirrored to storage.

    Tables are held newest first, the order storage returns them in.
    """

    def __init__(
        self,
        owner_id: str,
        storage: TableStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        id_generator: IdGenerator = new_id,
        clock: Callable[[], datetime] = utc_now,
        aggregator: Optional[DashboardAggregator] = None,
    ):
        self.owner_id = owner_id
        self._storage = storage
        self._audit_logger = audit_logger
        self._id_generator = id_generator
        self._clock = clock
        self._aggregator = aggregator or DashboardAggregator()

        self.tables: list[Table] = []
        self.unsynced: set[str] = set()
        self.pending_deletes: set[str] = set()
        self.needs_setup = False
        self.last_error: Optional[str] = None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_table(self, table_id: str) -> Optional[Table]:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    @property
    def id_generator(self) -> IdGenerator:
        return self._id_generator

    def is_synced(self, table_id: str) -> bool:
        return table_id not in self.unsynced and table_id not in self.pending_deletes

    def summary(self) -> DashboardSummary:
        """Cross-table dashboard rollup of the current tables."""
        return self._aggregator.summarize(self.tables)

    def open_view(self, table_id: str, read_only: bool = False) -> "TableView":
        if self.get_table(table_id) is None:
            raise UnknownTableError(table_id)
        return TableView(self, table_id, read_only=read_only)

    # -------------------------------------------------------------------------
    # Storage lifecycle
    # -------------------------------------------------------------------------

    async def load(self) -> list[Table]:
        """
        Replace the in-memory tables with the owner's stored tables.

        Rows are conformed to their table's columns on the way in.

        Raises:
            StorageNotProvisionedError: needs_setup is set first
            StorageError: On any other storage failure
        """
        self.needs_setup = False
        try:
            stored = await self._storage.list_tables(self.owner_id)
        except StorageNotProvisionedError as e:
            await self._on_not_provisioned(e)
            raise
        except StorageError as e:
            self.last_error = str(e)
            logger.error("tables_load_failed", owner_id=self.owner_id, error=str(e))
            raise

        self.tables = [conform_rows(table) for table in stored]
        self.unsynced.clear()
        self.pending_deletes.clear()
        self.last_error = None
        logger.info("tables_loaded", owner_id=self.owner_id, count=len(self.tables))
        return self.tables

    async def provision_storage(self) -> None:
        """One-time setup of the backing store, then reload."""
        await self._storage.provision()
        self.needs_setup = False
        if self._audit_logger:
            await self._audit_logger.log_storage_provisioned()
        await self.load()

    async def sync(self) -> int:
        """
        Retry every unsynced write and pending delete.

        Returns:
            Number of changes written

        Raises:
            StorageNotProvisionedError: Immediately, nothing else is tried
            StorageError: If some changes are still unsynced afterwards
        """
        written = 0
        failures = 0

        for table_id in sorted(self.pending_deletes):
            try:
                await self._storage.delete_table(table_id)
            except StorageNotProvisionedError as e:
                await self._on_not_provisioned(e)
                raise
            except StorageError as e:
                failures += 1
                self.last_error = str(e)
                continue
            self.pending_deletes.discard(table_id)
            written += 1

        for table_id in sorted(self.unsynced):
            table = self.get_table(table_id)
            if table is None:
                self.unsynced.discard(table_id)
                continue
            try:
                await self._storage.upsert_table(self.owner_id, table)
            except StorageNotProvisionedError as e:
                await self._on_not_provisioned(e)
                raise
            except StorageError as e:
                failures += 1
                self.last_error = str(e)
                continue
            self.unsynced.discard(table_id)
            written += 1

        logger.info("workspace_synced", written=written, failures=failures)
        if failures:
            raise StorageError(f"{failures} change(s) still unsynced")
        self.last_error = None
        return written

    async def _on_not_provisioned(self, error: StorageNotProvisionedError) -> None:
        self.needs_setup = True
        self.last_error = str(error)
        logger.warning("storage_not_provisioned", owner_id=self.owner_id, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_storage_not_provisioned(error_message=str(error))

    async def _persist(
        self,
        table: Table,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Write a snapshot; on failure keep it local and mark it unsynced."""
        try:
            await self._storage.upsert_table(self.owner_id, table)
        except StorageNotProvisionedError as e:
            self.unsynced.add(table.id)
            await self._on_not_provisioned(e)
            raise
        except StorageError as e:
            self.unsynced.add(table.id)
            self.last_error = str(e)
            logger.error(
                "table_persist_failed",
                table_id=table.id,
                operation=operation,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_persist_failed(
                    table_id=table.id,
                    operation=operation,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        self.unsynced.discard(table.id)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _new_table_id(self) -> str:
        return unique_id(self._id_generator, (t.id for t in self.tables))

    def _put_local(self, table: Table) -> None:
        """Replace a table in place, or insert it as newest."""
        for index, existing in enumerate(self.tables):
            if existing.id == table.id:
                self.tables[index] = table
                return
        self.tables.insert(0, table)

    async def add_table(
        self,
        name: str = DEFAULT_TABLE_NAME,
        description: str = "",
        columns: Optional[list[Column]] = None,
        theme_color: Optional[str] = None,
    ) -> Table:
        """Create an empty user table and save it."""
        table = Table(
            id=self._new_table_id(),
            name=name,
            description=description,
            columns=columns or [],
            created_at=self._clock(),
            theme_color=theme_color,
        )
        self._put_local(table)
        if self._audit_logger:
            await self._audit_logger.log_table_created(
                table_id=table.id, name=table.name, source="user",
            )
        await self._persist(table, "create")
        return table

    async def accept_draft(
        self,
        draft: TableDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Table:
        """Turn an assistant draft into a saved table with a fresh id."""
        table = conform_rows(draft.to_table(self._new_table_id(), self._clock()))
        self._put_local(table)
        if self._audit_logger:
            await self._audit_logger.log_draft_accepted(
                table_id=table.id, name=table.name, correlation_id=correlation_id,
            )
            await self._audit_logger.log_table_created(
                table_id=table.id, name=table.name, source="assistant",
                correlation_id=correlation_id,
            )
        await self._persist(table, "create", correlation_id)
        return table

    async def update_table(self, table: Table) -> Table:
        """Save a new snapshot of a table."""
        self._put_local(table)
        if self._audit_logger:
            await self._audit_logger.log_table_updated(
                table_id=table.id,
                column_count=len(table.columns),
                row_count=len(table.rows),
            )
        await self._persist(table, "update")
        return table

    async def delete_table(self, table_id: str) -> None:
        """
        Remove a table locally and from storage. Unknown id: no-op.

        Raises:
            StorageError: The delete stays pending for sync()
        """
        if self.get_table(table_id) is None:
            return
        self.tables = [t for t in self.tables if t.id != table_id]
        self.unsynced.discard(table_id)
        if self._audit_logger:
            await self._audit_logger.log_table_deleted(table_id=table_id)

        try:
            await self._storage.delete_table(table_id)
        except StorageNotProvisionedError as e:
            self.pending_deletes.add(table_id)
            await self._on_not_provisioned(e)
            raise
        except StorageError as e:
            self.pending_deletes.add(table_id)
            self.last_error = str(e)
            logger.error("table_delete_failed", table_id=table_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_persist_failed(
                    table_id=table_id, operation="delete", error_message=str(e),
                )
            raise

    async def duplicate_table(
        self,
        table_id: str,
        mode: DuplicationMode = DuplicationMode.COPY,
        multiplier: float = 1.0,
    ) -> Table:
        """
        Save a copy or projection of a table as a new table.

        Raises:
            UnknownTableError: If the source is not in the workspace
            ValueError: If a projection multiplier is not finite
        """
        source = self.get_table(table_id)
        if source is None:
            raise UnknownTableError(table_id)

        copy = duplicate_table(
            source,
            mode=mode,
            multiplier=multiplier,
            id_generator=lambda: unique_id(
                self._id_generator, (t.id for t in self.tables)
            ),
            clock=self._clock,
        )
        self._put_local(copy)
        if self._audit_logger:
            await self._audit_logger.log_table_duplicated(
                source_id=source.id,
                new_id=copy.id,
                mode=DuplicationMode(mode).value,
                multiplier=multiplier,
            )
        await self._persist(copy, "create")
        return copy


class TableView:
    """
    Editing session over one workspace table.

    Holds the filter text and the read-only toggle. Totals are computed
    over the filtered rows and recomputed on every read. Every edit runs
    the matching engine function and saves the result through the
    workspace.
    """

    def __init__(self, workspace: TableWorkspace, table_id: str, read_only: bool = False):
        self._workspace = workspace
        self.table_id = table_id
        self.read_only = read_only
        self.filter_text = ""

    @property
    def table(self) -> Table:
        table = self._workspace.get_table(self.table_id)
        if table is None:
            raise UnknownTableError(self.table_id)
        return table

    @property
    def visible_rows(self) -> list[Row]:
        return filter_rows(self.table.rows, self.filter_text)

    @property
    def totals(self) -> dict[str, ColumnTotal]:
        table = self.table
        return compute_totals(
            table.columns,
            filter_rows(table.rows, self.filter_text),
            get_settings().app.currency_symbol,
        )

    @property
    def row_count(self) -> int:
        return len(self.table.rows)

    def display(self, row: Row, column_key: str) -> str:
        column = self.table.get_column(column_key)
        if column is None:
            return ""
        return to_display(
            row.cells.get(column_key), column.type, get_settings().app.currency_symbol
        )

    async def _apply(self, edit: Callable[[Table], Table]) -> Table:
        if self.read_only:
            raise ReadOnlyViewError(f"Table {self.table_id} is open read-only")
        current = self.table
        updated = edit(current)
        if updated == current:
            return current
        return await self._workspace.update_table(updated)

    async def add_column(
        self,
        label: Optional[str] = None,
        column_type: ColumnType = ColumnType.TEXT,
    ) -> Table:
        if label is None:
            return await self._apply(lambda t: add_column(t, column_type=column_type))
        return await self._apply(
            lambda t: add_column(t, label=label, column_type=column_type)
        )

    async def remove_column(self, key: str) -> Table:
        return await self._apply(lambda t: remove_column(t, key))

    async def update_column(
        self,
        key: str,
        label: Optional[str] = None,
        column_type: Optional[ColumnType] = None,
        aggregation: Optional[AggregationType] = None,
    ) -> Table:
        return await self._apply(lambda t: update_column(
            t, key, label=label, column_type=column_type, aggregation=aggregation,
        ))

    async def rename_column(self, key: str, label: str) -> Table:
        return await self._apply(lambda t: rename_column(t, key, label))

    async def migrate_column_type(self, key: str, column_type: ColumnType) -> Table:
        return await self._apply(lambda t: migrate_column_type(t, key, column_type))

    async def add_row(self) -> Table:
        """Append a default row. Leaves read-only mode."""
        self.read_only = False
        return await self._apply(lambda t: add_row(t, self._workspace.id_generator))

    async def remove_row(self, row_id: str) -> Table:
        return await self._apply(lambda t: remove_row(t, row_id))

    async def update_cell(self, row_id: str, column_key: str, value: CellValue) -> Table:
        return await self._apply(lambda t: update_cell(t, row_id, column_key, value))

    async def rename(self, name: str) -> Table:
        return await self._apply(lambda t: t.model_copy(update={"name": name}))

    async def set_description(self, description: str) -> Table:
        return await self._apply(lambda t: t.model_copy(update={"description": description}))

    async def set_theme_color(self, theme_color: Optional[str]) -> Table:
        return await self._apply(lambda t: t.model_copy(update={"theme_color": theme_color}))


class ChatSession:
    """
    Assistant conversation over a workspace.

    Messages that look like a table request go to the draft agent,
    everything else to the advisor. At most one request is in flight,
    and at most one draft is being saved, at any time.
    """

    def __init__(
        self,
        workspace: TableWorkspace,
        draft_agent: TableDraftAgent,
        advisor_agent: AdvisorAgent,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._workspace = workspace
        self._draft_agent = draft_agent
        self._advisor_agent = advisor_agent
        self._audit_logger = audit_logger

        self.messages: list[ChatMessage] = [
            ChatMessage(role=ChatRole.ASSISTANT, content=GREETING)
        ]
        self.is_pending = False
        self.is_saving = False
        self.last_error: Optional[str] = None

    @staticmethod
    def is_table_request(text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in TABLE_REQUEST_KEYWORDS)

    def _reply(self, content: str, draft: Optional[TableDraft] = None) -> ChatMessage:
        message = ChatMessage(role=ChatRole.ASSISTANT, content=content, draft=draft)
        self.messages.append(message)
        return message

    async def submit(self, text: str) -> Optional[ChatMessage]:
        """
        Send a user message and return the assistant's reply.

        Blank input is ignored (returns None). An assistant failure is
        reported as an apology message and in last_error, not raised.

        Raises:
            AssistantBusyError: If a request or save is already in flight
        """
        if not text or not text.strip():
            return None
        if self.is_pending or self.is_saving:
            raise AssistantBusyError("The assistant is still working on the previous request")

        max_length = get_settings().app.max_prompt_length
        if len(text) > max_length:
            text = text[:max_length]

        self.last_error = None
        self.messages.append(ChatMessage(role=ChatRole.USER, content=text))
        self.is_pending = True
        correlation_id = create_correlation_id()

        try:
            if self.is_table_request(text):
                return await self._draft(text, correlation_id)
            return await self._advise(text, correlation_id)
        except AssistantError as e:
            self.last_error = str(e)
            logger.error("assistant_request_failed", error=str(e))
            if self._audit_logger:
                if isinstance(e, MalformedDraftError):
                    await self._audit_logger.log_draft_rejected(
                        error_message=str(e), correlation_id=correlation_id,
                    )
                else:
                    await self._audit_logger.log_external_service_error(
                        service="gemini", error_message=str(e),
                        correlation_id=correlation_id,
                    )
            return self._reply(
                "Sorry, I ran into a problem with that request. "
                "Could you try describing it another way?"
            )
        except Exception as e:
            self.last_error = str(e)
            logger.exception("chat_request_crashed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"stage": "submit"},
                    correlation_id=correlation_id,
                )
            raise
        finally:
            self.is_pending = False

    async def _draft(self, text: str, correlation_id: UUID) -> ChatMessage:
        draft, result = await self._draft_agent.draft_table(text)
        if self._audit_logger:
            await self._audit_logger.log_draft_generated(
                name=draft.name,
                column_count=len(draft.columns),
                row_count=len(draft.rows),
                warnings=result.warnings,
                correlation_id=correlation_id,
            )
        content = (
            f'I prepared a structure for "{draft.name}". '
            "Accept it below to save it to your tables."
        )
        if result.warnings:
            content = f"{content}\n\n{self._draft_agent.describe_result(result)}"
        return self._reply(content, draft=draft)

    async def _advise(self, text: str, correlation_id: UUID) -> ChatMessage:
        answer = await self._advisor_agent.advise(self._workspace.tables, text)
        if self._audit_logger:
            await self._audit_logger.log_advice_generated(
                table_count=len(self._workspace.tables),
                correlation_id=correlation_id,
            )
        return self._reply(answer)

    async def accept_draft(self, message: ChatMessage) -> Table:
        """
        Save the draft attached to an assistant message as a new table.

        Raises:
            ValueError: If the message carries no draft
            AssistantBusyError: If another draft is being saved
            StorageError: The table stays in the workspace, unsynced
        """
        if message.draft is None:
            raise ValueError("Message has no table draft")
        if self.is_saving:
            raise AssistantBusyError("A table is already being saved")

        self.is_saving = True
        self.last_error = None
        try:
            table = await self._workspace.accept_draft(message.draft)
        except StorageError as e:
            self.last_error = f"Failed to save: {e}"
            raise
        except Exception as e:
            self.last_error = f"Failed to save: {e}"
            logger.exception("draft_accept_crashed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"stage": "accept_draft", "name": message.draft.name},
                )
            raise
        finally:
            self.is_saving = False

        self._reply(f'Done! The table "{table.name}" was saved to your tables.')
        return table


def create_app_components(
    owner_id: str,
    use_storage: bool = True,
) -> tuple[TableWorkspace, ChatSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        owner_id: Authenticated user the tables belong to
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        (workspace, chat_session, sheets_client)
    """
    sheets_client = None
    table_storage: TableStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            table_storage = GoogleSheetsTableStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            table_storage = InMemoryTableStorage()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        table_storage = InMemoryTableStorage()
        audit_logger = AuditLogger()  # Local-only logging

    app_settings = get_settings().app
    workspace = TableWorkspace(
        owner_id=owner_id,
        storage=table_storage,
        audit_logger=audit_logger,
        aggregator=DashboardAggregator(
            recent_limit=app_settings.recent_entries_limit,
            default_category=app_settings.default_category_label,
            default_label=app_settings.default_item_label,
            currency_symbol=app_settings.currency_symbol,
        ),
    )

    chat_session = ChatSession(
        workspace=workspace,
        draft_agent=TableDraftAgent(),
        advisor_agent=AdvisorAgent(),
        audit_logger=audit_logger,
    )

    return workspace, chat_session, sheets_client
