"""
Core Data Models for Finance Tables

These models define the schemas for user-defined tables, their rows,
AI-generated drafts and the summaries computed over them.

DESIGN DECISION: A row is NOT an open-ended object. It is an id plus an
explicit mapping from column key to cell value. Only the schema engine
(src/tables/schema.py) adds or removes keys from that mapping, which keeps
every row's shape in step with the table's columns.

Cell values are stored as given by the user. Coercion to the column's
canonical form happens when values are formatted or aggregated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# A cell holds text, a number, a boolean or an ISO date string.
CellValue = Union[bool, int, float, str, None]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ColumnType(str, Enum):
    """
    Supported column types.

    Older stored tables and some AI responses use "string" for text columns;
    it is accepted as an alias when reading.
    """
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    CURRENCY = "currency"
    CHECKBOX = "checkbox"

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.NUMBER, ColumnType.CURRENCY)

    @classmethod
    def parse(cls, value: Any) -> "ColumnType":
        """Parse a type name, mapping legacy aliases. Raises ValueError."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        return cls(COLUMN_TYPE_ALIASES.get(name, name))


COLUMN_TYPE_ALIASES = {
    "string": "text",
    "str": "text",
    "money": "currency",
    "bool": "checkbox",
    "boolean": "checkbox",
}


class AggregationType(str, Enum):
    """Per-column summary directive."""
    NONE = "none"
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"


class DuplicationMode(str, Enum):
    """How a table is duplicated."""
    COPY = "copy"
    PROJECTION = "projection"  # numeric cells scaled by a multiplier


class ChatRole(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# TABLE MODELS
# =============================================================================

class Column(BaseModel):
    """
    Typed field definition shared by all rows of a table.

    The key is the column's identity: it joins the column to every row's
    cells and never changes once created. The label is display-only.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    key: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Immutable identity, unique within the table"
    )
    label: str = Field(
        default="",
        max_length=200,
        description="Display name"
    )
    type: ColumnType = Field(
        default=ColumnType.TEXT,
        description="Column type"
    )
    aggregation: AggregationType = Field(
        default=AggregationType.NONE,
        description="Summary computed for this column"
    )

    @field_validator("type", mode="before")
    @classmethod
    def map_type_aliases(cls, v: Any) -> Any:
        """Accept legacy type names such as 'string'."""
        if isinstance(v, str):
            return COLUMN_TYPE_ALIASES.get(v.strip().lower(), v.strip().lower())
        return v

    @field_validator("aggregation", mode="before")
    @classmethod
    def default_missing_aggregation(cls, v: Any) -> Any:
        if v is None or v == "":
            return AggregationType.NONE
        return v


class Row(BaseModel):
    """
    One record of a table.

    Rows in the legacy flat form ({"id": ..., "amount": 10}) are folded
    into `cells` on validation.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Stable row identity, unique within the table"
    )
    cells: dict[str, CellValue] = Field(
        default_factory=dict,
        description="Cell values keyed by column key"
    )

    @model_validator(mode="before")
    @classmethod
    def fold_flat_row(cls, data: Any) -> Any:
        if isinstance(data, dict) and "cells" not in data:
            return {
                "id": data.get("id"),
                "cells": {k: v for k, v in data.items() if k != "id"},
            }
        return data


class Table(BaseModel):
    """
    A user-owned table: ordered columns plus rows in display order.

    Every mutation produces a new Table snapshot; the snapshot is what
    gets persisted, never individual fields.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique table ID"
    )
    name: str = Field(
        ...,
        max_length=200,
        description="Table name"
    )
    description: str = Field(
        default="",
        max_length=1000,
        description="Free-text description"
    )
    columns: list[Column] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the table was created"
    )
    theme_color: Optional[str] = Field(
        default=None,
        description="Display color, e.g. '#10b981'"
    )

    @field_validator("description", mode="before")
    @classmethod
    def none_description_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode="after")
    def validate_unique_column_keys(self) -> "Table":
        """Column keys must never be shared by two live columns."""
        keys = [column.key for column in self.columns]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"Duplicate column keys: {', '.join(duplicates)}")
        return self

    @property
    def column_keys(self) -> list[str]:
        return [column.key for column in self.columns]

    def get_column(self, key: str) -> Optional[Column]:
        for column in self.columns:
            if column.key == key:
                return column
        return None

    def get_row(self, row_id: str) -> Optional[Row]:
        for row in self.rows:
            if row.id == row_id:
                return row
        return None

    def is_consistent(self) -> bool:
        """True if every row carries exactly the current column keys."""
        expected = set(self.column_keys)
        return all(set(row.cells) == expected for row in self.rows)


class TableDraft(BaseModel):
    """
    AI-proposed table not yet accepted by the user.

    CRITICAL: A draft has no id and no creation time. Both are assigned
    only when the user accepts it, so nothing is persisted without an
    explicit decision.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    columns: list[Column] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)
    theme_color: Optional[str] = None

    def to_table(self, table_id: str, created_at: Optional[datetime] = None) -> Table:
        """Give the draft its final identity."""
        return Table(
            id=table_id,
            name=self.name,
            description=self.description,
            columns=[column.model_copy() for column in self.columns],
            rows=[row.model_copy(deep=True) for row in self.rows],
            created_at=created_at or utc_now(),
            theme_color=self.theme_color,
        )


class ChatMessage(BaseModel):
    """One message in an assistant conversation."""

    role: ChatRole
    content: str
    draft: Optional[TableDraft] = Field(
        default=None,
        description="Table proposed by the assistant, if any"
    )
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# SUMMARY MODELS
# =============================================================================

class ColumnTotal(BaseModel):
    """Aggregation result for one column over a row subset."""

    column_key: str
    aggregation: AggregationType
    value: float = Field(
        ...,
        description="Full-precision result"
    )
    display: str = Field(
        ...,
        description="Formatted result for display"
    )


class CategoryTotal(BaseModel):
    """Sum of row totals for one detected category."""

    category: str
    value: float


class RecentEntry(BaseModel):
    """A row as it appears in the dashboard's recency list."""

    table_id: str
    row_id: str
    label: str
    value: float
    date: str = Field(
        ...,
        description="Date as found in the row, or the table's creation time"
    )


class DashboardSummary(BaseModel):
    """Cross-table rollup over all of a user's tables."""

    total: float
    total_display: str
    categories: list[CategoryTotal] = Field(default_factory=list)
    recent: list[RecentEntry] = Field(default_factory=list)
    row_count: int = Field(
        default=0,
        ge=0,
        description="Number of rows across all tables"
    )

    @property
    def category_count(self) -> int:
        return len(self.categories)
