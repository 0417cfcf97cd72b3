"""
Typed Table Engine

Pure functions over Table snapshots: schema and row edits, filtering,
aggregation and duplication. Nothing in this package performs I/O.
"""

from src.tables.aggregation import compute_totals
from src.tables.cells import (
    default_cell_value,
    format_currency,
    format_plain_number,
    to_canonical,
    to_display,
    to_number,
)
from src.tables.filters import filter_rows
from src.tables.identity import IdGenerator, new_column_key, new_id
from src.tables.rows import (
    TableEngineError,
    UnknownColumnError,
    add_row,
    remove_row,
    update_cell,
)
from src.tables.schema import (
    add_column,
    conform_rows,
    migrate_column_type,
    remove_column,
    rename_column,
    update_column,
)
from src.tables.transforms import duplicate_table

__all__ = [
    # Cells
    "default_cell_value",
    "format_currency",
    "format_plain_number",
    "to_canonical",
    "to_display",
    "to_number",
    # Identity
    "IdGenerator",
    "new_column_key",
    "new_id",
    # Schema
    "add_column",
    "conform_rows",
    "migrate_column_type",
    "remove_column",
    "rename_column",
    "update_column",
    # Rows
    "TableEngineError",
    "UnknownColumnError",
    "add_row",
    "remove_row",
    "update_cell",
    # Views and transforms
    "compute_totals",
    "duplicate_table",
    "filter_rows",
]
