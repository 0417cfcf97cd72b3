"""
Schema Engine

Owns a table's column list. Every function here returns a NEW table and
leaves the input untouched.

INVARIANT: after any schema mutation, every row's cell keys equal the
table's column keys. Adding a column back-fills a default cell in every
row; removing a column strips its cell from every row. These functions
(and conform_rows) are the only code allowed to change row shape.

Changing a column's type does NOT convert existing cells. Values keep
their stored form until edited, and are coerced when formatted or
aggregated. Use migrate_column_type when the stored values should be
converted too.
"""

from typing import Optional

from src.models.table import (
    AggregationType,
    Column,
    ColumnType,
    Row,
    Table,
)
from src.tables.cells import default_cell_value, to_canonical
from src.tables.identity import IdGenerator, new_column_key, unique_id

DEFAULT_COLUMN_LABEL = "New Column"


def add_column(
    table: Table,
    key_generator: IdGenerator = new_column_key,
    label: str = DEFAULT_COLUMN_LABEL,
    column_type: ColumnType = ColumnType.TEXT,
) -> Table:
    """Append a column with a fresh key and back-fill every row."""
    key = unique_id(key_generator, table.column_keys)
    column = Column(
        key=key,
        label=label,
        type=column_type,
        aggregation=AggregationType.NONE,
    )
    default = default_cell_value(column_type)
    rows = [
        Row(id=row.id, cells={**row.cells, key: default})
        for row in table.rows
    ]
    return table.model_copy(update={
        "columns": [*table.columns, column],
        "rows": rows,
    })


def remove_column(table: Table, key: str) -> Table:
    """Remove a column and strip its cell from every row. Unknown key: no-op."""
    if table.get_column(key) is None:
        return table
    columns = [column for column in table.columns if column.key != key]
    rows = [
        Row(id=row.id, cells={k: v for k, v in row.cells.items() if k != key})
        for row in table.rows
    ]
    return table.model_copy(update={"columns": columns, "rows": rows})


def update_column(
    table: Table,
    key: str,
    label: Optional[str] = None,
    column_type: Optional[ColumnType] = None,
    aggregation: Optional[AggregationType] = None,
) -> Table:
    """
    Merge label/type/aggregation changes into one column.

    The key never changes. Unknown key: no-op.
    """
    if table.get_column(key) is None:
        return table

    changes = {}
    if label is not None:
        changes["label"] = label
    if column_type is not None:
        changes["type"] = ColumnType.parse(column_type)
    if aggregation is not None:
        changes["aggregation"] = AggregationType(aggregation)
    if not changes:
        return table

    columns = [
        column.model_copy(update=changes) if column.key == key else column
        for column in table.columns
    ]
    return table.model_copy(update={"columns": columns})


def rename_column(table: Table, key: str, label: str) -> Table:
    """Change a column's display label only."""
    return update_column(table, key, label=label)


def migrate_column_type(table: Table, key: str, column_type: ColumnType) -> Table:
    """
    Change a column's type AND convert its stored cells.

    Unlike update_column, values are rewritten into the new type's
    canonical form (e.g. "12,5 kg" in a number column becomes 12.0).
    """
    column_type = ColumnType.parse(column_type)
    updated = update_column(table, key, column_type=column_type)
    if updated is table:
        return table
    rows = [
        Row(
            id=row.id,
            cells={
                k: to_canonical(v, column_type) if k == key else v
                for k, v in row.cells.items()
            },
        )
        for row in updated.rows
    ]
    return updated.model_copy(update={"rows": rows})


def conform_rows(table: Table) -> Table:
    """
    Repair row shape against the schema.

    Missing cells get the column's default value and keys with no column
    are dropped. Used on data that did not come through the engine, such
    as assistant drafts and records read from storage.
    """
    if table.is_consistent():
        return table
    rows = []
    for row in table.rows:
        cells = {}
        for column in table.columns:
            if column.key in row.cells:
                cells[column.key] = row.cells[column.key]
            else:
                cells[column.key] = default_cell_value(column.type)
        rows.append(Row(id=row.id, cells=cells))
    return table.model_copy(update={"rows": rows})
