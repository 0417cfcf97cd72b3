"""
Row Store

Row-level operations. Like the schema engine, each function returns a
new table. Values written with update_cell are stored exactly as given;
coercion happens later, at format or aggregate time.
"""

from src.models.table import CellValue, Row, Table
from src.tables.cells import default_cell_value
from src.tables.identity import IdGenerator, new_id, unique_id


class TableEngineError(Exception):
    """Base exception for table engine operations."""
    pass


class UnknownColumnError(TableEngineError):
    """A write referenced a column key the table does not have."""

    def __init__(self, table_id: str, column_key: str):
        self.table_id = table_id
        self.column_key = column_key
        super().__init__(f"Table {table_id} has no column '{column_key}'")


def new_row(table: Table, id_generator: IdGenerator = new_id) -> Row:
    """A row with a fresh id and one default cell per column."""
    row_id = unique_id(id_generator, (row.id for row in table.rows))
    return Row(
        id=row_id,
        cells={
            column.key: default_cell_value(column.type)
            for column in table.columns
        },
    )


def add_row(table: Table, id_generator: IdGenerator = new_id) -> Table:
    """Append a new default row."""
    return table.model_copy(update={
        "rows": [*table.rows, new_row(table, id_generator)],
    })


def remove_row(table: Table, row_id: str) -> Table:
    """Remove a row by id. Unknown id: no-op."""
    if table.get_row(row_id) is None:
        return table
    return table.model_copy(update={
        "rows": [row for row in table.rows if row.id != row_id],
    })


def update_cell(
    table: Table,
    row_id: str,
    column_key: str,
    value: CellValue,
) -> Table:
    """
    Replace exactly one cell.

    Other cells and rows are untouched. Unknown row: no-op.

    Raises:
        UnknownColumnError: If column_key is not in the schema. Rows must
            never gain keys outside the column set.
    """
    if table.get_column(column_key) is None:
        raise UnknownColumnError(table.id, column_key)
    if table.get_row(row_id) is None:
        return table

    rows = [
        Row(id=row.id, cells={**row.cells, column_key: value})
        if row.id == row_id else row
        for row in table.rows
    ]
    return table.model_copy(update={"rows": rows})
