"""
Table Transform Engine

Duplication of whole tables, either as a plain copy or as a projection
that scales numeric and currency cells by a multiplier (e.g. "what does
this budget look like at 1.1x?").

GUARANTEES:
- The source table is never modified
- The result has a new table id, a new creation time and a fresh id for
  every row, so no row id is shared between source and copy
- Columns are copied by value: same keys, labels and types
"""

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from src.models.table import DuplicationMode, Row, Table, utc_now
from src.tables.identity import IdGenerator, new_id, unique_id

COPY_SUFFIX = "(Copy)"
PROJECTION_SUFFIX = "(Projection)"


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def scale_to_cents(value: float, multiplier: float) -> float:
    """
    value * multiplier rounded to cents, halves up.

    The exact binary product is rounded, so 2.5 * 0.25 gives 0.63.
    An overflowing product is returned unrounded.
    """
    product = value * multiplier
    if not math.isfinite(product):
        return product
    return float(Decimal(product).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def project_row(table: Table, row: Row, multiplier: float) -> dict:
    """Cells of `row` with numeric/currency values scaled and rounded to cents."""
    cells = dict(row.cells)
    for column in table.columns:
        if not column.type.is_numeric:
            continue
        value = cells.get(column.key)
        if _is_number(value):
            cells[column.key] = scale_to_cents(value, multiplier)
    return cells


def duplicate_table(
    table: Table,
    mode: DuplicationMode = DuplicationMode.COPY,
    multiplier: float = 1.0,
    id_generator: IdGenerator = new_id,
    clock: Callable[[], datetime] = utc_now,
) -> Table:
    """
    Build an independent copy of `table`, ready to be saved as new.

    Args:
        table: Source table (left untouched)
        mode: COPY keeps cell values verbatim; PROJECTION scales numeric
            and currency cells by `multiplier`
        multiplier: Scale factor for projections
        id_generator: Source of the new table and row ids
        clock: Source of the new creation time

    Raises:
        ValueError: If a projection multiplier is not a finite number
    """
    mode = DuplicationMode(mode)
    if mode is DuplicationMode.PROJECTION and not math.isfinite(multiplier):
        raise ValueError(f"Projection multiplier must be finite, got {multiplier}")

    taken_ids = {table.id, *(row.id for row in table.rows)}
    new_table_id = unique_id(id_generator, taken_ids)
    taken_ids.add(new_table_id)

    rows = []
    for row in table.rows:
        row_id = unique_id(id_generator, taken_ids)
        taken_ids.add(row_id)
        if mode is DuplicationMode.PROJECTION:
            cells = project_row(table, row, multiplier)
        else:
            cells = dict(row.cells)
        rows.append(Row(id=row_id, cells=cells))

    suffix = PROJECTION_SUFFIX if mode is DuplicationMode.PROJECTION else COPY_SUFFIX
    return Table(
        id=new_table_id,
        name=f"{table.name} {suffix}",
        description=table.description,
        columns=[column.model_copy() for column in table.columns],
        rows=rows,
        created_at=clock(),
        theme_color=table.theme_color,
    )
