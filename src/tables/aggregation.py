"""
Aggregation Engine

Computes one summary per column whose aggregation directive is not
"none", over whatever row subset the caller passes (typically the
filtered rows of a table view).

Results are recomputed on every call. Callers re-run compute_totals after
any row edit, filter change or directive change.
"""

from decimal import Decimal
from typing import Sequence

from src.models.table import AggregationType, Column, ColumnTotal, ColumnType, Row
from src.tables.cells import (
    CURRENCY_SYMBOL,
    format_currency,
    format_plain_number,
    is_checked,
    to_number,
)


def column_values(column: Column, rows: Sequence[Row]) -> list[float]:
    """Numeric value of a column in each row (checkbox: 1 if checked)."""
    if column.type is ColumnType.CHECKBOX:
        return [1.0 if is_checked(row.cells.get(column.key)) else 0.0 for row in rows]
    return [to_number(row.cells.get(column.key)) for row in rows]


def exact_sum(values: Sequence[float]) -> float:
    """Sum over the values' shortest decimal forms, so 10 + 20.005 + 5 is 35.005."""
    return float(sum((Decimal(repr(value)) for value in values), Decimal(0)))


def aggregate_column(column: Column, rows: Sequence[Row]) -> float:
    """Full-precision result of a column's aggregation directive."""
    if column.aggregation is AggregationType.COUNT:
        return float(len(rows))

    values = column_values(column, rows)
    if column.aggregation is AggregationType.SUM:
        return exact_sum(values)
    if column.aggregation is AggregationType.AVG:
        # Empty subset averages to 0 rather than dividing by zero
        return exact_sum(values) / len(values) if values else 0.0
    return 0.0


def format_total(
    column: Column,
    value: float,
    currency_symbol: str = CURRENCY_SYMBOL,
) -> str:
    if column.aggregation is AggregationType.COUNT:
        return str(int(value))
    if column.type is ColumnType.CURRENCY:
        return format_currency(value, currency_symbol)
    return format_plain_number(value)


def compute_totals(
    columns: Sequence[Column],
    rows: Sequence[Row],
    currency_symbol: str = CURRENCY_SYMBOL,
) -> dict[str, ColumnTotal]:
    """
    Totals keyed by column key, in column order.

    Columns with aggregation "none" are absent from the result, so a table
    with no aggregated columns yields an empty dict.
    """
    totals = {}
    for column in columns:
        if column.aggregation is AggregationType.NONE:
            continue
        value = aggregate_column(column, rows)
        totals[column.key] = ColumnTotal(
            column_key=column.key,
            aggregation=column.aggregation,
            value=value,
            display=format_total(column, value, currency_symbol),
        )
    return totals
