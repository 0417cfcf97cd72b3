"""
Dashboard Aggregator

Cross-table rollup over every table a user owns:
1. Grand total of all number/currency cells
2. Totals grouped by a detected "category" field
3. Most recent entries, ordered by a detected "date" field

DESIGN DECISION: Tables are user-defined and often AI-generated, so there
is no fixed "category" or "date" column. Each semantic role has an
explicit, ordered list of candidate cell keys; the first one present in a
row wins. Missing fields always fall back to defaults. Summarizing
never raises on odd schemas.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from src.models.table import (
    CategoryTotal,
    DashboardSummary,
    RecentEntry,
    Row,
    Table,
)
from src.tables.cells import CURRENCY_SYMBOL, cell_text, format_currency, to_number

CATEGORY_KEYS = ("category", "categoria")
LABEL_KEYS = ("item", "name", "nome", "description", "descricao")
DATE_KEYS = ("date", "data")

DEFAULT_CATEGORY = "Other"
DEFAULT_LABEL = "Expense"
RECENT_LIMIT = 6

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def first_present(row: Row, keys: Sequence[str]) -> Optional[Any]:
    """First truthy cell among `keys`, in priority order."""
    for key in keys:
        value = row.cells.get(key)
        if value not in (None, "", False):
            return value
    return None


def parse_sort_date(value: Any) -> datetime:
    """
    Best-effort timestamp for ordering.

    Accepts datetimes, dates and ISO strings ("2024-05-01",
    "2024-05-01T10:00:00Z"). Naive values are taken as UTC. Anything
    unparseable sorts after every real date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return _EARLIEST
    else:
        return _EARLIEST

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def row_total(table: Table, row: Row) -> float:
    """Sum of the row's number and currency cells."""
    return sum(
        to_number(row.cells.get(column.key))
        for column in table.columns
        if column.type.is_numeric
    )


class DashboardAggregator:
    """
    Summarizes a collection of tables.

    Read-only: tables are never modified. Call summarize() again whenever
    the collection changes.
    """

    def __init__(
        self,
        recent_limit: int = RECENT_LIMIT,
        default_category: str = DEFAULT_CATEGORY,
        default_label: str = DEFAULT_LABEL,
        currency_symbol: str = CURRENCY_SYMBOL,
        category_keys: Sequence[str] = CATEGORY_KEYS,
        label_keys: Sequence[str] = LABEL_KEYS,
        date_keys: Sequence[str] = DATE_KEYS,
    ):
        self._recent_limit = recent_limit
        self._default_category = default_category
        self._default_label = default_label
        self._currency_symbol = currency_symbol
        self._category_keys = tuple(category_keys)
        self._label_keys = tuple(label_keys)
        self._date_keys = tuple(date_keys)

    def summarize(self, tables: Sequence[Table]) -> DashboardSummary:
        """Compute the grand total, category breakdown and recency list."""
        total = 0.0
        row_count = 0
        categories: dict[str, float] = {}
        entries: list[tuple[datetime, RecentEntry]] = []

        for table in tables:
            for row in table.rows:
                value = row_total(table, row)
                total += value
                row_count += 1

                category = self._category_for(row)
                categories[category] = categories.get(category, 0.0) + value

                entry = self._recent_entry(table, row, value)
                entries.append((parse_sort_date(entry.date), entry))

        category_totals = [
            CategoryTotal(category=name, value=value)
            for name, value in sorted(
                categories.items(), key=lambda item: item[1], reverse=True
            )
        ]

        # sorted() is stable, so rows with equal dates keep table/row order
        entries.sort(key=lambda pair: pair[0], reverse=True)
        recent = [entry for _, entry in entries[:self._recent_limit]]

        return DashboardSummary(
            total=total,
            total_display=format_currency(total, self._currency_symbol),
            categories=category_totals,
            recent=recent,
            row_count=row_count,
        )

    def _category_for(self, row: Row) -> str:
        value = first_present(row, self._category_keys)
        if value is None:
            return self._default_category
        return cell_text(value)

    def _recent_entry(self, table: Table, row: Row, value: float) -> RecentEntry:
        label = first_present(row, self._label_keys)
        row_date = first_present(row, self._date_keys)
        return RecentEntry(
            table_id=table.id,
            row_id=row.id,
            label=cell_text(label) if label is not None else self._default_label,
            value=value,
            date=cell_text(row_date) if row_date is not None else table.created_at.isoformat(),
        )
