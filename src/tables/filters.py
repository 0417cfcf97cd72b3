"""Free-text row filtering."""

from typing import Sequence

from src.models.table import Row
from src.tables.cells import cell_text


def row_matches(row: Row, needle: str) -> bool:
    """True if the row id or any cell contains `needle` (already lowercased)."""
    if needle in row.id.lower():
        return True
    return any(needle in cell_text(value).lower() for value in row.cells.values())


def filter_rows(rows: Sequence[Row], query: str) -> list[Row]:
    """
    Rows where any cell's string form contains `query`, case-insensitively.

    A blank query returns every row without scanning, so empty cells never
    produce surprising matches. Order is preserved and the input is never
    modified.
    """
    if not query or not query.strip():
        return list(rows)
    needle = query.lower()
    return [row for row in rows if row_matches(row, needle)]
