"""
Cell Coercion and Formatting

Pure functions converting between raw cell values and each column
type's canonical form:

- number / currency -> float (unparseable input becomes 0)
- checkbox          -> bool
- text / date       -> str (no normalization)

IMPORTANT: Coercion never rejects input. A user typing "abc" into a
currency cell gets 0 when the column is summed, not an error.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from src.models.table import CellValue, ColumnType

PLACEHOLDER = "---"
CURRENCY_SYMBOL = "R$"
CENT = Decimal("0.01")

# Leading numeric prefix, the way a lenient float parser reads "12.5kg".
NUMBER_PREFIX = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")

_TRUE_WORDS = {"true", "1", "yes", "y", "on", "sim", "x", "checked"}


def to_number(value: Any) -> float:
    """
    Best-effort numeric coercion.

    Booleans count as 1/0. Strings are read up to the first character that
    cannot be part of a number. Anything else, including NaN and infinity,
    becomes 0.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = NUMBER_PREFIX.match(value)
        if not match:
            return 0.0
        number = float(match.group(1))
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def is_checked(value: Any) -> bool:
    """
    Whether a stored checkbox cell counts as checked.

    Any truthy value does, including strings such as "done". Display and
    aggregation read cells this way; they never reinterpret words.
    """
    return bool(value)


def to_bool(value: Any) -> bool:
    """
    Parse raw input into a checkbox value.

    Strings are read as words ("true", "sim", "x", ...). Used only when
    values are canonicalized: assistant drafts and type migration.
    """
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    return bool(value)


def to_canonical(raw: Any, column_type: ColumnType) -> CellValue:
    """Convert raw input to the canonical value for a column type."""
    if column_type.is_numeric:
        return to_number(raw)
    if column_type is ColumnType.CHECKBOX:
        return to_bool(raw)
    if raw is None:
        return ""
    if isinstance(raw, (bool, int, float)):
        return cell_text(raw)
    return str(raw)


def default_cell_value(column_type: ColumnType) -> CellValue:
    """Value given to a fresh cell of this type."""
    if column_type is ColumnType.CHECKBOX:
        return False
    if column_type.is_numeric:
        return 0
    return ""


def cell_text(value: Any) -> str:
    """
    String form of a stored value, as used for searching.

    Booleans read "true"/"false" and integral floats drop their ".0",
    so 100.0 searches as "100".
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def to_cents(amount: float) -> Decimal:
    """
    Round to two decimals, halves away from zero.

    Rounds the shortest decimal form of the float, so 20.005 reads as
    20.005 (and becomes 20.01) rather than as its binary neighbour.
    Non-finite input rounds to 0.
    """
    amount = float(amount)
    if not math.isfinite(amount):
        return Decimal("0.00")
    return Decimal(repr(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: float, symbol: str = CURRENCY_SYMBOL) -> str:
    """
    Format an amount as Brazilian Real, e.g. "R$ 1.234,56".

    Thousands are grouped with "." and decimals separated with ",".
    """
    cents = to_cents(amount)
    text = f"{abs(cents):,.2f}"
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol} {text}"


def format_plain_number(amount: float) -> str:
    """
    Two-decimal display with trailing zeros dropped.

    12.0 -> "12", 12.5 -> "12.5", 12.346 -> "12.35". Display only; the
    underlying value keeps full precision.
    """
    text = f"{to_cents(amount):.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def to_display(value: Any, column_type: ColumnType, symbol: str = CURRENCY_SYMBOL) -> str:
    """Format a stored value for display in a cell of the given type."""
    if column_type is ColumnType.CURRENCY:
        return format_currency(to_number(value), symbol)
    if column_type is ColumnType.CHECKBOX:
        return "[x]" if is_checked(value) else "[ ]"
    # Numeric zero is a real value, not an empty cell.
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return "0"
    if not value:
        return PLACEHOLDER
    return cell_text(value)
