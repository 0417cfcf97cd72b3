"""
Identity generation for tables, rows and columns.

Engine functions take generators as arguments instead of calling uuid4
directly, so tests can supply deterministic ids.
"""

from typing import Callable, Iterable
from uuid import uuid4

IdGenerator = Callable[[], str]


def new_id() -> str:
    """Random id for tables and rows."""
    return str(uuid4())


def new_column_key() -> str:
    """Random column key, e.g. 'col_3f9a1c2b'."""
    return f"col_{uuid4().hex[:8]}"


def unique_id(generate: IdGenerator, taken: Iterable[str], attempts: int = 100) -> str:
    """
    Draw ids from `generate` until one is not in `taken`.

    Raises RuntimeError if the generator keeps colliding.
    """
    taken = set(taken)
    for _ in range(attempts):
        candidate = generate()
        if candidate not in taken:
            return candidate
    raise RuntimeError(f"Could not generate a unique id after {attempts} attempts")
