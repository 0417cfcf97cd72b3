"""
Shared fixtures.

No test talks to Google Sheets or Gemini: storage is in-memory or a fake
worksheet, and the model is a fake with a canned response.
"""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from src.models.table import (
    AggregationType,
    Column,
    ColumnType,
    Row,
    Table,
)


class SequentialIds:
    """Deterministic id generator: prefix-1, prefix-2, ..."""

    def __init__(self, prefix: str = "id"):
        self._prefix = prefix
        self._counter = count(1)

    def __call__(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


class FixedClock:
    """Clock that advances one minute per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self._now = start

    def __call__(self) -> datetime:
        current = self._now
        self._now = current + timedelta(minutes=1)
        return current


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text: str = "", error: Exception = None):
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def expenses_table():
    """Small expenses table with text, currency, date and checkbox columns."""
    return Table(
        id="t-expenses",
        name="Expenses",
        description="Monthly expenses",
        columns=[
            Column(key="item", label="Item", type=ColumnType.TEXT),
            Column(
                key="amount",
                label="Amount",
                type=ColumnType.CURRENCY,
                aggregation=AggregationType.SUM,
            ),
            Column(key="date", label="Date", type=ColumnType.DATE),
            Column(key="paid", label="Paid", type=ColumnType.CHECKBOX),
        ],
        rows=[
            Row(id="r1", cells={"item": "Rent", "amount": 1500.0, "date": "2024-03-05", "paid": True}),
            Row(id="r2", cells={"item": "Groceries", "amount": 320.5, "date": "2024-03-10", "paid": False}),
            Row(id="r3", cells={"item": "Internet", "amount": 99.9, "date": "2024-03-01", "paid": True}),
        ],
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )
