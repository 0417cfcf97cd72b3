"""
Tests for the typed table engine: schema edits, row edits, filtering,
aggregation and duplication.
"""

import math
import random

import pytest

from src.models.table import (
    AggregationType,
    Column,
    ColumnType,
    DuplicationMode,
    Row,
    Table,
)
from src.tables import (
    UnknownColumnError,
    add_column,
    add_row,
    compute_totals,
    conform_rows,
    duplicate_table,
    filter_rows,
    migrate_column_type,
    remove_column,
    remove_row,
    rename_column,
    update_cell,
    update_column,
)
from src.tables.identity import new_column_key, new_id, unique_id
from tests.conftest import SequentialIds


def _keys_in_sync(table: Table) -> bool:
    expected = set(table.column_keys)
    return all(set(row.cells) == expected for row in table.rows)


class TestIdentity:
    """Id generation."""

    def test_new_column_key_format(self):
        key = new_column_key()
        assert key.startswith("col_")
        assert len(key) == 12

    def test_new_ids_differ(self):
        assert new_id() != new_id()

    def test_unique_id_skips_taken(self):
        generate = SequentialIds("k")
        assert unique_id(generate, {"k-1", "k-2"}) == "k-3"

    def test_unique_id_gives_up(self):
        with pytest.raises(RuntimeError):
            unique_id(lambda: "same", {"same"}, attempts=5)


class TestSchemaEngine:
    """Column operations keep every row's cells in step with the schema."""

    def test_add_column_backfills_default(self, expenses_table):
        table = add_column(expenses_table, key_generator=SequentialIds("col"))
        new_column = table.columns[-1]

        assert new_column.key == "col-1"
        assert new_column.label == "New Column"
        assert new_column.type == ColumnType.TEXT
        assert new_column.aggregation == AggregationType.NONE
        assert all(row.cells["col-1"] == "" for row in table.rows)
        assert _keys_in_sync(table)

    def test_add_column_typed_default(self, expenses_table):
        table = add_column(
            expenses_table,
            key_generator=SequentialIds("col"),
            label="Done",
            column_type=ColumnType.CHECKBOX,
        )
        assert all(row.cells["col-1"] is False for row in table.rows)

    def test_add_column_regenerates_colliding_key(self, expenses_table):
        keys = iter(["amount", "item", "fresh"])
        table = add_column(expenses_table, key_generator=lambda: next(keys))
        assert table.columns[-1].key == "fresh"

    def test_add_column_leaves_source_untouched(self, expenses_table):
        add_column(expenses_table)
        assert len(expenses_table.columns) == 4
        assert set(expenses_table.rows[0].cells) == {"item", "amount", "date", "paid"}

    def test_remove_column_strips_cells(self, expenses_table):
        table = remove_column(expenses_table, "amount")
        assert "amount" not in table.column_keys
        assert all("amount" not in row.cells for row in table.rows)
        assert _keys_in_sync(table)

    def test_remove_unknown_column_is_noop(self, expenses_table):
        assert remove_column(expenses_table, "nope") is expenses_table

    def test_random_add_remove_sequences_stay_in_sync(self, expenses_table):
        """Row cell keys equal column keys after every operation."""
        rng = random.Random(7)
        table = expenses_table
        keys = SequentialIds("c")
        for _ in range(60):
            if table.columns and rng.random() < 0.45:
                table = remove_column(table, rng.choice(table.column_keys))
            else:
                table = add_column(
                    table,
                    key_generator=keys,
                    column_type=rng.choice(list(ColumnType)),
                )
            assert _keys_in_sync(table)

    def test_update_column_merges_changes(self, expenses_table):
        table = update_column(
            expenses_table, "amount",
            label="Value",
            aggregation=AggregationType.AVG,
        )
        column = table.get_column("amount")
        assert column.key == "amount"
        assert column.label == "Value"
        assert column.type == ColumnType.CURRENCY
        assert column.aggregation == AggregationType.AVG

    def test_update_column_type_does_not_coerce(self, expenses_table):
        """Changing type keeps the stored values as they were."""
        table = update_column(expenses_table, "item", column_type=ColumnType.NUMBER)
        assert table.get_column("item").type == ColumnType.NUMBER
        assert table.get_row("r1").cells["item"] == "Rent"

    def test_update_unknown_column_is_noop(self, expenses_table):
        assert update_column(expenses_table, "nope", label="X") is expenses_table

    def test_update_column_without_changes_is_noop(self, expenses_table):
        assert update_column(expenses_table, "amount") is expenses_table

    def test_rename_column_keeps_key(self, expenses_table):
        table = rename_column(expenses_table, "paid", "Settled")
        assert table.get_column("paid").label == "Settled"
        assert table.get_row("r1").cells["paid"] is True

    def test_migrate_column_type_coerces(self, expenses_table):
        table = migrate_column_type(expenses_table, "paid", ColumnType.TEXT)
        assert table.get_column("paid").type == ColumnType.TEXT
        assert table.get_row("r1").cells["paid"] == "true"
        assert table.get_row("r2").cells["paid"] == "false"

    def test_migrate_text_to_number(self):
        table = Table(
            id="t1",
            name="T",
            columns=[Column(key="qty")],
            rows=[Row(id="r1", cells={"qty": "12,5 kg"}), Row(id="r2", cells={"qty": "n/a"})],
        )
        migrated = migrate_column_type(table, "qty", ColumnType.NUMBER)
        assert migrated.get_row("r1").cells["qty"] == 12.0
        assert migrated.get_row("r2").cells["qty"] == 0.0

    def test_conform_rows_repairs_shape(self):
        table = Table(
            id="t1",
            name="T",
            columns=[
                Column(key="a", type=ColumnType.NUMBER),
                Column(key="b", type=ColumnType.CHECKBOX),
            ],
            rows=[Row(id="r1", cells={"a": 5, "orphan": "x"})],
        )
        fixed = conform_rows(table)
        assert fixed.rows[0].cells == {"a": 5, "b": False}

    def test_conform_rows_consistent_table_unchanged(self, expenses_table):
        assert conform_rows(expenses_table) is expenses_table


class TestRowStore:
    """Row operations."""

    def test_add_row_has_default_cells(self, expenses_table):
        table = add_row(expenses_table, SequentialIds("row"))
        row = table.rows[-1]
        assert row.id == "row-1"
        assert row.cells == {"item": "", "amount": 0, "date": "", "paid": False}

    def test_add_row_id_is_unique(self, expenses_table):
        ids = iter(["r1", "r2", "r9"])
        table = add_row(expenses_table, lambda: next(ids))
        assert table.rows[-1].id == "r9"

    def test_remove_row(self, expenses_table):
        table = remove_row(expenses_table, "r2")
        assert [row.id for row in table.rows] == ["r1", "r3"]

    def test_remove_unknown_row_is_noop(self, expenses_table):
        assert remove_row(expenses_table, "nope") is expenses_table

    def test_update_cell_replaces_exactly_one_cell(self, expenses_table):
        table = update_cell(expenses_table, "r2", "amount", "42")
        assert table.get_row("r2").cells["amount"] == "42"
        assert table.get_row("r2").cells["item"] == "Groceries"
        assert table.get_row("r1") == expenses_table.get_row("r1")
        assert expenses_table.get_row("r2").cells["amount"] == 320.5

    def test_update_cell_unknown_row_is_noop(self, expenses_table):
        assert update_cell(expenses_table, "nope", "amount", 1) is expenses_table

    def test_update_cell_unknown_column_raises(self, expenses_table):
        with pytest.raises(UnknownColumnError):
            update_cell(expenses_table, "r1", "ghost", 1)


class TestFilterEngine:
    """Free-text row filter."""

    def test_blank_query_returns_all_rows(self, expenses_table):
        rows = expenses_table.rows
        assert filter_rows(rows, "") == rows
        assert filter_rows(rows, "   ") == rows
        assert filter_rows(rows, "") is not rows

    def test_case_insensitive_match(self, expenses_table):
        result = filter_rows(expenses_table.rows, "GROC")
        assert [row.id for row in result] == ["r2"]

    def test_matches_numbers_and_booleans(self, expenses_table):
        assert [r.id for r in filter_rows(expenses_table.rows, "1500")] == ["r1"]
        assert [r.id for r in filter_rows(expenses_table.rows, "false")] == ["r2"]

    def test_matches_row_id(self, expenses_table):
        assert [r.id for r in filter_rows(expenses_table.rows, "r3")] == ["r3"]

    def test_filter_is_idempotent(self, expenses_table):
        once = filter_rows(expenses_table.rows, "2024-03")
        assert filter_rows(once, "2024-03") == once

    def test_preserves_order(self, expenses_table):
        result = filter_rows(expenses_table.rows, "true")
        assert [r.id for r in result] == ["r1", "r3"]

    def test_no_match(self, expenses_table):
        assert filter_rows(expenses_table.rows, "zzz") == []


class TestAggregationEngine:
    """Per-column totals."""

    def _currency_table(self, values, aggregation=AggregationType.SUM):
        return Table(
            id="t1",
            name="T",
            columns=[Column(key="amt", type=ColumnType.CURRENCY, aggregation=aggregation)],
            rows=[Row(id=f"r{i}", cells={"amt": v}) for i, v in enumerate(values)],
        )

    def test_sum(self):
        table = self._currency_table([10.00, 20.005, 5])
        totals = compute_totals(table.columns, table.rows)
        assert totals["amt"].value == pytest.approx(35.005)
        assert totals["amt"].display == "R$ 35,01"

    def test_half_cent_totals_round_up(self):
        table = Table(
            id="t1",
            name="T",
            columns=[Column(key="qty", type=ColumnType.NUMBER, aggregation=AggregationType.SUM)],
            rows=[Row(id="r1", cells={"qty": 1.005}), Row(id="r2", cells={"qty": 1})],
        )
        totals = compute_totals(table.columns, table.rows)
        assert totals["qty"].display == "2.01"

    def test_avg_of_no_rows_is_zero(self):
        table = self._currency_table([], AggregationType.AVG)
        totals = compute_totals(table.columns, [])
        assert totals["amt"].value == 0
        assert totals["amt"].display == "R$ 0,00"

    def test_avg(self):
        table = self._currency_table([10, 20], AggregationType.AVG)
        assert compute_totals(table.columns, table.rows)["amt"].value == 15

    def test_count_displays_integer(self):
        table = self._currency_table([1, 2, 3], AggregationType.COUNT)
        total = compute_totals(table.columns, table.rows)["amt"]
        assert total.value == 3
        assert total.display == "3"

    def test_none_columns_are_absent(self, expenses_table):
        totals = compute_totals(expenses_table.columns, expenses_table.rows)
        assert list(totals) == ["amount"]

    def test_currency_display(self, expenses_table):
        totals = compute_totals(expenses_table.columns, expenses_table.rows)
        assert totals["amount"].display == "R$ 1.920,40"

    def test_checkbox_sum_counts_checked(self, expenses_table):
        table = update_column(expenses_table, "paid", aggregation=AggregationType.SUM)
        totals = compute_totals(table.columns, table.rows)
        assert totals["paid"].value == 2
        assert totals["paid"].display == "2"

    def test_checkbox_sum_counts_any_truthy_value(self):
        table = Table(
            id="t1",
            name="T",
            columns=[Column(key="done", type=ColumnType.CHECKBOX, aggregation=AggregationType.SUM)],
            rows=[
                Row(id="r1", cells={"done": "done"}),
                Row(id="r2", cells={"done": "false"}),
                Row(id="r3", cells={"done": ""}),
                Row(id="r4", cells={"done": None}),
            ],
        )
        totals = compute_totals(table.columns, table.rows)
        assert totals["done"].value == 2

    def test_number_column_plain_display(self):
        table = Table(
            id="t1",
            name="T",
            columns=[Column(key="qty", type=ColumnType.NUMBER, aggregation="sum")],
            rows=[Row(id="r1", cells={"qty": 2.5}), Row(id="r2", cells={"qty": "10"})],
        )
        total = compute_totals(table.columns, table.rows)["qty"]
        assert total.value == 12.5
        assert total.display == "12.5"

    def test_totals_over_filtered_rows(self, expenses_table):
        visible = filter_rows(expenses_table.rows, "rent")
        totals = compute_totals(expenses_table.columns, visible)
        assert totals["amount"].value == 1500.0

    def test_custom_currency_symbol(self, expenses_table):
        totals = compute_totals(expenses_table.columns, expenses_table.rows, "US$")
        assert totals["amount"].display.startswith("US$ ")


class TestTransformEngine:
    """Copy and projection duplication."""

    def _budget(self):
        return Table(
            id="t-src",
            name="Budget",
            columns=[
                Column(key="item"),
                Column(key="amount", type=ColumnType.CURRENCY, aggregation="sum"),
                Column(key="qty", type=ColumnType.NUMBER),
                Column(key="paid", type=ColumnType.CHECKBOX),
            ],
            rows=[
                Row(id="r1", cells={"item": "Rent", "amount": 50.0, "qty": 3, "paid": True}),
                Row(id="r2", cells={"item": "Water", "amount": "12abc", "qty": 1.111, "paid": False}),
            ],
            theme_color="#123456",
        )

    def test_projection_scales_numeric_cells(self, clock):
        source = self._budget()
        projected = duplicate_table(
            source,
            mode=DuplicationMode.PROJECTION,
            multiplier=2,
            id_generator=SequentialIds("n"),
            clock=clock,
        )
        first = projected.rows[0]
        assert first.cells["amount"] == 100.00
        assert first.cells["qty"] == 6
        assert first.cells["paid"] is True
        assert first.cells["item"] == "Rent"
        assert projected.name == "Budget (Projection)"

    def test_projection_rounds_to_cents(self):
        projected = duplicate_table(
            self._budget(), mode=DuplicationMode.PROJECTION, multiplier=1.5,
        )
        assert projected.rows[1].cells["qty"] == 1.67

    def test_projection_rounds_half_cents_up(self):
        source = Table(
            id="t-src",
            name="Savings",
            columns=[Column(key="amount", type=ColumnType.CURRENCY)],
            rows=[
                Row(id="r1", cells={"amount": 2.5}),
                Row(id="r2", cells={"amount": 0.125}),
            ],
        )
        projected = duplicate_table(
            source, mode=DuplicationMode.PROJECTION, multiplier=0.25,
        )
        assert [r.cells["amount"] for r in projected.rows] == [0.63, 0.03]

    def test_projection_skips_non_numeric_values(self):
        """A string in a currency column is copied, not coerced."""
        projected = duplicate_table(
            self._budget(), mode=DuplicationMode.PROJECTION, multiplier=3,
        )
        assert projected.rows[1].cells["amount"] == "12abc"

    def test_copy_keeps_values(self):
        copy = duplicate_table(self._budget())
        assert copy.name == "Budget (Copy)"
        assert [r.cells for r in copy.rows] == [r.cells for r in self._budget().rows]
        assert copy.theme_color == "#123456"
        assert copy.columns == self._budget().columns

    def test_fresh_identities(self, clock):
        source = self._budget()
        copy = duplicate_table(source, id_generator=SequentialIds("n"), clock=clock)
        source_ids = {row.id for row in source.rows}

        assert copy.id != source.id
        assert not source_ids & {row.id for row in copy.rows}
        assert len({row.id for row in copy.rows}) == len(copy.rows)

    def test_fresh_ids_even_with_colliding_generator(self):
        source = self._budget()
        ids = iter(["t-src", "r1", "r2", "a", "b", "c"])
        copy = duplicate_table(source, id_generator=lambda: next(ids))
        assert copy.id == "a"
        assert [row.id for row in copy.rows] == ["b", "c"]

    def test_source_untouched(self):
        source = self._budget()
        snapshot = source.model_copy(deep=True)
        duplicate_table(source, mode=DuplicationMode.PROJECTION, multiplier=10)
        assert source == snapshot

    def test_new_created_at(self, clock):
        source = self._budget()
        copy = duplicate_table(source, clock=clock)
        assert copy.created_at.year == 2024
        assert copy.created_at != source.created_at

    def test_non_finite_multiplier_rejected(self):
        with pytest.raises(ValueError):
            duplicate_table(
                self._budget(), mode=DuplicationMode.PROJECTION, multiplier=math.inf,
            )

    def test_mode_accepts_string(self):
        copy = duplicate_table(self._budget(), mode="projection", multiplier=2)
        assert copy.rows[0].cells["amount"] == 100.0
