from datetime import datetime

import pytest

from gridbase.constants import ColumnType, RollupAggregation
from gridbase.rollup import RollupEngine
from gridbase.schemas import Column, Row

NOW = datetime(2024, 1, 1)


def related(*values, column_id="c1"):
    return [
        Row(id=f"r{index}", table_id="t2", cells={column_id: value}, created_at=NOW, updated_at=NOW)
        for index, value in enumerate(values)
    ]


def target(column_type):
    return Column(id="c1", table_id="t2", name="Target", type=column_type, position=0, width=200, created_at=NOW)


@pytest.fixture()
def engine():
    return RollupEngine()


class TestCounts:
    def test_count_counts_rows(self, engine):
        assert engine.calculate("count", related(1, None, ""), "c1") == 3

    def test_count_not_empty_and_empty(self, engine):
        rows = related("a", None, "  ", [], "b")
        assert engine.calculate(RollupAggregation.COUNT_NOT_EMPTY, rows, "c1") == 2
        assert engine.calculate(RollupAggregation.COUNT_VALUES, rows, "c1") == 2
        assert engine.calculate(RollupAggregation.COUNT_EMPTY, rows, "c1") == 3

    def test_count_unique_ignores_empties(self, engine):
        assert engine.calculate("countUnique", related("a", "b", "a", None), "c1") == 2

    def test_multi_select_values_count_individually(self, engine):
        rows = related(["x", "y"], ["y"], None)
        column = target(ColumnType.MULTI_SELECT)
        assert engine.calculate("countValues", rows, "c1", column) == 3
        assert engine.calculate("showUnique", rows, "c1", column) == ["x", "y"]

    def test_empty_relation(self, engine):
        assert engine.calculate("count", [], "c1") == 0
        assert engine.calculate("percentEmpty", [], "c1") == 0


class TestNumbers:
    def test_sum_and_average_skip_non_numbers(self, engine):
        rows = related(1, "2", "abc", None, 4.5)
        assert engine.calculate("sum", rows, "c1") == 7.5
        assert engine.calculate("average", rows, "c1") == 2.5

    def test_average_of_nothing_is_empty(self, engine):
        assert engine.calculate("average", related(None, "x"), "c1") is None

    def test_min_max(self, engine):
        rows = related(3, 10, None, -2)
        assert engine.calculate("min", rows, "c1") == -2
        assert engine.calculate("max", rows, "c1") == 10

    def test_min_max_of_dates_keep_original_values(self, engine):
        rows = related("2024-03-01T00:00:00", "2023-12-31T00:00:00", None)
        column = target(ColumnType.DATE)
        assert engine.calculate("min", rows, "c1", column) == "2023-12-31T00:00:00"
        assert engine.calculate("max", rows, "c1", column) == "2024-03-01T00:00:00"

    def test_percentages(self, engine):
        rows = related("a", None, "b", "")
        assert engine.calculate("percentEmpty", rows, "c1") == 50
        assert engine.calculate("percentNotEmpty", rows, "c1") == 50


class TestShow:
    def test_show_original_drops_empties(self, engine):
        assert engine.calculate("showOriginal", related("a", None, "a"), "c1") == ["a", "a"]

    def test_show_unique_keeps_first_seen_order(self, engine):
        assert engine.calculate("showUnique", related("b", "a", "b"), "c1") == ["b", "a"]

    def test_computed_values_are_used(self, engine):
        rows = [Row(id="r1", table_id="t2", computed={"c1": 5}, created_at=NOW, updated_at=NOW)]
        assert engine.calculate("sum", rows, "c1") == 5

    def test_unknown_aggregation(self, engine):
        with pytest.raises(ValueError):
            engine.calculate("median", related(1), "c1")
