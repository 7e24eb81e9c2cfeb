from datetime import datetime, timedelta

import pytest

from gridbase.errors import HierarchyCycleError
from gridbase.query import (
    apply_filters,
    children_of,
    depth_of,
    descendants_of,
    execute_query,
    has_children,
    matches_filter,
    sort_rows,
)
from gridbase.schemas import QueryFilter, QueryOptions, QuerySort, Row

BASE = datetime(2024, 1, 1, 12, 0, 0)


def make_row(row_id, cells=None, minutes=0, parent=None, archived=False, computed=None):
    instant = BASE + timedelta(minutes=minutes)
    return Row(
        id=row_id,
        table_id="t1",
        parent_row_id=parent,
        cells=cells or {},
        computed=computed or {},
        archived=archived,
        created_at=instant,
        updated_at=instant,
    )


def ids(rows):
    return [row.id for row in rows]


class TestFilters:
    def test_equals_is_strict(self):
        rows = [make_row("a", {"c": 1}), make_row("b", {"c": "1"}), make_row("c", {"c": True})]
        assert ids(apply_filters(rows, [QueryFilter(column_id="c", operator="equals", value=1)])) == ["a"]

    def test_not_equals_keeps_missing_cells(self):
        rows = [make_row("a", {"c": "x"}), make_row("b", {})]
        result = apply_filters(rows, [QueryFilter(column_id="c", operator="notEquals", value="x")])
        assert ids(result) == ["b"]

    def test_text_operators_ignore_case(self):
        row = make_row("a", {"c": "Hello World"})
        assert matches_filter(row, QueryFilter(column_id="c", operator="contains", value="WORLD"))
        assert matches_filter(row, QueryFilter(column_id="c", operator="startsWith", value="hello"))
        assert matches_filter(row, QueryFilter(column_id="c", operator="endsWith", value="LD"))
        assert not matches_filter(row, QueryFilter(column_id="c", operator="notContains", value="world"))

    def test_contains_on_missing_value_matches_empty_needle_only(self):
        row = make_row("a", {})
        assert not matches_filter(row, QueryFilter(column_id="c", operator="contains", value="x"))
        assert matches_filter(row, QueryFilter(column_id="c", operator="contains", value=""))

    def test_greater_than_coerces_numeric_strings(self):
        rows = [make_row("a", {"c": 10}), make_row("b", {"c": "20"}), make_row("c", {"c": 5})]
        result = apply_filters(rows, [QueryFilter(column_id="c", operator="greaterThan", value="7")])
        assert ids(result) == ["a", "b"]

    def test_non_numeric_values_never_pass_ordering_operators(self):
        rows = [make_row("a", {"c": "abc"}), make_row("b", {}), make_row("c", {"c": 3})]
        less = apply_filters(rows, [QueryFilter(column_id="c", operator="lessThan", value=100)])
        greater = apply_filters(rows, [QueryFilter(column_id="c", operator="greaterThan", value=-100)])
        assert ids(less) == ["c"]
        assert ids(greater) == ["c"]

    def test_inclusive_ordering_operators(self):
        rows = [make_row("a", {"c": 1}), make_row("b", {"c": 2}), make_row("c", {"c": 3})]
        gte = apply_filters(rows, [QueryFilter(column_id="c", operator="greaterThanOrEquals", value=2)])
        lte = apply_filters(rows, [QueryFilter(column_id="c", operator="lessThanOrEquals", value=2)])
        assert ids(gte) == ["b", "c"]
        assert ids(lte) == ["a", "b"]

    def test_dates_compare_as_instants(self):
        rows = [make_row("a", {"d": "2024-03-01"}), make_row("b", {"d": "2024-01-15T10:00:00"})]
        result = apply_filters(rows, [QueryFilter(column_id="d", operator="greaterThan", value="2024-02-01")])
        assert ids(result) == ["a"]

    def test_empty_operators(self):
        rows = [
            make_row("a", {"c": ""}),
            make_row("b", {}),
            make_row("c", {"c": []}),
            make_row("d", {"c": "x"}),
        ]
        empty = apply_filters(rows, [QueryFilter(column_id="c", operator="isEmpty")])
        not_empty = apply_filters(rows, [QueryFilter(column_id="c", operator="isNotEmpty")])
        assert ids(empty) == ["a", "b", "c"]
        assert ids(not_empty) == ["d"]

    def test_is_in_matches_any_list_element(self):
        rows = [make_row("a", {"c": ["x", "y"]}), make_row("b", {"c": "z"}), make_row("c", {})]
        result = apply_filters(rows, [QueryFilter(column_id="c", operator="isIn", value=["y", "q"])])
        excluded = apply_filters(rows, [QueryFilter(column_id="c", operator="isNotIn", value=["y"])])
        assert ids(result) == ["a"]
        assert ids(excluded) == ["b", "c"]

    def test_unknown_operator_passes_every_row(self):
        rows = [make_row("a", {"c": 1}), make_row("b", {})]
        assert ids(apply_filters(rows, [QueryFilter(column_id="c", operator="fuzzy", value=1)])) == ["a", "b"]

    def test_filters_are_conjunctive(self):
        rows = [make_row("a", {"n": 5, "s": "x"}), make_row("b", {"n": 5, "s": "y"}), make_row("c", {"n": 1, "s": "x"})]
        result = apply_filters(
            rows,
            [
                QueryFilter(column_id="n", operator="equals", value=5),
                QueryFilter(column_id="s", operator="equals", value="x"),
            ],
        )
        assert ids(result) == ["a"]

    def test_filters_read_computed_values(self):
        rows = [make_row("a", computed={"f": 10}), make_row("b", computed={"f": 1})]
        result = apply_filters(rows, [QueryFilter(column_id="f", operator="greaterThan", value=5)])
        assert ids(result) == ["a"]


class TestSorting:
    def test_default_order_is_newest_first(self):
        rows = [make_row("old", minutes=0), make_row("new", minutes=5), make_row("mid", minutes=2)]
        assert ids(sort_rows(rows, [])) == ["new", "mid", "old"]

    def test_nulls_last_in_both_directions(self):
        rows = [make_row("a", {"n": 2}), make_row("b", {}), make_row("c", {"n": 1})]
        asc = sort_rows(rows, [QuerySort(column_id="n", direction="asc")])
        desc = sort_rows(rows, [QuerySort(column_id="n", direction="desc")])
        assert ids(asc) == ["c", "a", "b"]
        assert ids(desc) == ["a", "c", "b"]

    def test_ties_fall_through_to_next_key(self):
        rows = [
            make_row("a", {"g": "x", "n": 2}),
            make_row("b", {"g": "y", "n": 1}),
            make_row("c", {"g": "x", "n": 1}),
        ]
        sorts = [QuerySort(column_id="g"), QuerySort(column_id="n", direction="desc")]
        assert ids(sort_rows(rows, sorts)) == ["a", "c", "b"]

    def test_sort_is_stable(self):
        rows = [make_row(str(i), {"g": "same"}) for i in range(5)]
        assert ids(sort_rows(rows, [QuerySort(column_id="g")])) == ["0", "1", "2", "3", "4"]

    def test_numbers_sort_numerically(self):
        rows = [make_row("a", {"n": 10}), make_row("b", {"n": 9}), make_row("c", {"n": 100})]
        assert ids(sort_rows(rows, [QuerySort(column_id="n")])) == ["b", "a", "c"]


class TestExecuteQuery:
    def rows(self):
        return [make_row(f"r{i}", {"n": i}, minutes=i) for i in range(10)]

    def test_pagination_window_and_cursor(self):
        query = QueryOptions(sorts=[QuerySort(column_id="n")], limit=3, offset=3)
        result = execute_query(self.rows(), query)
        assert ids(result.items) == ["r3", "r4", "r5"]
        assert result.total == 10
        assert result.has_more is True
        assert result.cursor == "6"

    def test_cursor_continues_where_previous_page_ended(self):
        first = execute_query(self.rows(), QueryOptions(sorts=[QuerySort(column_id="n")], limit=4))
        second = execute_query(
            self.rows(), QueryOptions(sorts=[QuerySort(column_id="n")], limit=4, cursor=first.cursor)
        )
        assert ids(second.items) == ["r4", "r5", "r6", "r7"]

    def test_last_page_has_no_cursor(self):
        result = execute_query(self.rows(), QueryOptions(limit=5, offset=8))
        assert len(result.items) == 2
        assert result.has_more is False
        assert result.cursor is None

    def test_limit_is_clamped(self):
        result = execute_query(self.rows(), QueryOptions(limit=5000), max_limit=4)
        assert len(result.items) == 4

    def test_zero_limit_returns_only_the_total(self):
        result = execute_query(self.rows(), QueryOptions(limit=0))
        assert result.items == []
        assert result.total == 10
        assert result.has_more is True

    def test_negative_offset_is_zero(self):
        result = execute_query(self.rows(), QueryOptions(limit=2, offset=-5, sorts=[QuerySort(column_id="n")]))
        assert ids(result.items) == ["r0", "r1"]

    def test_archived_rows_hidden_by_default(self):
        rows = [make_row("a"), make_row("b", archived=True)]
        assert ids(execute_query(rows).items) == ["a"]
        assert set(ids(execute_query(rows, QueryOptions(include_archived=True)).items)) == {"a", "b"}

    def test_total_counts_filtered_rows(self):
        query = QueryOptions(filters=[QueryFilter(column_id="n", operator="lessThan", value=4)], limit=2)
        result = execute_query(self.rows(), query)
        assert result.total == 4
        assert len(result.items) == 2


class TestHierarchySelection:
    def rows(self):
        return [
            make_row("root", minutes=0),
            make_row("child", minutes=1, parent="root"),
            make_row("grandchild", minutes=2, parent="child"),
            make_row("other", minutes=3),
        ]

    def test_parent_omitted_returns_everything(self):
        assert len(execute_query(self.rows()).items) == 4

    def test_parent_none_returns_top_level(self):
        result = execute_query(self.rows(), QueryOptions(parent_row_id=None))
        assert set(ids(result.items)) == {"root", "other"}

    def test_parent_none_with_sub_items_returns_everything(self):
        result = execute_query(self.rows(), QueryOptions(parent_row_id=None, include_sub_items=True))
        assert len(result.items) == 4

    def test_parent_id_returns_direct_children(self):
        result = execute_query(self.rows(), QueryOptions(parent_row_id="root"))
        assert ids(result.items) == ["child"]

    def test_descendants_are_pre_order(self):
        rows = [
            make_row("root"),
            make_row("a", parent="root"),
            make_row("b", parent="root"),
            make_row("a1", parent="a"),
        ]
        assert ids(descendants_of(rows, "root")) == ["a", "a1", "b"]

    def test_has_children_ignores_archived(self):
        rows = [make_row("p"), make_row("c", parent="p", archived=True)]
        assert has_children(rows, "p") is False
        assert children_of(rows, "p") == []

    def test_depth_counts_ancestors(self):
        parents = {"root": None, "child": "root", "grandchild": "child"}
        assert depth_of(parents, "root") == 0
        assert depth_of(parents, "grandchild") == 2

    def test_cycles_are_detected(self):
        with pytest.raises(HierarchyCycleError):
            depth_of({"a": "b", "b": "a"}, "a")
        rows = [make_row("a", parent="b"), make_row("b", parent="a")]
        with pytest.raises(HierarchyCycleError):
            descendants_of(rows, "a")
