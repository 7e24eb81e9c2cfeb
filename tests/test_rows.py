from datetime import date

import pytest

from gridbase.constants import ColumnType
from gridbase.errors import NotFoundError, ValidationFailure
from gridbase.schemas import (
    CreateRowInput,
    CreateTableInput,
    QueryFilter,
    QueryOptions,
    QuerySort,
    UpdateColumnInput,
)
from gridbase.utils.clock import to_iso


class TestRowCrud:
    def test_create_and_get(self, adapter, make_column, make_row):
        name = make_column("Name")
        row = make_row({name.id: "Write docs"})
        fetched = adapter.get_row(row.id)
        assert fetched.cells == {name.id: "Write docs"}
        assert fetched.parent_row_id is None
        assert not fetched.archived
        assert fetched.created_at == fetched.updated_at

    def test_dates_are_stored_as_iso_strings(self, adapter, make_column, make_row):
        due = make_column("Due", ColumnType.DATE)
        row = make_row({due.id: date(2024, 7, 1)})
        assert adapter.get_row(row.id).cells[due.id] == "2024-07-01"

    def test_update_merges_cells(self, adapter, make_column, make_row):
        name = make_column("Name")
        notes = make_column("Notes")
        row = make_row({name.id: "Write docs", notes.id: "draft"})
        updated = adapter.update_row(row.id, {notes.id: "final"})
        assert updated.cells == {name.id: "Write docs", notes.id: "final"}
        assert updated.updated_at >= row.updated_at

    def test_null_clears_a_cell(self, adapter, make_column, make_row):
        notes = make_column("Notes")
        row = make_row({notes.id: "draft"})
        assert adapter.update_row(row.id, {notes.id: None}).cells[notes.id] is None

    def test_missing_row(self, adapter):
        with pytest.raises(NotFoundError):
            adapter.get_row("missing")
        with pytest.raises(NotFoundError):
            adapter.update_row("missing", {})
        with pytest.raises(NotFoundError):
            adapter.delete_row("missing")

    def test_missing_table(self, adapter, make_row):
        with pytest.raises(NotFoundError):
            make_row(table_id="missing")

    def test_delete(self, adapter, table, make_row):
        row = make_row()
        adapter.delete_row(row.id)
        with pytest.raises(NotFoundError):
            adapter.get_row(row.id)
        assert adapter.get_rows(table.id).total == 0


class TestTimestampColumns:
    def test_stamped_on_create(self, adapter, make_column, make_row):
        created = make_column("Created", ColumnType.CREATED_TIME)
        edited = make_column("Edited", ColumnType.LAST_EDITED_TIME)
        row = make_row({created.id: "1999-01-01T00:00:00"})
        assert row.cells[created.id] == to_iso(row.created_at)
        assert row.cells[edited.id] == to_iso(row.created_at)

    def test_only_last_edited_moves_on_update(self, adapter, make_column, make_row):
        created = make_column("Created", ColumnType.CREATED_TIME)
        edited = make_column("Edited", ColumnType.LAST_EDITED_TIME)
        notes = make_column("Notes")
        row = make_row()
        updated = adapter.update_row(row.id, {notes.id: "x", created.id: "1999-01-01T00:00:00"})
        assert updated.cells[created.id] == to_iso(row.created_at)
        assert updated.cells[edited.id] == to_iso(updated.updated_at)


class TestArchive:
    def test_archived_rows_are_hidden_by_default(self, adapter, table, make_row):
        kept = make_row()
        hidden = make_row()
        assert adapter.archive_row(hidden.id).archived
        assert [row.id for row in adapter.get_rows(table.id).items] == [kept.id]
        everything = adapter.get_rows(table.id, QueryOptions(include_archived=True))
        assert {row.id for row in everything.items} == {kept.id, hidden.id}

    def test_unarchive(self, adapter, table, make_row):
        row = make_row()
        adapter.archive_row(row.id)
        assert not adapter.unarchive_row(row.id).archived
        assert adapter.get_rows(table.id).total == 1

    def test_archive_missing(self, adapter):
        with pytest.raises(NotFoundError):
            adapter.archive_row("missing")


class TestParent:
    def test_sub_item(self, adapter, make_row):
        parent = make_row()
        child = make_row(parent_row_id=parent.id)
        assert adapter.get_row(child.id).parent_row_id == parent.id

    def test_parent_must_exist(self, adapter, make_row):
        with pytest.raises(NotFoundError):
            make_row(parent_row_id="missing")

    def test_parent_must_share_the_table(self, adapter, make_row):
        other = adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Other"))
        foreign = make_row(table_id=other.id)
        with pytest.raises(ValidationFailure):
            make_row(parent_row_id=foreign.id)


class TestQuery:
    @pytest.fixture()
    def scored(self, make_column, make_row):
        name = make_column("Name")
        score = make_column("Score", ColumnType.NUMBER)
        rows = [make_row({name.id: f"row {n}", score.id: n}) for n in (5, 1, 4, 2, 3)]
        make_row({name.id: "unscored"})
        return name, score, rows

    def test_filter_sort_and_page(self, adapter, table, scored):
        name, score, _ = scored
        def page(cursor=None):
            return QueryOptions(
                filters=[QueryFilter(column_id=score.id, operator="greaterThan", value=1)],
                sorts=[QuerySort(column_id=score.id, direction="desc")],
                limit=2,
                cursor=cursor,
            )

        first = adapter.get_rows(table.id, page())
        assert [row.cells[name.id] for row in first.items] == ["row 5", "row 4"]
        assert (first.total, first.has_more) == (4, True)

        second = adapter.get_rows(table.id, page(first.cursor))
        assert [row.cells[name.id] for row in second.items] == ["row 3", "row 2"]
        assert not second.has_more
        assert second.cursor is None

    def test_nulls_sort_last(self, adapter, table, scored):
        name, score, _ = scored
        result = adapter.get_rows(table.id, QueryOptions(sorts=[QuerySort(column_id=score.id)]))
        assert [row.cells[name.id] for row in result.items] == ["row 1", "row 2", "row 3", "row 4", "row 5", "unscored"]

    def test_empty_table(self, adapter, table):
        result = adapter.get_rows(table.id)
        assert (result.items, result.total, result.has_more, result.cursor) == ([], 0, False, None)


class TestComputedColumns:
    def test_formula_values(self, adapter, make_column, make_row):
        price = make_column("Price", ColumnType.NUMBER)
        quantity = make_column("Quantity", ColumnType.NUMBER)
        total = make_column("Total", ColumnType.FORMULA, config={"formula": 'prop("Price") * prop("Quantity")'})
        row = make_row({price.id: 2.5, quantity.id: 4, total.id: "ignored"})
        assert row.computed[total.id] == 10
        assert total.id not in row.cells

        updated = adapter.update_row(row.id, {quantity.id: 6})
        assert updated.computed[total.id] == 15

    def test_formula_added_after_rows(self, adapter, make_column, make_row):
        name = make_column("Name")
        row = make_row({name.id: "docs"})
        shout = make_column("Shout", ColumnType.FORMULA, config={"formula": 'upper(prop("Name"))'})
        assert adapter.get_row(row.id).computed[shout.id] == "DOCS"

    def test_formula_config_change_recomputes(self, adapter, make_column, make_row):
        name = make_column("Name")
        formula = make_column("Size", ColumnType.FORMULA, config={"formula": 'length(prop("Name"))'})
        row = make_row({name.id: "docs"})
        adapter.update_column(formula.id, UpdateColumnInput(config={"formula": 'length(prop("Name")) * 2'}))
        assert adapter.get_row(row.id).computed[formula.id] == 8

    def test_failing_formula_is_empty(self, adapter, make_column, make_row):
        make_column("Name")
        ratio = make_column("Ratio", ColumnType.FORMULA, config={"formula": "1 / 0"})
        assert make_row().computed[ratio.id] is None

    def test_filter_on_computed_value(self, adapter, table, make_column, make_row):
        score = make_column("Score", ColumnType.NUMBER)
        double = make_column("Double", ColumnType.FORMULA, config={"formula": 'prop("Score") * 2'})
        make_row({score.id: 1})
        high = make_row({score.id: 5})
        query = QueryOptions(filters=[QueryFilter(column_id=double.id, operator="greaterThanOrEquals", value=10)])
        assert [row.id for row in adapter.get_rows(table.id, query).items] == [high.id]


class TestBulk:
    def test_bulk_create_isolates_failures(self, adapter, table):
        result = adapter.bulk_create_rows(
            [
                CreateRowInput(table_id=table.id),
                CreateRowInput(table_id="missing"),
                CreateRowInput(table_id=table.id),
            ]
        )
        assert len(result.succeeded) == 2
        assert [failure.index for failure in result.failed] == [1]
        assert not result.ok
        assert adapter.get_rows(table.id).total == 2

    def test_bulk_delete(self, adapter, table, make_row):
        first, second = make_row(), make_row()
        result = adapter.bulk_delete_rows([first.id, "missing", second.id])
        assert result.succeeded == [first.id, second.id]
        assert [(failure.index, failure.id) for failure in result.failed] == [(1, "missing")]
        assert adapter.get_rows(table.id).total == 0

    def test_bulk_archive(self, adapter, table, make_row):
        rows = [make_row() for _ in range(3)]
        result = adapter.bulk_archive_rows([row.id for row in rows])
        assert result.ok
        assert adapter.get_rows(table.id).total == 0
        assert adapter.get_rows(table.id, QueryOptions(include_archived=True)).total == 3
