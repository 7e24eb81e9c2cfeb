import pytest

from gridbase.constants import ColumnType
from gridbase.errors import NotFoundError, ValidationFailure
from gridbase.schemas import CreateTableInput, UpdateColumnInput, UpdateTableInput


class TestTables:
    def test_create_and_get(self, adapter):
        created = adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Projects", icon="folder"))
        fetched = adapter.get_table(created.id)
        assert fetched.name == "Projects"
        assert fetched.icon == "folder"
        assert fetched.description is None
        assert fetched.created_at == fetched.updated_at

    def test_list_by_workspace(self, adapter):
        first = adapter.create_table(CreateTableInput(workspace_id="ws-1", name="A"))
        second = adapter.create_table(CreateTableInput(workspace_id="ws-1", name="B"))
        adapter.create_table(CreateTableInput(workspace_id="ws-2", name="C"))
        assert {table.id for table in adapter.list_tables("ws-1")} == {first.id, second.id}
        assert adapter.list_tables("nowhere") == []

    def test_update_is_partial(self, adapter, table):
        adapter.update_table(table.id, UpdateTableInput(description="Everything to do"))
        updated = adapter.update_table(table.id, UpdateTableInput(name="Todo"))
        assert updated.name == "Todo"
        assert updated.description == "Everything to do"
        assert updated.updated_at >= table.updated_at

    def test_missing_table(self, adapter):
        with pytest.raises(NotFoundError) as excinfo:
            adapter.get_table("missing")
        assert excinfo.value.entity == "Table"
        with pytest.raises(NotFoundError):
            adapter.update_table("missing", UpdateTableInput(name="x"))
        with pytest.raises(NotFoundError):
            adapter.delete_table("missing")

    def test_delete(self, adapter, table):
        adapter.delete_table(table.id)
        with pytest.raises(NotFoundError):
            adapter.get_table(table.id)


class TestColumns:
    def test_first_column_is_primary(self, adapter, make_column):
        name = make_column("Name")
        notes = make_column("Notes")
        assert name.is_primary
        assert not notes.is_primary
        assert (name.position, notes.position) == (0, 1)
        assert name.width == 200

    def test_new_primary_demotes_the_old_one(self, adapter, table, make_column):
        name = make_column("Name")
        title = make_column("Title", is_primary=True)
        columns = {column.id: column for column in adapter.get_columns(table.id)}
        assert columns[title.id].is_primary
        assert not columns[name.id].is_primary

    def test_update_primary_demotes_the_old_one(self, adapter, table, make_column):
        name = make_column("Name")
        title = make_column("Title")
        adapter.update_column(title.id, UpdateColumnInput(is_primary=True))
        assert [column.is_primary for column in adapter.get_columns(table.id)] == [False, True]
        assert not adapter.get_column(name.id).is_primary

    def test_explicit_position_and_width(self, adapter, make_column):
        column = make_column("Wide", width=480, position=7)
        assert (column.width, column.position) == (480, 7)

    def test_reorder_ignores_foreign_ids(self, adapter, table, make_column):
        first, second, third = make_column("A"), make_column("B"), make_column("C")
        adapter.reorder_columns(table.id, [third.id, "not-a-column", first.id])
        assert [column.id for column in adapter.get_columns(table.id)] == [third.id, second.id, first.id]

    def test_update_replaces_config(self, adapter, make_column):
        column = make_column("Price", ColumnType.NUMBER, config={"format": "currency", "currency_code": "EUR"})
        updated = adapter.update_column(column.id, UpdateColumnInput(name="Cost", config={"precision": 2}))
        assert updated.name == "Cost"
        assert updated.config == {"format": "number", "precision": 2}

    def test_invalid_config_is_rejected(self, adapter, make_column):
        with pytest.raises(ValidationFailure):
            make_column("Link", ColumnType.RELATION, config={"bidirectional": True})
        with pytest.raises(ValidationFailure):
            make_column("Score", ColumnType.NUMBER, config={"format": "roman"})

    def test_invalid_formula_is_rejected(self, adapter, make_column):
        with pytest.raises(ValidationFailure):
            make_column("Broken", ColumnType.FORMULA, config={"formula": "1 +"})
        with pytest.raises(ValidationFailure):
            make_column("Unknown", ColumnType.FORMULA, config={"formula": "frobnicate(1)"})

    def test_missing_table(self, adapter, make_column):
        with pytest.raises(NotFoundError):
            make_column("Orphan", table_id="missing")

    def test_missing_column(self, adapter, table):
        with pytest.raises(NotFoundError):
            adapter.get_column("missing")
        with pytest.raises(NotFoundError):
            adapter.update_column("missing", UpdateColumnInput(name="x"))
        with pytest.raises(NotFoundError):
            adapter.delete_column("missing")
        assert adapter.get_columns("missing") == []

    def test_delete_strips_cells(self, adapter, table, make_column, make_row):
        name = make_column("Name")
        notes = make_column("Notes")
        row = make_row({name.id: "Write docs", notes.id: "soon"})
        adapter.delete_column(notes.id)
        assert adapter.get_row(row.id).cells == {name.id: "Write docs"}
        assert [column.id for column in adapter.get_columns(table.id)] == [name.id]
