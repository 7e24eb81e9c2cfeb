import pytest

from gridbase.constants import ColumnType
from gridbase.errors import NotFoundError, ValidationFailure
from gridbase.schemas import CreateSelectOptionInput, UpdateSelectOptionInput


@pytest.fixture()
def status(make_column):
    return make_column("Status", ColumnType.SELECT)


def add_option(adapter, column_id, name, **kwargs):
    return adapter.create_select_option(CreateSelectOptionInput(column_id=column_id, name=name, **kwargs))


def option_names(adapter, column_id):
    return [option.name for option in adapter.get_select_options(column_id)]


class TestSelectOptions:
    def test_options_append_in_order(self, adapter, status):
        todo = add_option(adapter, status.id, "Todo", color="gray")
        doing = add_option(adapter, status.id, "Doing")
        assert (todo.position, doing.position) == (0, 1)
        assert todo.color == "gray"
        assert option_names(adapter, status.id) == ["Todo", "Doing"]

    def test_multi_select_columns_take_options(self, adapter, make_column):
        tags = make_column("Tags", ColumnType.MULTI_SELECT)
        add_option(adapter, tags.id, "urgent")
        assert option_names(adapter, tags.id) == ["urgent"]

    def test_only_select_columns_take_options(self, adapter, make_column):
        notes = make_column("Notes")
        with pytest.raises(ValidationFailure):
            add_option(adapter, notes.id, "nope")

    def test_missing_column(self, adapter):
        with pytest.raises(NotFoundError):
            add_option(adapter, "missing", "nope")
        assert adapter.get_select_options("missing") == []

    def test_update(self, adapter, status):
        option = add_option(adapter, status.id, "Todo", color="gray")
        updated = adapter.update_select_option(option.id, UpdateSelectOptionInput(color="red"))
        assert (updated.name, updated.color) == ("Todo", "red")

    def test_update_missing(self, adapter):
        with pytest.raises(NotFoundError):
            adapter.update_select_option("missing", UpdateSelectOptionInput(name="x"))

    def test_reorder(self, adapter, status):
        todo = add_option(adapter, status.id, "Todo")
        doing = add_option(adapter, status.id, "Doing")
        done = add_option(adapter, status.id, "Done")
        adapter.reorder_select_options(status.id, [done.id, todo.id, doing.id])
        assert option_names(adapter, status.id) == ["Done", "Todo", "Doing"]

    def test_delete_keeps_row_values(self, adapter, status, make_row):
        todo = add_option(adapter, status.id, "Todo")
        row = make_row({status.id: todo.id})
        adapter.delete_select_option(todo.id)
        adapter.delete_select_option(todo.id)
        assert adapter.get_select_options(status.id) == []
        assert adapter.get_row(row.id).cells[status.id] == todo.id
