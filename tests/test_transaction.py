import pytest

from gridbase.constants import TransactionSemantics
from gridbase.errors import NotFoundError
from gridbase.schemas import CreateRowInput, CreateTableInput


def create_then_fail(table_id):
    def work(tx):
        tx.create_row(CreateRowInput(table_id=table_id))
        tx.create_row(CreateRowInput(table_id=table_id))
        tx.get_row("missing")

    return work


def test_sql_transaction_rolls_back(sql_adapter):
    assert sql_adapter.transaction_semantics == TransactionSemantics.ATOMIC
    table = sql_adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))

    with pytest.raises(NotFoundError):
        sql_adapter.transaction(create_then_fail(table.id))

    assert sql_adapter.get_rows(table.id).total == 0


def test_sql_transaction_commits(sql_adapter):
    table = sql_adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))

    def work(tx):
        first = tx.create_row(CreateRowInput(table_id=table.id))
        tx.create_row(CreateRowInput(table_id=table.id, parent_row_id=first.id))
        return first

    first = sql_adapter.transaction(work)
    assert sql_adapter.get_row(first.id).id == first.id
    assert sql_adapter.has_children(first.id)


def test_sql_transaction_rolls_back_cascades(sql_adapter):
    table = sql_adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))
    row = sql_adapter.create_row(CreateRowInput(table_id=table.id))

    def work(tx):
        tx.delete_table(table.id)
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        sql_adapter.transaction(work)

    assert sql_adapter.get_table(table.id).name == "Tasks"
    assert sql_adapter.get_row(row.id).table_id == table.id


@pytest.mark.parametrize("backend", ["memory_adapter", "remote_adapter"])
def test_sequential_transaction_keeps_earlier_calls(request, backend):
    adapter = request.getfixturevalue(backend)
    assert adapter.transaction_semantics == TransactionSemantics.SEQUENTIAL
    table = adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))

    with pytest.raises(NotFoundError):
        adapter.transaction(create_then_fail(table.id))

    assert adapter.get_rows(table.id).total == 2
