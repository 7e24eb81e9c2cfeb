from sqlalchemy import DateTime

from gridbase.adapters.sql.models import RowRecord, TableRecord
from gridbase.schemas import CreateRowInput, CreateTableInput


def test_timestamp_columns_store_naive_utc():
    for record in (TableRecord, RowRecord):
        for name in ("created_at", "updated_at"):
            column_type = record.__table__.c[name].type
            assert isinstance(column_type, DateTime)
            assert column_type.timezone is False


def test_row_round_trip_keeps_timestamps(sql_adapter):
    table = sql_adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))
    created = sql_adapter.create_row(CreateRowInput(table_id=table.id, cells={"title": "Flight to SF"}))

    fetched = sql_adapter.get_row(created.id)
    assert fetched.cells == {"title": "Flight to SF"}
    assert fetched.created_at.tzinfo is None
    assert fetched.created_at == fetched.updated_at == created.created_at

    updated = sql_adapter.update_row(created.id, {"title": "Flight to NYC"})
    assert updated.updated_at >= fetched.updated_at
    assert sql_adapter.get_row(created.id).cells == {"title": "Flight to NYC"}
