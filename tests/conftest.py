import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from gridbase.adapters.memory import MemoryAdapter
from gridbase.adapters.remote import RemoteAdapter
from gridbase.adapters.sql import SQLAdapter
from gridbase.config import Settings, settings
from gridbase.constants import ColumnType
from gridbase.database import create_db_engine, init_db
from gridbase.main import create_app
from gridbase.schemas import CreateColumnInput, CreateRowInput, CreateTableInput


@pytest.fixture()
def test_settings():
    return Settings(_env_file=None, BACKEND="memory", DEFAULT_PAGE_LIMIT=50, MAX_PAGE_LIMIT=1000)


@pytest.fixture()
def sql_engine():
    engine = create_db_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def memory_adapter(test_settings):
    return MemoryAdapter(config=test_settings)


@pytest.fixture()
def sql_adapter(sql_engine, test_settings):
    return SQLAdapter(sql_engine, config=test_settings)


@pytest.fixture()
def api_client(memory_adapter):
    app = create_app(memory_adapter)
    with TestClient(app, base_url=f"http://testserver{settings.API_V1_STR}") as client:
        yield client


@pytest.fixture()
def remote_adapter(api_client, test_settings):
    return RemoteAdapter(client=api_client, config=test_settings)


@pytest.fixture(params=["memory", "sql", "remote"])
def adapter(request):
    """Every contract test runs once per backend."""
    return request.getfixturevalue(f"{request.param}_adapter")


@pytest.fixture()
def table(adapter):
    return adapter.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))


@pytest.fixture()
def make_column(adapter, table):
    def _make(name, column_type=ColumnType.TEXT, table_id=None, **kwargs):
        return adapter.create_column(
            CreateColumnInput(table_id=table_id or table.id, name=name, type=column_type, **kwargs)
        )

    return _make


@pytest.fixture()
def make_row(adapter, table):
    def _make(cells=None, table_id=None, parent_row_id=None):
        return adapter.create_row(
            CreateRowInput(table_id=table_id or table.id, cells=cells or {}, parent_row_id=parent_row_id)
        )

    return _make
