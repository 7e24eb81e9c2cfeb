from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from gridbase.config import settings


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    # SQLite ignores ON DELETE clauses unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: Optional[str] = None, **kwargs: Any) -> Engine:
    engine = create_engine(url or str(settings.SQLALCHEMY_DATABASE_URI), **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


engine = create_db_engine()


def init_db(db_engine: Optional[Engine] = None) -> None:
    # Create tables if they don't exist
    from gridbase import models  # noqa: F401  Import all models to register them

    SQLModel.metadata.create_all(db_engine or engine)
