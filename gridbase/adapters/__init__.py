from typing import Optional

from gridbase.adapters.base import DatabaseAdapter
from gridbase.config import Settings, settings


def get_adapter(config: Optional[Settings] = None) -> DatabaseAdapter:
    """Build the backend selected by ``BACKEND``."""
    config = config or settings
    if config.BACKEND == "sql":
        from gridbase.adapters.sql import SQLAdapter
        from gridbase.database import create_db_engine, init_db

        engine = create_db_engine(str(config.SQLALCHEMY_DATABASE_URI))
        init_db(engine)
        return SQLAdapter(engine, config=config)
    if config.BACKEND == "remote":
        from gridbase.adapters.remote import RemoteAdapter

        return RemoteAdapter(config=config)

    from gridbase.adapters.memory import MemoryAdapter

    return MemoryAdapter(config=config)


__all__ = ["DatabaseAdapter", "get_adapter"]
