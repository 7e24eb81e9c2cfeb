from gridbase.adapters.sql.adapter import SQLAdapter

__all__ = ["SQLAdapter"]
