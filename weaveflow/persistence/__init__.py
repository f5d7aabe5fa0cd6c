"""Persistence layer for weaveflow execution records."""

from __future__ import annotations

from typing import Optional

from ..config import WeaveflowConfig, load_config
from .inmemory import InMemoryExecutionStore
from .repository import ExecutionStore
from .sqlite import SQLiteExecutionStore


def get_store(
    database_url: Optional[str] = None, config: Optional[WeaveflowConfig] = None
) -> ExecutionStore:
    """Factory function to obtain an execution store.

    The backend is selected from ``database_url``, which can be given
    explicitly or through the loaded configuration (``WEAVEFLOW_DATABASE_URL``
    overrides the config file). When no database is configured an in-memory
    store is returned.
    """

    config = config or load_config()
    database_url = database_url or config.database_url
    capacity = config.store.capacity

    if not database_url:
        return InMemoryExecutionStore(capacity)

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1) or ":memory:"
        return SQLiteExecutionStore(path, capacity)

    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "ExecutionStore",
    "InMemoryExecutionStore",
    "SQLiteExecutionStore",
    "get_store",
]
