"""Persistence layer for durable workflows."""

from __future__ import annotations

import os
from typing import Optional

from ..config import DurableWorkflowsConfig, load_config
from .base import WorkflowAdapter, history_table, validate_table_name
from .inmemory import InMemoryTransaction, InMemoryWorkflowAdapter
from .models import ExpiredWorkflow, HistoryRecord, WorkflowRecord
from .sqlite import SQLiteTransaction, SQLiteWorkflowAdapter

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowAdapter
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowAdapter = None  # type: ignore

_adapter_instance: WorkflowAdapter | None = None


def get_adapter(
    database_url: Optional[str] = None, config: Optional[DurableWorkflowsConfig] = None
) -> WorkflowAdapter:
    """Factory function to obtain a workflow adapter.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``DURABLE_WORKFLOWS_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory adapter is returned.
    """

    global _adapter_instance
    if _adapter_instance is not None and database_url is None and config is None:
        return _adapter_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("DURABLE_WORKFLOWS_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _adapter_instance = InMemoryWorkflowAdapter()
        return _adapter_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _adapter_instance = SQLiteWorkflowAdapter(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresWorkflowAdapter is None:
            raise RuntimeError("Postgres support not available")
        _adapter_instance = PostgresWorkflowAdapter(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _adapter_instance


__all__ = [
    "ExpiredWorkflow",
    "HistoryRecord",
    "WorkflowRecord",
    "WorkflowAdapter",
    "InMemoryWorkflowAdapter",
    "InMemoryTransaction",
    "SQLiteWorkflowAdapter",
    "SQLiteTransaction",
    "PostgresWorkflowAdapter",
    "get_adapter",
    "history_table",
    "validate_table_name",
]
