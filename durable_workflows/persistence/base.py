"""Adapter abstraction for workflow state persistence."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, AsyncContextManager, Optional, Protocol

from ..constants import HISTORY_TABLE_SUFFIX, TABLE_NAME_PATTERN
from ..errors import InvalidTableNameError
from .models import ExpiredWorkflow, HistoryRecord, WorkflowRecord

_TABLE_NAME_RE = re.compile(TABLE_NAME_PATTERN)


def validate_table_name(table: str) -> str:
    """Return ``table`` unchanged, raising if it is not a safe identifier."""
    if not _TABLE_NAME_RE.match(table):
        raise InvalidTableNameError(table)
    return table


def history_table(table: str) -> str:
    return validate_table_name(f"{validate_table_name(table)}{HISTORY_TABLE_SUFFIX}")


class WorkflowAdapter(Protocol):
    """Protocol for workflow persistence backends.

    ``table`` is the workflow type name; history rows live in
    ``<table>_history``.
    """

    async def find_one(
        self, table: str, workflow_id: str, lock: bool = False
    ) -> WorkflowRecord | None:
        """Return the live row, holding an exclusive row lock when ``lock``."""

    async def upsert_live(
        self,
        table: str,
        workflow_id: str,
        state_value: str,
        snapshot: dict[str, Any],
        expires_at: Optional[datetime],
    ) -> None:
        """Insert or update the live row and refresh its update timestamp."""

    async def insert_history(
        self,
        table: str,
        workflow_id: str,
        from_state: str,
        to_state: str,
        event_type: str,
        event_payload: dict[str, Any],
    ) -> None:
        """Append one history row."""

    async def find_expired(
        self, table: str, now: Optional[datetime] = None
    ) -> list[ExpiredWorkflow]:
        """Return rows whose expiry lies before ``now``."""

    async def find_by_state(self, table: str, state_value: str) -> list[WorkflowRecord]:
        """Return all live rows in ``state_value``."""

    async def find_history(self, table: str, workflow_id: str) -> list[HistoryRecord]:
        """Return history rows for ``workflow_id`` in insertion order."""

    def transaction(self) -> AsyncContextManager["WorkflowAdapter"]:
        """Open a transaction yielding an adapter bound to it.

        The transaction commits when the block exits normally and rolls back
        when it raises. Calling ``transaction()`` on a bound adapter joins the
        enclosing transaction.
        """
