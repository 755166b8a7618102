"""In-memory implementation of the workflow adapter."""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from .base import WorkflowAdapter, history_table, validate_table_name
from .models import ExpiredWorkflow, HistoryRecord, WorkflowRecord

RowKey = Tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _expired(rows: Iterable[WorkflowRecord], now: Optional[datetime]) -> list[ExpiredWorkflow]:
    now = now or _utcnow()
    return [
        ExpiredWorkflow(id=row.id, expires_at=row.expires_at)
        for row in rows
        if row.expires_at is not None and row.expires_at < now
    ]


class InMemoryWorkflowAdapter(WorkflowAdapter):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Row locks are per ``(table, id)`` and
    are taken even for ids that do not exist yet, so two first dispatches of
    the same instance serialize as well. A lock is dropped once no
    transaction holds or waits for it.
    """

    def __init__(self) -> None:
        self._live: Dict[str, Dict[str, WorkflowRecord]] = defaultdict(dict)
        self._history: Dict[str, List[HistoryRecord]] = defaultdict(list)
        # key -> (lock, number of holders and waiters)
        self._row_locks: Dict[RowKey, Tuple[asyncio.Lock, int]] = {}

    async def _acquire_row(self, key: RowKey) -> None:
        lock, users = self._row_locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._row_locks[key] = (lock, users + 1)
        try:
            await lock.acquire()
        except BaseException:
            self._forget_row(key)
            raise

    def _release_row(self, key: RowKey) -> None:
        lock, _ = self._row_locks[key]
        lock.release()
        self._forget_row(key)

    def _forget_row(self, key: RowKey) -> None:
        lock, users = self._row_locks[key]
        if users <= 1:
            del self._row_locks[key]
        else:
            self._row_locks[key] = (lock, users - 1)

    # ------------------------------------------------------------------
    async def find_one(
        self, table: str, workflow_id: str, lock: bool = False
    ) -> WorkflowRecord | None:
        validate_table_name(table)
        row = self._live[table].get(workflow_id)
        return row.model_copy(deep=True) if row else None

    async def upsert_live(
        self,
        table: str,
        workflow_id: str,
        state_value: str,
        snapshot: dict[str, Any],
        expires_at: Optional[datetime],
    ) -> None:
        async with self.transaction() as tx:
            await tx.upsert_live(table, workflow_id, state_value, snapshot, expires_at)

    async def insert_history(
        self,
        table: str,
        workflow_id: str,
        from_state: str,
        to_state: str,
        event_type: str,
        event_payload: dict[str, Any],
    ) -> None:
        async with self.transaction() as tx:
            await tx.insert_history(
                table, workflow_id, from_state, to_state, event_type, event_payload
            )

    async def find_expired(
        self, table: str, now: Optional[datetime] = None
    ) -> list[ExpiredWorkflow]:
        validate_table_name(table)
        return _expired(self._live[table].values(), now)

    async def find_by_state(self, table: str, state_value: str) -> list[WorkflowRecord]:
        validate_table_name(table)
        return [
            row.model_copy(deep=True)
            for row in self._live[table].values()
            if row.state_value == state_value
        ]

    async def find_history(self, table: str, workflow_id: str) -> list[HistoryRecord]:
        validate_table_name(table)
        return [
            row.model_copy(deep=True)
            for row in self._history[table]
            if row.workflow_id == workflow_id
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryTransaction"]:
        tx = InMemoryTransaction(self)
        try:
            yield tx
            tx._commit()
        finally:
            tx._release()


class InMemoryTransaction(WorkflowAdapter):
    """Adapter bound to one in-memory transaction.

    Writes are staged and only applied to the parent adapter on commit, so a
    failed transaction leaves no trace. Locks acquired through
    ``find_one(lock=True)`` are held until the transaction ends.
    """

    def __init__(self, parent: InMemoryWorkflowAdapter) -> None:
        self._parent = parent
        self._staged_live: Dict[RowKey, WorkflowRecord] = {}
        self._staged_history: List[Tuple[str, HistoryRecord]] = []
        self._held: set[RowKey] = set()

    def _live_rows(self, table: str) -> List[WorkflowRecord]:
        rows = dict(self._parent._live[table])
        for (staged_table, workflow_id), row in self._staged_live.items():
            if staged_table == table:
                rows[workflow_id] = row
        return list(rows.values())

    # ------------------------------------------------------------------
    async def find_one(
        self, table: str, workflow_id: str, lock: bool = False
    ) -> WorkflowRecord | None:
        validate_table_name(table)
        key = (table, workflow_id)
        if lock and key not in self._held:
            await self._parent._acquire_row(key)
            self._held.add(key)

        row = self._staged_live.get(key) or self._parent._live[table].get(workflow_id)
        return row.model_copy(deep=True) if row else None

    async def upsert_live(
        self,
        table: str,
        workflow_id: str,
        state_value: str,
        snapshot: dict[str, Any],
        expires_at: Optional[datetime],
    ) -> None:
        validate_table_name(table)
        self._staged_live[(table, workflow_id)] = WorkflowRecord(
            id=workflow_id,
            state_value=state_value,
            snapshot=snapshot,
            expires_at=expires_at,
            updated_at=_utcnow(),
        ).model_copy(deep=True)

    async def insert_history(
        self,
        table: str,
        workflow_id: str,
        from_state: str,
        to_state: str,
        event_type: str,
        event_payload: dict[str, Any],
    ) -> None:
        history_table(table)
        self._staged_history.append(
            (
                table,
                HistoryRecord(
                    id=str(uuid.uuid4()),
                    workflow_id=workflow_id,
                    from_state=from_state,
                    to_state=to_state,
                    event_type=event_type,
                    event_payload=event_payload,
                    transitioned_at=_utcnow(),
                ).model_copy(deep=True),
            )
        )

    async def find_expired(
        self, table: str, now: Optional[datetime] = None
    ) -> list[ExpiredWorkflow]:
        validate_table_name(table)
        return _expired(self._live_rows(table), now)

    async def find_by_state(self, table: str, state_value: str) -> list[WorkflowRecord]:
        validate_table_name(table)
        return [
            row.model_copy(deep=True)
            for row in self._live_rows(table)
            if row.state_value == state_value
        ]

    async def find_history(self, table: str, workflow_id: str) -> list[HistoryRecord]:
        rows = await self._parent.find_history(table, workflow_id)
        rows.extend(
            row.model_copy(deep=True)
            for staged_table, row in self._staged_history
            if staged_table == table and row.workflow_id == workflow_id
        )
        return rows

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryTransaction"]:
        yield self

    # ------------------------------------------------------------------
    def _commit(self) -> None:
        for (table, workflow_id), row in self._staged_live.items():
            self._parent._live[table][workflow_id] = row
        for table, row in self._staged_history:
            self._parent._history[table].append(row)
        self._staged_live.clear()
        self._staged_history.clear()

    def _release(self) -> None:
        for key in self._held:
            self._parent._release_row(key)
        self._held.clear()
