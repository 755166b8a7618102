"""SQLite implementation of the workflow adapter."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from .base import WorkflowAdapter, history_table, validate_table_name
from .models import ExpiredWorkflow, HistoryRecord, WorkflowRecord


def _to_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # fixed width so that text comparison orders timestamps
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_text(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_record(row: sqlite3.Row) -> WorkflowRecord:
    return WorkflowRecord(
        id=row["id"],
        state_value=row["state_value"],
        snapshot=json.loads(row["snapshot"]),
        expires_at=_from_text(row["expires_at"]),
        updated_at=_from_text(row["updated_at"]),
    )


class SQLiteWorkflowAdapter(WorkflowAdapter):
    """Persist workflow state using SQLite.

    A single connection is shared, so transactions are serialized by an
    asyncio lock and run as ``BEGIN IMMEDIATE``; this is coarser than a row
    lock but gives the same guarantee for same-instance dispatches. Tables
    for a workflow type are created the first time the type is used.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = asyncio.Lock()
        self._tables: set[str] = set()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _create_tables(self, table: str) -> None:
        history = history_table(table)
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                state_value TEXT NOT NULL,
                snapshot TEXT NOT NULL,
                expires_at TEXT,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_expires_at ON {table} (expires_at)"
        )
        self._execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_state_value ON {table} (state_value)"
        )
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {history} (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES {table}(id),
                from_state TEXT NOT NULL,
                to_state TEXT NOT NULL,
                event_type TEXT NOT NULL,
                event_payload TEXT NOT NULL,
                transitioned_at TEXT NOT NULL
            )
            """
        )
        self._execute(
            f"CREATE INDEX IF NOT EXISTS idx_{history}_workflow_id ON {history} (workflow_id)"
        )

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Adapter API
    async def find_one(
        self, table: str, workflow_id: str, lock: bool = False
    ) -> WorkflowRecord | None:
        async with self.transaction() as tx:
            return await tx.find_one(table, workflow_id, lock=lock)

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
        async with self.transaction() as tx:
            return await tx.find_expired(table, now)

    async def find_by_state(self, table: str, state_value: str) -> list[WorkflowRecord]:
        async with self.transaction() as tx:
            return await tx.find_by_state(table, state_value)

    async def find_history(self, table: str, workflow_id: str) -> list[HistoryRecord]:
        async with self.transaction() as tx:
            return await tx.find_history(table, workflow_id)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLiteTransaction"]:
        async with self._lock:
            await asyncio.to_thread(self._execute, "BEGIN IMMEDIATE")
            tx = SQLiteTransaction(self)
            try:
                yield tx
                await asyncio.to_thread(self._execute, "COMMIT")
            except BaseException:
                await asyncio.to_thread(self._execute, "ROLLBACK")
                raise
            self._tables.update(tx._created)


class SQLiteTransaction(WorkflowAdapter):
    """Adapter bound to the connection's open SQLite transaction."""

    def __init__(self, parent: SQLiteWorkflowAdapter) -> None:
        self._parent = parent
        self._created: set[str] = set()

    async def _ensure_tables(self, table: str) -> None:
        validate_table_name(table)
        if table in self._parent._tables or table in self._created:
            return
        await asyncio.to_thread(self._parent._create_tables, table)
        self._created.add(table)

    # ------------------------------------------------------------------
    async def find_one(
        self, table: str, workflow_id: str, lock: bool = False
    ) -> WorkflowRecord | None:
        # BEGIN IMMEDIATE already holds the database write lock
        await self._ensure_tables(table)
        row = await asyncio.to_thread(
            self._parent._fetchone,
            f"SELECT id, state_value, snapshot, expires_at, updated_at FROM {table} WHERE id = ?",
            workflow_id,
        )
        return _to_record(row) if row else None

    async def upsert_live(
        self,
        table: str,
        workflow_id: str,
        state_value: str,
        snapshot: dict[str, Any],
        expires_at: Optional[datetime],
    ) -> None:
        await self._ensure_tables(table)
        await asyncio.to_thread(
            self._parent._execute,
            f"""
            INSERT INTO {table} (id, state_value, snapshot, expires_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                state_value = excluded.state_value,
                snapshot = excluded.snapshot,
                expires_at = excluded.expires_at,
                updated_at = excluded.updated_at
            """,
            workflow_id,
            state_value,
            json.dumps(snapshot),
            _to_text(expires_at) if expires_at else None,
            _to_text(datetime.now(timezone.utc)),
        )

    async def insert_history(
        self,
        table: str,
        workflow_id: str,
        from_state: str,
        to_state: str,
        event_type: str,
        event_payload: dict[str, Any],
    ) -> None:
        await self._ensure_tables(table)
        await asyncio.to_thread(
            self._parent._execute,
            f"""
            INSERT INTO {history_table(table)}
            (id, workflow_id, from_state, to_state, event_type, event_payload, transitioned_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            str(uuid.uuid4()),
            workflow_id,
            from_state,
            to_state,
            event_type,
            json.dumps(event_payload),
            _to_text(datetime.now(timezone.utc)),
        )

    async def find_expired(
        self, table: str, now: Optional[datetime] = None
    ) -> list[ExpiredWorkflow]:
        await self._ensure_tables(table)
        rows = await asyncio.to_thread(
            self._parent._fetchall,
            f"SELECT id, expires_at FROM {table} WHERE expires_at IS NOT NULL AND expires_at < ?",
            _to_text(now or datetime.now(timezone.utc)),
        )
        return [
            ExpiredWorkflow(id=r["id"], expires_at=_from_text(r["expires_at"])) for r in rows
        ]

    async def find_by_state(self, table: str, state_value: str) -> list[WorkflowRecord]:
        await self._ensure_tables(table)
        rows = await asyncio.to_thread(
            self._parent._fetchall,
            f"SELECT id, state_value, snapshot, expires_at, updated_at FROM {table} "
            "WHERE state_value = ?",
            state_value,
        )
        return [_to_record(r) for r in rows]

    async def find_history(self, table: str, workflow_id: str) -> list[HistoryRecord]:
        await self._ensure_tables(table)
        rows = await asyncio.to_thread(
            self._parent._fetchall,
            f"""
            SELECT id, workflow_id, from_state, to_state, event_type, event_payload, transitioned_at
            FROM {history_table(table)} WHERE workflow_id = ? ORDER BY rowid
            """,
            workflow_id,
        )
        return [
            HistoryRecord(
                id=r["id"],
                workflow_id=r["workflow_id"],
                from_state=r["from_state"],
                to_state=r["to_state"],
                event_type=r["event_type"],
                event_payload=json.loads(r["event_payload"]),
                transitioned_at=_from_text(r["transitioned_at"]),
            )
            for r in rows
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLiteTransaction"]:
        yield self
