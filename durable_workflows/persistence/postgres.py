"""PostgreSQL implementation of the workflow adapter."""

from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import asyncpg

from .base import WorkflowAdapter, history_table, validate_table_name
from .models import ExpiredWorkflow, HistoryRecord, WorkflowRecord


def _json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


def _to_record(row: asyncpg.Record) -> WorkflowRecord:
    return WorkflowRecord(
        id=row["id"],
        state_value=row["state_value"],
        snapshot=_json(row["snapshot"]),
        expires_at=row["expires_at"],
        updated_at=row["updated_at"],
    )


class PostgresWorkflowAdapter(WorkflowAdapter):
    """Persist workflow state using PostgreSQL.

    Row locking uses a transaction-scoped advisory lock on the instance key
    plus ``SELECT ... FOR UPDATE`` inside the transaction opened by
    :meth:`transaction`. The advisory lock also covers ids that have no row
    yet, so first dispatches for one instance serialize while
    other instances proceed in parallel.
    """

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10):
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool | None = None
        self._tables: set[str] = set()

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self._dsn, min_size=self._min_size, max_size=self._max_size
            )
        return self._pool

    async def _ensure_schema(self, conn: asyncpg.Connection, table: str) -> None:
        history = history_table(table)
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                state_value TEXT NOT NULL,
                snapshot JSONB NOT NULL,
                expires_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        await conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_expires_at
                ON {table} (expires_at) WHERE expires_at IS NOT NULL
            """
        )
        await conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_state_value ON {table} (state_value)"
        )
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {history} (
                id TEXT PRIMARY KEY,
                seq BIGSERIAL,
                workflow_id TEXT NOT NULL REFERENCES {table}(id),
                from_state TEXT NOT NULL,
                to_state TEXT NOT NULL,
                event_type TEXT NOT NULL,
                event_payload JSONB NOT NULL,
                transitioned_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
            )
            """
        )
        await conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{history}_workflow_id ON {history} (workflow_id)"
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # ------------------------------------------------------------------
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
    async def transaction(self) -> AsyncIterator["PostgresTransaction"]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            tx = PostgresTransaction(self, conn)
            async with conn.transaction():
                yield tx
            self._tables.update(tx._created)


class PostgresTransaction(WorkflowAdapter):
    """Adapter bound to one connection with an open transaction."""

    def __init__(self, parent: PostgresWorkflowAdapter, conn: asyncpg.Connection) -> None:
        self._parent = parent
        self._conn = conn
        self._created: set[str] = set()

    async def _ensure_tables(self, table: str) -> None:
        validate_table_name(table)
        if table in self._parent._tables or table in self._created:
            return
        await self._parent._ensure_schema(self._conn, table)
        self._created.add(table)

    # ------------------------------------------------------------------
    async def find_one(
        self, table: str, workflow_id: str, lock: bool = False
    ) -> WorkflowRecord | None:
        await self._ensure_tables(table)
        if lock:
            # FOR UPDATE locks nothing while the row does not exist yet
            await self._conn.execute(
                "SELECT pg_advisory_xact_lock(hashtext($1))", f"{table}:{workflow_id}"
            )
        lock_clause = " FOR UPDATE" if lock else ""
        row = await self._conn.fetchrow(
            f"SELECT id, state_value, snapshot, expires_at, updated_at FROM {table} "
            f"WHERE id = $1{lock_clause}",
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
        await self._conn.execute(
            f"""
            INSERT INTO {table} (id, state_value, snapshot, expires_at, updated_at)
            VALUES ($1, $2, $3::jsonb, $4, CURRENT_TIMESTAMP)
            ON CONFLICT (id) DO UPDATE SET
                state_value = EXCLUDED.state_value,
                snapshot = EXCLUDED.snapshot,
                expires_at = EXCLUDED.expires_at,
                updated_at = CURRENT_TIMESTAMP
            """,
            workflow_id,
            state_value,
            json.dumps(snapshot),
            expires_at,
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
        await self._conn.execute(
            f"""
            INSERT INTO {history_table(table)}
            (id, workflow_id, from_state, to_state, event_type, event_payload)
            VALUES ($1, $2, $3, $4, $5, $6::jsonb)
            """,
            str(uuid.uuid4()),
            workflow_id,
            from_state,
            to_state,
            event_type,
            json.dumps(event_payload),
        )

    async def find_expired(
        self, table: str, now: Optional[datetime] = None
    ) -> list[ExpiredWorkflow]:
        await self._ensure_tables(table)
        rows = await self._conn.fetch(
            f"SELECT id, expires_at FROM {table} WHERE expires_at < $1",
            now or datetime.now(timezone.utc),
        )
        return [ExpiredWorkflow(id=r["id"], expires_at=r["expires_at"]) for r in rows]

    async def find_by_state(self, table: str, state_value: str) -> list[WorkflowRecord]:
        await self._ensure_tables(table)
        rows = await self._conn.fetch(
            f"SELECT id, state_value, snapshot, expires_at, updated_at FROM {table} "
            "WHERE state_value = $1",
            state_value,
        )
        return [_to_record(r) for r in rows]

    async def find_history(self, table: str, workflow_id: str) -> list[HistoryRecord]:
        await self._ensure_tables(table)
        rows = await self._conn.fetch(
            f"""
            SELECT id, workflow_id, from_state, to_state, event_type, event_payload, transitioned_at
            FROM {history_table(table)} WHERE workflow_id = $1 ORDER BY seq
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
                event_payload=_json(r["event_payload"]),
                transitioned_at=r["transitioned_at"],
            )
            for r in rows
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresTransaction"]:
        yield self
