"""Timeout sweeper: turns expired live rows into ordinary timeout events."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from .constants import DEFAULT_SWEEP_INTERVAL_SECONDS, DEFAULT_TIMEOUT_EVENT
from .events import WorkflowEventEmitter, WorkflowTimeoutTriggeredEvent
from .manager import WorkflowManager
from .persistence.base import WorkflowAdapter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SweepFailure(BaseModel):
    workflow_type: str
    instance_id: str
    error: str


class SweepResult(BaseModel):
    """Statistics for one sweep, suitable for monitoring."""

    started_at: datetime
    finished_at: datetime
    duration_ms: float = 0.0
    scanned: int = 0
    expired_found: int = 0
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: List[SweepFailure] = Field(default_factory=list)


class TimeoutSweeper:
    """Periodically delivers the timeout event to every expired instance.

    Timeouts go through :meth:`WorkflowManager.dispatch` like any other event,
    so they are locked, atomic and idempotent: an instance that already left
    the timed-out state simply yields a no-op dispatch. A failing instance is
    recorded and the sweep moves on.
    """

    def __init__(
        self,
        manager: WorkflowManager,
        adapter: WorkflowAdapter | None = None,
        emitter: WorkflowEventEmitter | None = None,
        timeout_event_type: str = DEFAULT_TIMEOUT_EVENT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._manager = manager
        self._registry = manager.registry
        self._adapter = adapter or manager.adapter
        self._emitter = emitter
        self._timeout_event_type = timeout_event_type
        self._clock = clock or _utcnow
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    async def sweep(self) -> SweepResult:
        """Run one pass over every registered workflow type."""
        started_at = self._clock()
        started = time.monotonic()
        result = SweepResult(started_at=started_at, finished_at=started_at)

        for registration in self._registry.all():
            workflow_type = registration.workflow_type
            result.scanned += 1
            expired = await self._adapter.find_expired(workflow_type, now=self._clock())
            result.expired_found += len(expired)

            for row in expired:
                result.attempted += 1
                try:
                    dispatched = await self._manager.dispatch(
                        workflow_type, row.id, {"type": self._timeout_event_type}
                    )
                except Exception as exc:
                    result.failed += 1
                    result.failures.append(
                        SweepFailure(
                            workflow_type=workflow_type, instance_id=row.id, error=str(exc)
                        )
                    )
                    logger.exception(f"Failed to process timeout for {workflow_type}/{row.id}")
                    continue

                result.succeeded += 1
                try:
                    if self._emitter is not None:
                        self._emitter.emit(
                            WorkflowTimeoutTriggeredEvent(
                                workflow_type=workflow_type,
                                instance_id=row.id,
                                state=dispatched.state_value,
                                expired_at=row.expires_at,
                            )
                        )
                    logger.info(f"Timeout processed: {workflow_type}/{row.id}")
                except Exception:
                    logger.exception(
                        f"Timeout side effects failed for {workflow_type}/{row.id}"
                    )

        result.finished_at = self._clock()
        result.duration_ms = (time.monotonic() - started) * 1000
        return result

    # ------------------------------------------------------------------
    async def run(self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> None:
        """Sweep every ``interval_seconds`` until :meth:`stop` is called."""
        if self._stopping is None:
            self._stopping = asyncio.Event()
        stopping = self._stopping
        while not stopping.is_set():
            try:
                summary = await self.sweep()
                logger.info(
                    f"Timeout sweep summary: scanned={summary.scanned}, "
                    f"expired={summary.expired_found}, attempted={summary.attempted}, "
                    f"succeeded={summary.succeeded}, failed={summary.failed}, "
                    f"durationMs={summary.duration_ms:.1f}"
                )
            except Exception:
                logger.exception("Unhandled error in timeout sweep")

            try:
                await asyncio.wait_for(stopping.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

    def start(self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> asyncio.Task:
        """Schedule :meth:`run` as a background task on the running loop."""
        if self._task is None or self._task.done():
            self._stopping = asyncio.Event()
            self._task = asyncio.get_running_loop().create_task(self.run(interval_seconds))
            logger.info(f"Timeout sweeper started with interval {interval_seconds}s")
        return self._task

    async def stop(self) -> None:
        """Ask the background loop to finish its current sweep and exit."""
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._stopping = None
