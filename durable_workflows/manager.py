"""Workflow manager: one transactional dispatch per event."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field

from .constants import DEFAULT_MAX_TRANSITION_DEPTH
from .engine.runtime import RuntimeTransition, StateMachineEngine, normalize_event
from .events import (
    WorkflowCreatedEvent,
    WorkflowEvent,
    WorkflowEventEmitter,
    WorkflowTransitionEvent,
)
from .persistence.base import WorkflowAdapter
from .registry import WorkflowRegistry
from .utils.state import flatten_state_value, get_timeout_expiry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchResult(BaseModel):
    """Settled view of an instance after one dispatch."""

    id: str
    state_value: str
    snapshot: Dict[str, Any] = Field(default_factory=dict)
    transition_count: int = 0
    done: bool = False
    expires_at: Optional[datetime] = None


class WorkflowManager:
    """Drives events through the persistence and concurrency protocol.

    Each :meth:`dispatch` locks the instance's live row, runs a fresh runtime
    to quiescence, writes the live row and one history row per transition in
    the same transaction, and only after commit emits notifications.
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        adapter: WorkflowAdapter,
        emitter: WorkflowEventEmitter | None = None,
        max_transition_depth: int = DEFAULT_MAX_TRANSITION_DEPTH,
        engine: StateMachineEngine | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._adapter = adapter
        self._emitter = emitter
        self._max_depth = max_transition_depth
        self._engine = engine or StateMachineEngine()
        self._clock = clock or _utcnow

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    @property
    def adapter(self) -> WorkflowAdapter:
        return self._adapter

    async def dispatch(
        self,
        workflow_type: str,
        instance_id: str,
        event: Union[str, Mapping[str, Any]],
    ) -> DispatchResult:
        """Deliver ``event`` to the instance ``instance_id`` of ``workflow_type``.

        Args:
            workflow_type: Registered workflow type (also the table name).
            instance_id: Instance identifier; an unseen id creates the instance.
            event: Mapping with a ``type`` key, or a bare event type string.

        Returns:
            The settled state, envelope and number of persisted transitions.

        Raises:
            WorkflowNotRegisteredError: Before any transaction is opened.
            InvalidSnapshotError, GuardContractError, RecursiveTransitionError:
                After rolling back; nothing is persisted.
        """

        registration = self._registry.get_or_raise(workflow_type)
        payload = normalize_event(event)
        definition = registration.definition

        async with self._adapter.transaction() as tx:
            existing = await tx.find_one(workflow_type, instance_id, lock=True)
            is_new = existing is None

            runtime = self._engine.create_runtime(
                definition,
                instance_id,
                snapshot=existing.snapshot if existing else None,
                max_transition_depth=self._max_depth,
                transitions=registration.transitions,
            )
            outcome = await runtime.dispatch(payload)

            state_value = flatten_state_value(outcome.state)
            snapshot = runtime.snapshot()
            expires_at = get_timeout_expiry(definition, outcome.state, now=self._clock())

            await tx.upsert_live(workflow_type, instance_id, state_value, snapshot, expires_at)
            for transition in outcome.transitions:
                await tx.insert_history(
                    workflow_type,
                    instance_id,
                    transition.from_state,
                    transition.to_state,
                    payload["type"],
                    payload,
                )

        logger.info(
            f"Workflow {workflow_type}/{instance_id}: {len(outcome.transitions)} "
            f"transition(s) persisted, state={state_value}"
        )
        self._emit_committed(
            workflow_type, instance_id, is_new, state_value, outcome.transitions, payload
        )

        return DispatchResult(
            id=instance_id,
            state_value=state_value,
            snapshot=snapshot,
            transition_count=len(outcome.transitions),
            done=outcome.done,
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    def _emit_committed(
        self,
        workflow_type: str,
        instance_id: str,
        is_new: bool,
        state_value: str,
        transitions: list[RuntimeTransition],
        payload: Dict[str, Any],
    ) -> None:
        if is_new:
            self._notify(
                WorkflowCreatedEvent(
                    workflow_type=workflow_type,
                    instance_id=instance_id,
                    initial_state=state_value,
                )
            )
        for transition in transitions:
            self._notify(
                WorkflowTransitionEvent(
                    workflow_type=workflow_type,
                    instance_id=instance_id,
                    from_state=transition.from_state,
                    to_state=transition.to_state,
                    event_type=payload["type"],
                    event_payload=payload,
                )
            )

    def _notify(self, event: WorkflowEvent) -> None:
        if self._emitter is None:
            return
        try:
            self._emitter.emit(event)
        except Exception:
            # notifications never fail a committed dispatch
            logger.exception(
                f"Notification {event.type.value} failed for "
                f"{event.workflow_type}/{event.instance_id}"
            )
