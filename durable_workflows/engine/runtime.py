"""Finite-state-machine runtime that drives one event to a settled state."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..constants import DEFAULT_MAX_TRANSITION_DEPTH, ENGINE_TAG
from ..definition import ActionInput, WorkflowAction, WorkflowDefinition
from ..errors import GuardContractError, RecursiveTransitionError
from .compiler import CompiledTransition, TransitionTable, compile_definition
from .snapshot import WorkflowStatus, dehydrate_snapshot, hydrate_snapshot, is_final_state

logger = logging.getLogger(__name__)


def normalize_event(event: Union[str, Mapping[str, Any]]) -> Dict[str, Any]:
    """Return ``event`` as a mapping, accepting a bare event type string."""
    payload = {"type": event} if isinstance(event, str) else dict(event)
    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ValueError("Workflow event must carry a non-empty string 'type'")
    return payload


@dataclass(frozen=True)
class RuntimeTransition:
    from_state: str
    to_state: str


@dataclass(frozen=True)
class RuntimeResult:
    """Outcome of one :meth:`WorkflowRuntime.dispatch` call."""

    state: str
    done: bool
    transitions: List[RuntimeTransition] = field(default_factory=list)


class WorkflowRuntime:
    """Ephemeral machine owned by a single dispatch.

    The runtime is seeded from a persisted envelope (or the definition's
    defaults), processes one event to quiescence and is then dehydrated and
    discarded. Its context is never shared with another runtime.
    """

    engine_tag = ENGINE_TAG

    def __init__(
        self,
        definition: WorkflowDefinition,
        instance_id: str,
        snapshot: Optional[Mapping[str, Any]] = None,
        max_transition_depth: int = DEFAULT_MAX_TRANSITION_DEPTH,
        transitions: Optional[TransitionTable] = None,
    ) -> None:
        seed = hydrate_snapshot(instance_id, definition, snapshot, engine_tag=self.engine_tag)
        self._definition = definition
        self._instance_id = instance_id
        self._max_depth = max_transition_depth
        self._table = transitions if transitions is not None else compile_definition(definition)
        self._state = seed.state
        self._status: WorkflowStatus = seed.status
        self._context = seed.context
        self._transitions: List[RuntimeTransition] = []
        self._depth = 0

    # ------------------------------------------------------------------
    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def state(self) -> str:
        return self._state

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def done(self) -> bool:
        return self._status == "done"

    @property
    def context(self) -> Dict[str, Any]:
        return self._context

    @property
    def depth(self) -> int:
        """Number of targeted transitions taken during the current dispatch."""
        return self._depth

    def snapshot(self) -> Dict[str, Any]:
        """Return the V1 envelope for the current state."""
        return dehydrate_snapshot(self)

    # ------------------------------------------------------------------
    async def dispatch(self, event: Union[str, Mapping[str, Any]]) -> RuntimeResult:
        """Process ``event`` and every resulting always-transition.

        Args:
            event: Mapping with at least a ``type`` key. The whole mapping is
                handed to guards and actions. A bare string is taken as
                the event type.

        Returns:
            The settled state, whether it is final, and the realized
            transitions in causal order. Terminal runtimes return immediately
            without evaluating any guard or action.

        Raises:
            ValueError: The event has no non-empty string ``type``.
            GuardContractError: A guard returned a non-boolean.
            RecursiveTransitionError: More than ``max_transition_depth``
                targeted transitions were taken.
        """

        payload = normalize_event(event)
        if self._status == "done":
            return RuntimeResult(state=self._state, done=True, transitions=[])

        self._transitions = []
        self._depth = 0

        candidates = self._table[self._state].for_event(payload["type"])
        await self._take_first_match(candidates, payload)

        while await self._take_first_match(self._table[self._state].always, payload):
            pass

        self._status = "done" if is_final_state(self._definition, self._state) else "active"
        return RuntimeResult(
            state=self._state, done=self.done, transitions=list(self._transitions)
        )

    # ------------------------------------------------------------------
    async def _take_first_match(
        self, candidates: Sequence[CompiledTransition], event: Dict[str, Any]
    ) -> bool:
        """Run the first candidate whose guard passes.

        Returns ``True`` only when a targeted transition was taken.
        """

        for candidate in candidates:
            if not self._passes_guard(candidate, event):
                continue

            if candidate.target is None:
                await self._run_actions(candidate.actions, self._state, self._state, event)
                return False

            self._depth += 1
            if self._depth > self._max_depth:
                raise RecursiveTransitionError(self._instance_id, self._depth, self._max_depth)
            await self._transition(candidate, event)
            return True

        return False

    def _passes_guard(self, candidate: CompiledTransition, event: Dict[str, Any]) -> bool:
        if candidate.guard is None:
            return True

        result = candidate.guard(
            ActionInput(
                context=self._context,
                event=event,
                from_state=self._state,
                to_state=candidate.target or self._state,
            )
        )
        if not isinstance(result, bool):
            if inspect.iscoroutine(result):
                result.close()
            raise GuardContractError(self._instance_id, candidate.name, result)
        return result

    async def _transition(self, candidate: CompiledTransition, event: Dict[str, Any]) -> None:
        from_state = self._state
        to_state = candidate.target

        await self._run_actions(
            self._definition.states[from_state].exit, from_state, to_state, event
        )
        self._state = to_state
        await self._run_actions(candidate.actions, from_state, to_state, event)

        if from_state != to_state:
            await self._run_actions(
                self._definition.states[to_state].entry, from_state, to_state, event
            )
            self._transitions.append(RuntimeTransition(from_state=from_state, to_state=to_state))
            logger.debug(
                f"Workflow {self._instance_id}: {from_state} -> {to_state} via {candidate.name}"
            )

    async def _run_actions(
        self,
        actions: Sequence[WorkflowAction],
        from_state: str,
        to_state: str,
        event: Dict[str, Any],
    ) -> None:
        for action in actions:
            result = action(
                ActionInput(
                    context=self._context,
                    event=event,
                    from_state=from_state,
                    to_state=to_state,
                )
            )
            if inspect.isawaitable(result):
                await result


class StateMachineEngine:
    """Factory for :class:`WorkflowRuntime` instances.

    The engine tag it reports is written into every envelope its runtimes
    produce, and envelopes carrying any other tag are rejected on hydrate.
    """

    tag = WorkflowRuntime.engine_tag

    def create_runtime(
        self,
        definition: WorkflowDefinition,
        instance_id: str,
        snapshot: Optional[Mapping[str, Any]] = None,
        max_transition_depth: int = DEFAULT_MAX_TRANSITION_DEPTH,
        transitions: Optional[TransitionTable] = None,
    ) -> WorkflowRuntime:
        return WorkflowRuntime(
            definition,
            instance_id,
            snapshot=snapshot,
            max_transition_depth=max_transition_depth,
            transitions=transitions,
        )
