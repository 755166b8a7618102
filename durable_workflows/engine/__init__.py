"""State machine engine: compiler, snapshot codec and runtime."""

from __future__ import annotations

from .compiler import CompiledTransition, StateTransitions, TransitionTable, compile_definition
from .runtime import (
    RuntimeResult,
    RuntimeTransition,
    StateMachineEngine,
    WorkflowRuntime,
    normalize_event,
)
from .snapshot import (
    RuntimeSeed,
    clone_context,
    dehydrate_snapshot,
    hydrate_snapshot,
    is_final_state,
)

__all__ = [
    "CompiledTransition",
    "StateTransitions",
    "TransitionTable",
    "compile_definition",
    "RuntimeResult",
    "RuntimeTransition",
    "StateMachineEngine",
    "WorkflowRuntime",
    "normalize_event",
    "RuntimeSeed",
    "clone_context",
    "dehydrate_snapshot",
    "hydrate_snapshot",
    "is_final_state",
]
