"""Compile a workflow definition into per-state transition tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..definition import TransitionConfig, WorkflowDefinition, WorkflowAction, WorkflowGuard


@dataclass(frozen=True)
class CompiledTransition:
    name: str
    source: str
    target: Optional[str]
    guard: Optional[WorkflowGuard]
    actions: Tuple[WorkflowAction, ...]


@dataclass(frozen=True)
class StateTransitions:
    """Candidates for one state, each sequence in declaration order."""

    on: Dict[str, Tuple[CompiledTransition, ...]] = field(default_factory=dict)
    always: Tuple[CompiledTransition, ...] = ()

    def for_event(self, event_type: str) -> Tuple[CompiledTransition, ...]:
        return self.on.get(event_type, ())


TransitionTable = Dict[str, StateTransitions]


def compile_definition(definition: WorkflowDefinition) -> TransitionTable:
    """Build the lookup table used by the runtime.

    Synthetic names (``tr0``, ``tr1``, ...) are assigned in declaration order
    across the whole definition, so compiling the same definition twice
    yields identical tables.
    """

    counter = 0

    def _compile(source: str, rule: TransitionConfig) -> CompiledTransition:
        nonlocal counter
        name = f"tr{counter}"
        counter += 1
        return CompiledTransition(
            name=name,
            source=source,
            target=rule.target,
            guard=rule.guard,
            actions=tuple(rule.actions),
        )

    table: TransitionTable = {}
    for state_name, state in definition.states.items():
        on = {
            event_type: tuple(_compile(state_name, rule) for rule in rules)
            for event_type, rules in state.on.items()
        }
        always = tuple(_compile(state_name, rule) for rule in state.always)
        table[state_name] = StateTransitions(on=on, always=always)
    return table
