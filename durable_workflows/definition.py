"""Declarative workflow definition models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator


@dataclass(frozen=True)
class ActionInput:
    """Arguments handed to every guard and action.

    ``context`` is the runtime's own mapping: actions mutate it in place and
    later actions of the same dispatch observe those changes.
    """

    context: Dict[str, Any]
    event: Dict[str, Any]
    from_state: str
    to_state: str


WorkflowGuard = Callable[[ActionInput], bool]
WorkflowAction = Callable[[ActionInput], Union[None, Awaitable[None]]]


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_rules(value: Any) -> list:
    return [{"target": rule} if isinstance(rule, str) else rule for rule in _as_list(value)]


class TransitionConfig(BaseModel):
    """One candidate transition. Without ``target`` only the actions run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    target: Optional[str] = None
    guard: Optional[WorkflowGuard] = None
    actions: List[WorkflowAction] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _normalize_actions(cls, v: Any) -> list:
        return _as_list(v)


class StateDefinition(BaseModel):
    """A flat state: its transitions, timeout and lifecycle actions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    final: bool = False
    # legacy spelling of ``final=True``
    type: Optional[Literal["final"]] = None
    timeout_minutes: Optional[Union[StrictInt, StrictFloat]] = None
    on: Dict[str, List[TransitionConfig]] = Field(default_factory=dict)
    always: List[TransitionConfig] = Field(default_factory=list)
    entry: List[WorkflowAction] = Field(default_factory=list)
    exit: List[WorkflowAction] = Field(default_factory=list)
    # accepted only so that validation can reject hierarchical machines
    states: Optional[Dict[str, Any]] = None

    @field_validator("on", mode="before")
    @classmethod
    def _normalize_on(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {event_type: _as_rules(rules) for event_type, rules in v.items()}
        return v

    @field_validator("always", mode="before")
    @classmethod
    def _normalize_always(cls, v: Any) -> list:
        return _as_rules(v)

    @field_validator("entry", "exit", mode="before")
    @classmethod
    def _normalize_lifecycle(cls, v: Any) -> list:
        return _as_list(v)

    @property
    def is_final(self) -> bool:
        return self.final or self.type == "final"


class WorkflowDefinition(BaseModel):
    """Immutable finite-state-machine definition shared by all instances."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    initial: str
    context: Dict[str, Any] = Field(default_factory=dict)
    states: Dict[str, StateDefinition]
