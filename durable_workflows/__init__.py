"""Durable workflows: persisted finite-state machines with timeouts."""

from .config import DurableWorkflowsConfig, load_config
from .definition import ActionInput, StateDefinition, TransitionConfig, WorkflowDefinition
from .engine import StateMachineEngine, WorkflowRuntime
from .errors import (
    DefinitionError,
    DuplicateRegistrationError,
    DurableWorkflowError,
    GuardContractError,
    InvalidSnapshotError,
    InvalidTableNameError,
    RecursiveTransitionError,
    WorkflowNotRegisteredError,
)
from .events import (
    WorkflowCreatedEvent,
    WorkflowEventEmitter,
    WorkflowEventType,
    WorkflowTimeoutTriggeredEvent,
    WorkflowTransitionEvent,
)
from .manager import DispatchResult, WorkflowManager
from .persistence import get_adapter
from .registry import RegisteredWorkflow, WorkflowRegistry
from .sweeper import SweepFailure, SweepResult, TimeoutSweeper
from .validation import validate_definition

__version__ = "0.1.0"
__all__ = [
    "ActionInput",
    "DefinitionError",
    "DispatchResult",
    "DuplicateRegistrationError",
    "DurableWorkflowError",
    "DurableWorkflowsConfig",
    "GuardContractError",
    "InvalidSnapshotError",
    "InvalidTableNameError",
    "RecursiveTransitionError",
    "RegisteredWorkflow",
    "StateDefinition",
    "StateMachineEngine",
    "SweepFailure",
    "SweepResult",
    "TimeoutSweeper",
    "TransitionConfig",
    "WorkflowCreatedEvent",
    "WorkflowDefinition",
    "WorkflowEventEmitter",
    "WorkflowEventType",
    "WorkflowManager",
    "WorkflowNotRegisteredError",
    "WorkflowRegistry",
    "WorkflowRuntime",
    "WorkflowTimeoutTriggeredEvent",
    "WorkflowTransitionEvent",
    "get_adapter",
    "load_config",
    "validate_definition",
]
