"""Registry of workflow definitions keyed by workflow type."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from .definition import WorkflowDefinition
from .engine.compiler import TransitionTable, compile_definition
from .errors import DuplicateRegistrationError, WorkflowNotRegisteredError
from .persistence.base import history_table
from .validation import validate_definition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredWorkflow:
    """A validated definition plus its compiled transition table."""

    workflow_type: str
    definition: WorkflowDefinition
    transitions: TransitionTable


class WorkflowRegistry:
    """Holds every workflow type known to the process.

    The workflow type doubles as the storage table name, so it has to be a
    plain identifier. Definitions are validated and compiled once, here.
    """

    def __init__(self) -> None:
        self._registrations: Dict[str, RegisteredWorkflow] = {}

    def register(
        self,
        workflow_type: str,
        definition: Union[WorkflowDefinition, Mapping[str, Any]],
    ) -> RegisteredWorkflow:
        """Validate, compile and store ``definition`` under ``workflow_type``.

        Raises:
            DuplicateRegistrationError: ``workflow_type`` is already taken.
            InvalidTableNameError: ``workflow_type`` is not a valid table name.
            DefinitionError: The definition is malformed.
        """

        history_table(workflow_type)
        definition = validate_definition(definition)

        existing = self._registrations.get(workflow_type)
        if existing is not None:
            raise DuplicateRegistrationError(
                workflow_type, existing.definition.id, definition.id
            )

        registration = RegisteredWorkflow(
            workflow_type=workflow_type,
            definition=definition,
            transitions=compile_definition(definition),
        )
        self._registrations[workflow_type] = registration
        logger.info(f"Registered workflow {definition.id} -> {workflow_type}")
        return registration

    def get(self, workflow_type: str) -> Optional[RegisteredWorkflow]:
        return self._registrations.get(workflow_type)

    def get_or_raise(self, workflow_type: str) -> RegisteredWorkflow:
        registration = self._registrations.get(workflow_type)
        if registration is None:
            raise WorkflowNotRegisteredError(workflow_type)
        return registration

    lookup = get_or_raise

    def all(self) -> List[RegisteredWorkflow]:
        return list(self._registrations.values())

    def __contains__(self, workflow_type: object) -> bool:
        return workflow_type in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)
