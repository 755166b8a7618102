"""Exceptions raised by the durable workflow core."""

from __future__ import annotations


class DurableWorkflowError(Exception):
    """Base class for all durable workflow errors."""


class DefinitionError(DurableWorkflowError, ValueError):
    """A workflow definition is malformed and cannot be registered."""


class GuardContractError(DurableWorkflowError, TypeError):
    """A guard returned something other than a synchronous boolean."""

    def __init__(self, instance_id: str, transition: str, result: object) -> None:
        self.instance_id = instance_id
        self.transition = transition
        super().__init__(
            f"Guard for workflow {instance_id} (transition {transition}) must return "
            f"a synchronous boolean value, got {type(result).__name__}"
        )


class RecursiveTransitionError(DurableWorkflowError):
    """The always-transition chain exceeded the configured depth."""

    def __init__(self, instance_id: str, depth: int, max_depth: int) -> None:
        self.instance_id = instance_id
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"Recursive transition limit ({max_depth}) exceeded for workflow "
            f"{instance_id}. Reached depth {depth}. Check for infinite "
            "always-transition loops."
        )


class InvalidSnapshotError(DurableWorkflowError):
    """A persisted snapshot envelope cannot be hydrated."""

    def __init__(self, instance_id: str, message: str) -> None:
        self.instance_id = instance_id
        super().__init__(message)


class WorkflowNotRegisteredError(DurableWorkflowError, LookupError):
    """No definition is registered under the requested workflow type."""

    def __init__(self, workflow_type: str) -> None:
        self.workflow_type = workflow_type
        super().__init__(f'No workflow registered for type "{workflow_type}".')


class DuplicateRegistrationError(DurableWorkflowError):
    """Two definitions claim the same workflow type."""

    def __init__(self, workflow_type: str, existing_id: str, new_id: str) -> None:
        self.workflow_type = workflow_type
        super().__init__(
            f'Duplicate workflow type "{workflow_type}". Both {existing_id} and '
            f"{new_id} are registered under the same name."
        )


class InvalidTableNameError(DurableWorkflowError, ValueError):
    """A workflow type cannot be used as a storage table name."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(
            f'Invalid table name "{table_name}". Only alphanumeric characters '
            "and underscores are allowed."
        )
