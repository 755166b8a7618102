"""Versioned snapshot envelope used to persist runtime state."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Literal, Mapping, Optional

from ..constants import ENGINE_TAG, SNAPSHOT_SCHEMA, SNAPSHOT_VERSION, WORKFLOW_STATUSES
from ..definition import WorkflowDefinition
from ..errors import InvalidSnapshotError

if TYPE_CHECKING:
    from .runtime import WorkflowRuntime

WorkflowStatus = Literal["active", "done", "error"]


@dataclass
class RuntimeSeed:
    """Starting point for a runtime: state, status and an owned context."""

    state: str
    status: WorkflowStatus
    context: Dict[str, Any]


def clone_context(context: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep copy ``context`` through JSON, the form it is persisted in."""
    return json.loads(json.dumps(context))


def is_final_state(definition: WorkflowDefinition, state: str) -> bool:
    state_def = definition.states.get(state)
    return bool(state_def is not None and state_def.is_final)


def hydrate_snapshot(
    instance_id: str,
    definition: WorkflowDefinition,
    snapshot: Optional[Mapping[str, Any]] = None,
    engine_tag: str = ENGINE_TAG,
) -> RuntimeSeed:
    """Restore a runtime seed from ``snapshot`` or from definition defaults.

    Envelopes are rejected rather than coerced: one produced by another
    engine, or for another version of the format, raises
    :class:`InvalidSnapshotError`.
    """

    if snapshot is None:
        return RuntimeSeed(
            state=definition.initial,
            status="done" if is_final_state(definition, definition.initial) else "active",
            context=clone_context(definition.context),
        )

    if not isinstance(snapshot, Mapping):
        raise InvalidSnapshotError(
            instance_id,
            f"Snapshot for workflow {instance_id} is not a mapping",
        )

    version = snapshot.get("version")
    if (
        snapshot.get("schema") != SNAPSHOT_SCHEMA
        or not isinstance(version, int)
        or isinstance(version, bool)
        or version != SNAPSHOT_VERSION
    ):
        raise InvalidSnapshotError(
            instance_id,
            f"Snapshot for workflow {instance_id} is not a supported V1 durable snapshot",
        )

    engine = snapshot.get("engine")
    if engine != engine_tag:
        raise InvalidSnapshotError(
            instance_id,
            f"Snapshot for workflow {instance_id} has unsupported engine {engine}",
        )

    state = snapshot.get("state")
    if not isinstance(state, str) or not state or state not in definition.states:
        raise InvalidSnapshotError(
            instance_id,
            f"Snapshot for workflow {instance_id} has invalid state {state}",
        )

    context = snapshot.get("context")
    if not isinstance(context, dict):
        raise InvalidSnapshotError(
            instance_id,
            f"Snapshot for workflow {instance_id} has invalid context payload",
        )

    status = snapshot.get("status")
    if status not in WORKFLOW_STATUSES:
        raise InvalidSnapshotError(
            instance_id,
            f"Snapshot for workflow {instance_id} has invalid status {status}",
        )

    return RuntimeSeed(state=state, status=status, context=clone_context(context))


def dehydrate_snapshot(runtime: "WorkflowRuntime") -> Dict[str, Any]:
    """Package the runtime's current state into a V1 envelope."""
    return {
        "schema": SNAPSHOT_SCHEMA,
        "version": SNAPSHOT_VERSION,
        "engine": runtime.engine_tag,
        "state": runtime.state,
        "status": runtime.status,
        "context": clone_context(runtime.context),
    }
