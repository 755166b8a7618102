"""Structural checks run when a workflow definition is registered."""

from __future__ import annotations

import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Union

from pydantic import ValidationError

from .definition import WorkflowDefinition
from .errors import DefinitionError


def _coerce(definition: Union[WorkflowDefinition, Mapping[str, Any]]) -> WorkflowDefinition:
    if isinstance(definition, WorkflowDefinition):
        return definition
    try:
        return WorkflowDefinition.model_validate(definition)
    except ValidationError as exc:
        raise DefinitionError(f"Workflow definition is malformed: {exc}") from exc


def _usable_timeout(minutes: float) -> bool:
    try:
        if not math.isfinite(minutes) or minutes < 0:
            return False
        datetime.now(timezone.utc) + timedelta(minutes=minutes)
    except OverflowError:
        return False
    return True


def validate_definition(
    definition: Union[WorkflowDefinition, Mapping[str, Any]],
) -> WorkflowDefinition:
    """Validate ``definition`` and return it as a :class:`WorkflowDefinition`.

    Raises:
        DefinitionError: If the id or initial state is empty or unknown, a
            state nests further states, a transition targets a state that does
            not exist, a ``timeout_minutes`` value is negative,
            not finite or too large to compute an expiry from, or the default
            context is not JSON serializable.
    """

    definition = _coerce(definition)

    if not definition.id:
        raise DefinitionError("Workflow definition id must be a non-empty string")

    if not definition.initial:
        raise DefinitionError(
            f"Workflow definition {definition.id}: initial state must be a non-empty string"
        )

    if definition.initial not in definition.states:
        raise DefinitionError(
            f'Workflow definition {definition.id}: initial state "{definition.initial}" '
            "does not exist"
        )

    try:
        json.dumps(definition.context)
    except (TypeError, ValueError) as exc:
        raise DefinitionError(
            f"Workflow definition {definition.id}: context must be JSON serializable"
        ) from exc

    for state_name, state in definition.states.items():
        if state.states is not None:
            raise DefinitionError(
                f"Workflow definition {definition.id}: nested states are not "
                f'supported (state "{state_name}")'
            )

        rules = list(state.always)
        for event_rules in state.on.values():
            rules.extend(event_rules)

        for rule in rules:
            if rule.target is not None and rule.target not in definition.states:
                raise DefinitionError(
                    f'Workflow definition {definition.id}: state "{state_name}" '
                    f'targets unknown state "{rule.target}"'
                )

        timeout = state.timeout_minutes
        if timeout is not None and not _usable_timeout(timeout):
            raise DefinitionError(
                f'Workflow definition {definition.id}: state "{state_name}" has '
                "invalid timeout_minutes"
            )

    return definition
