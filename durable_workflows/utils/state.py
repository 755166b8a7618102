from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional, Union

from ..definition import WorkflowDefinition

StateValue = Union[str, Mapping[str, "StateValue"]]


def flatten_state_value(value: StateValue) -> str:
    """Flatten a state value into its dot-path form.

    ``"idle"`` stays ``"idle"``; ``{"shipping": {"packing": "boxed"}}``
    becomes ``"shipping.packing.boxed"``.
    """
    if isinstance(value, str):
        return value
    key, child = next(iter(value.items()))
    return f"{key}.{flatten_state_value(child)}"


def get_timeout_expiry(
    definition: WorkflowDefinition, state: str, now: Optional[datetime] = None
) -> Optional[datetime]:
    """Expiry for ``state`` counted from ``now``, or ``None`` without a timeout."""
    state_def = definition.states.get(state)
    if state_def is None or state_def.timeout_minutes is None:
        return None
    base = now or datetime.now(timezone.utc)
    return base + timedelta(minutes=state_def.timeout_minutes)
