"""Tests for definition validation."""

import pytest

from durable_workflows import (
    DefinitionError,
    WorkflowDefinition,
    WorkflowManager,
    WorkflowRegistry,
    validate_definition,
)
from durable_workflows.engine import hydrate_snapshot


def _definition(**overrides):
    data = {
        "id": "sample",
        "initial": "idle",
        "context": {"n": 1},
        "states": {
            "idle": {"on": {"GO": "running"}},
            "running": {"timeout_minutes": 5, "always": [{"target": "idle", "guard": lambda a: False}]},
        },
    }
    data.update(overrides)
    return data


def test_accepts_well_formed_definition():
    definition = validate_definition(_definition())
    assert isinstance(definition, WorkflowDefinition)
    assert definition.states["running"].timeout_minutes == 5
    assert definition.states["idle"].on["GO"][0].target == "running"


def test_accepts_model_instance_unchanged():
    definition = WorkflowDefinition.model_validate(_definition())
    assert validate_definition(definition) is definition


def test_rejects_unknown_target_in_on():
    data = _definition()
    data["states"]["idle"] = {"on": {"GO": "nowhere"}}
    with pytest.raises(DefinitionError, match='targets unknown state "nowhere"'):
        validate_definition(data)


def test_rejects_unknown_target_in_always():
    data = _definition()
    data["states"]["running"] = {"always": {"target": "missing"}}
    with pytest.raises(DefinitionError, match="missing"):
        validate_definition(data)


def test_initial_final_state_is_accepted_and_seeds_done():
    definition = validate_definition(
        {"id": "finished", "initial": "end", "context": {}, "states": {"end": {"final": True}}}
    )
    seed = hydrate_snapshot("wf-1", definition)
    assert seed.state == "end"
    assert seed.status == "done"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"id": ""}, "id must be a non-empty string"),
        ({"initial": ""}, "initial state must be a non-empty string"),
        ({"initial": "ghost"}, 'initial state "ghost" does not exist'),
    ],
)
def test_rejects_bad_id_and_initial(overrides, message):
    with pytest.raises(DefinitionError, match=message):
        validate_definition(_definition(**overrides))


def test_rejects_nested_states():
    data = _definition()
    data["states"]["running"] = {"states": {"inner": {}}}
    with pytest.raises(DefinitionError, match="nested states are not supported"):
        validate_definition(data)


def test_rejects_negative_timeout():
    data = _definition()
    data["states"]["running"] = {"timeout_minutes": -1}
    with pytest.raises(DefinitionError, match="invalid timeout_minutes"):
        validate_definition(data)


def test_zero_timeout_is_allowed():
    data = _definition()
    data["states"]["running"] = {"timeout_minutes": 0}
    assert validate_definition(data).states["running"].timeout_minutes == 0


@pytest.mark.parametrize("timeout", ["soon", "5", True, False])
def test_rejects_non_numeric_timeout(timeout):
    data = _definition()
    data["states"]["running"] = {"timeout_minutes": timeout}
    with pytest.raises(DefinitionError):
        validate_definition(data)


@pytest.mark.parametrize(
    "timeout", [float("inf"), float("-inf"), float("nan"), 1e20, 10**12]
)
def test_rejects_timeout_without_computable_expiry(timeout):
    data = _definition()
    data["states"]["running"] = {"timeout_minutes": timeout}
    with pytest.raises(DefinitionError, match="invalid timeout_minutes"):
        validate_definition(data)


@pytest.mark.asyncio
async def test_large_valid_timeout_dispatches(adapter):
    data = _definition()
    data["states"]["running"] = {"timeout_minutes": 60 * 24 * 365 * 50}
    registry = WorkflowRegistry()
    registry.register("long_waits", data)

    result = await WorkflowManager(registry, adapter).dispatch("long_waits", "wf-1", "GO")
    assert result.state_value == "running"
    assert result.expires_at is not None


def test_rejects_non_json_context():
    with pytest.raises(DefinitionError, match="JSON serializable"):
        validate_definition(_definition(context={"when": object()}))


def test_rejects_structurally_malformed_definition():
    with pytest.raises(DefinitionError, match="malformed"):
        validate_definition({"id": "broken", "initial": "idle", "states": ["idle"]})


def test_legacy_final_marker():
    data = _definition()
    data["states"]["running"] = {"type": "final"}
    definition = validate_definition(data)
    assert definition.states["running"].is_final
    assert not definition.states["idle"].is_final
