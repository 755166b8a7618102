import pytest

from durable_workflows import InvalidSnapshotError
from durable_workflows.constants import ENGINE_TAG, SNAPSHOT_SCHEMA
from durable_workflows.engine import WorkflowRuntime, hydrate_snapshot
from durable_workflows.validation import validate_definition


@pytest.fixture
def definition(order_definition):
    return validate_definition(order_definition)


def _envelope(**overrides):
    envelope = {
        "schema": SNAPSHOT_SCHEMA,
        "version": 1,
        "engine": ENGINE_TAG,
        "state": "picking",
        "status": "active",
        "context": {"count": 2, "express": True},
    }
    envelope.update(overrides)
    return envelope


def test_missing_snapshot_seeds_initial_state(definition):
    seed = hydrate_snapshot("wf-1", definition, None)

    assert seed.state == "idle"
    assert seed.status == "active"
    assert seed.context == {"count": 0, "express": False}


def test_seed_context_is_a_copy(definition):
    seed = hydrate_snapshot("wf-1", definition, None)
    seed.context["count"] = 99

    assert definition.context["count"] == 0


def test_valid_envelope_hydrates(definition):
    seed = hydrate_snapshot("wf-1", definition, _envelope())

    assert seed.state == "picking"
    assert seed.status == "active"
    assert seed.context == {"count": 2, "express": True}


@pytest.mark.parametrize(
    "state, status",
    [("picking", "active"), ("shipped", "done"), ("packed", "error")],
)
def test_envelope_round_trips_unchanged(definition, state, status):
    envelope = _envelope(state=state, status=status)

    assert WorkflowRuntime(definition, "wf-1", snapshot=envelope).snapshot() == envelope


def test_dehydrate_then_hydrate_restores_runtime(definition):
    runtime = WorkflowRuntime(definition, "wf-1", snapshot=_envelope())
    restored = WorkflowRuntime(definition, "wf-1", snapshot=runtime.snapshot())

    assert restored.state == runtime.state
    assert restored.status == runtime.status
    assert restored.context == runtime.context
    assert restored.snapshot() == runtime.snapshot()


@pytest.mark.parametrize(
    "overrides",
    [
        {"schema": "something-else"},
        {"schema": None},
        {"version": 2},
        {"version": "1"},
        {"version": True},
        {"version": None},
    ],
)
def test_rejects_unsupported_envelope(definition, overrides):
    with pytest.raises(InvalidSnapshotError, match="not a supported V1 durable snapshot"):
        hydrate_snapshot("wf-1", definition, _envelope(**overrides))


def test_rejects_foreign_engine(definition):
    with pytest.raises(InvalidSnapshotError, match="unsupported engine xstate"):
        hydrate_snapshot("wf-1", definition, _envelope(engine="xstate"))


@pytest.mark.parametrize("state", ["", "nowhere", None, 3])
def test_rejects_invalid_state(definition, state):
    with pytest.raises(InvalidSnapshotError, match="invalid state"):
        hydrate_snapshot("wf-1", definition, _envelope(state=state))


@pytest.mark.parametrize("context", [None, [], "ctx", 1])
def test_rejects_invalid_context(definition, context):
    with pytest.raises(InvalidSnapshotError, match="invalid context payload"):
        hydrate_snapshot("wf-1", definition, _envelope(context=context))


def test_rejects_invalid_status(definition):
    with pytest.raises(InvalidSnapshotError, match="invalid status paused"):
        hydrate_snapshot("wf-1", definition, _envelope(status="paused"))


def test_rejects_empty_and_non_mapping_snapshots(definition):
    with pytest.raises(InvalidSnapshotError):
        hydrate_snapshot("wf-1", definition, {})
    with pytest.raises(InvalidSnapshotError, match="not a mapping"):
        hydrate_snapshot("wf-1", definition, ["picking"])


def test_checks_run_in_order(definition):
    # a wrong engine is reported before the bad state
    with pytest.raises(InvalidSnapshotError, match="unsupported engine"):
        hydrate_snapshot("wf-1", definition, _envelope(engine="other", state="nowhere"))


def test_error_carries_instance_id(definition):
    with pytest.raises(InvalidSnapshotError) as excinfo:
        hydrate_snapshot("wf-42", definition, _envelope(state="nowhere"))
    assert excinfo.value.instance_id == "wf-42"
    assert "wf-42" in str(excinfo.value)
