import pytest

from durable_workflows.events import (
    RecordingEmitter,
    WorkflowCreatedEvent,
    WorkflowEventEmitter,
    WorkflowEventType,
    WorkflowTransitionEvent,
)


def _created():
    return WorkflowCreatedEvent(workflow_type="orders", instance_id="wf-1", initial_state="idle")


def _transition():
    return WorkflowTransitionEvent(
        workflow_type="orders",
        instance_id="wf-1",
        from_state="idle",
        to_state="picking",
        event_type="START",
        event_payload={"type": "START"},
    )


def test_event_models_carry_their_type():
    assert _created().type == WorkflowEventType.CREATED
    assert _transition().type.value == "workflow.transition"
    assert _transition().timestamp.tzinfo is not None


def test_listeners_receive_events_in_subscription_order():
    emitter = WorkflowEventEmitter()
    received = []
    emitter.subscribe(lambda event: received.append(("a", event.type)))
    emitter.subscribe(lambda event: received.append(("b", event.type)))

    emitter.emit(_created())

    assert received == [("a", WorkflowEventType.CREATED), ("b", WorkflowEventType.CREATED)]


def test_typed_subscription_filters_events():
    emitter = WorkflowEventEmitter()
    transitions = []
    emitter.subscribe(transitions.append, WorkflowEventType.TRANSITION)

    emitter.emit(_created())
    emitter.emit(_transition())

    assert [event.to_state for event in transitions] == ["picking"]


def test_unsubscribe():
    emitter = WorkflowEventEmitter()
    received = []
    unsubscribe = emitter.subscribe(received.append)

    emitter.emit(_created())
    unsubscribe()
    unsubscribe()
    emitter.emit(_created())

    assert len(received) == 1


def test_listener_errors_propagate_to_emit():
    emitter = WorkflowEventEmitter()

    def broken(event):
        raise RuntimeError("listener down")

    emitter.subscribe(broken)
    with pytest.raises(RuntimeError, match="listener down"):
        emitter.emit(_created())


def test_recording_emitter():
    emitter = RecordingEmitter()
    emitter.emit(_created())
    emitter.emit(_transition())

    assert len(emitter.events) == 2
    assert emitter.of_type(WorkflowEventType.TRANSITION) == [emitter.events[1]]
