"""Notifications emitted after workflow state has been committed."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowEventType(str, Enum):
    CREATED = "workflow.created"
    TRANSITION = "workflow.transition"
    TIMEOUT_TRIGGERED = "workflow.timeout.triggered"


class WorkflowCreatedEvent(BaseModel):
    """First dispatch of a previously unseen instance was committed."""

    type: WorkflowEventType = WorkflowEventType.CREATED
    workflow_type: str
    instance_id: str
    initial_state: str
    timestamp: datetime = Field(default_factory=_utcnow)


class WorkflowTransitionEvent(BaseModel):
    """One realized transition was committed."""

    type: WorkflowEventType = WorkflowEventType.TRANSITION
    workflow_type: str
    instance_id: str
    from_state: str
    to_state: str
    event_type: str
    event_payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


class WorkflowTimeoutTriggeredEvent(BaseModel):
    """The sweeper delivered a timeout event to an expired instance."""

    type: WorkflowEventType = WorkflowEventType.TIMEOUT_TRIGGERED
    workflow_type: str
    instance_id: str
    state: str
    expired_at: Optional[datetime] = None
    timestamp: datetime = Field(default_factory=_utcnow)


WorkflowEvent = Union[WorkflowCreatedEvent, WorkflowTransitionEvent, WorkflowTimeoutTriggeredEvent]
Listener = Callable[[WorkflowEvent], None]


class WorkflowEventEmitter:
    """In-process notification sink.

    Listeners run synchronously in subscription order. A listener subscribed
    with ``event_type`` only receives events of that type. Exceptions raised
    by listeners propagate to the caller of :meth:`emit`.
    """

    def __init__(self) -> None:
        self._listeners: List[tuple[Optional[WorkflowEventType], Listener]] = []

    def subscribe(
        self, listener: Listener, event_type: Optional[WorkflowEventType] = None
    ) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unsubscribes it."""
        entry = (event_type, listener)
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe

    def emit(self, event: WorkflowEvent) -> None:
        for event_type, listener in list(self._listeners):
            if event_type is None or event_type == event.type:
                listener(event)


class RecordingEmitter(WorkflowEventEmitter):
    """Emitter that keeps every event it sees, handy in tests and tooling."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)
        super().emit(event)

    def of_type(self, event_type: WorkflowEventType) -> List[WorkflowEvent]:
        return [event for event in self.events if event.type == event_type]
