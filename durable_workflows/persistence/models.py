"""Data models for persisted workflow state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class WorkflowRecord(BaseModel):
    """Live row: the current state of one workflow instance."""

    id: str
    state_value: str
    snapshot: dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    updated_at: datetime


class HistoryRecord(BaseModel):
    """One realized state transition. Never updated once written."""

    id: str
    workflow_id: str
    from_state: str
    to_state: str
    event_type: str
    event_payload: dict[str, Any] = Field(default_factory=dict)
    transitioned_at: datetime


class ExpiredWorkflow(BaseModel):
    """Identifier of a live row whose expiry has passed."""

    id: str
    expires_at: Optional[datetime] = None
