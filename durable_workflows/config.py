from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_MAX_TRANSITION_DEPTH,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_EVENT,
)


class TimeoutConfig(BaseModel):
    """Settings for the timeout sweeper."""

    enabled: bool = True
    event_type: str = DEFAULT_TIMEOUT_EVENT
    interval_seconds: float = Field(default=DEFAULT_SWEEP_INTERVAL_SECONDS, gt=0)


class DurableWorkflowsConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    max_transition_depth: int = Field(default=DEFAULT_MAX_TRANSITION_DEPTH, ge=1)
    timeout: TimeoutConfig = TimeoutConfig()


def load_config(path: Optional[str] = None) -> DurableWorkflowsConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to
            DURABLE_WORKFLOWS_CONFIG env variable or 'config.yaml' in the
            current directory.
    """

    config_path = path or os.getenv("DURABLE_WORKFLOWS_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = DurableWorkflowsConfig(**data)
    else:
        config = DurableWorkflowsConfig()

    env_db_url = os.getenv("DURABLE_WORKFLOWS_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
