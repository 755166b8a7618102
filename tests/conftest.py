"""Shared fixtures: sample definitions, an in-memory adapter and a manager."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from durable_workflows import WorkflowManager, WorkflowRegistry
from durable_workflows.events import RecordingEmitter
from durable_workflows.persistence import InMemoryWorkflowAdapter

FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def increment(args):
    args.context["count"] += 1


async def slow_increment(args):
    value = args.context["count"]
    # give concurrent dispatches a chance to interleave
    await asyncio.sleep(0)
    args.context["count"] = value + 1


def build_order_definition():
    return {
        "id": "order",
        "initial": "idle",
        "context": {"count": 0, "express": False},
        "states": {
            "idle": {
                "on": {
                    "START": "picking",
                    "INCREMENT": {"actions": [slow_increment]},
                }
            },
            "picking": {
                "timeout_minutes": 30,
                "on": {
                    "PICKED": "packed",
                    "TIMEOUT": "cancelled",
                    "INCREMENT": {"actions": [increment]},
                },
            },
            "packed": {"on": {"SHIP": "shipped"}},
            "shipped": {"final": True},
            "cancelled": {"type": "final"},
        },
    }


def build_chain_definition():
    return {
        "id": "chain",
        "initial": "idle",
        "context": {},
        "states": {
            "idle": {"on": {"START": "a"}},
            "a": {"always": "b"},
            "b": {"always": ["c"]},
            "c": {},
        },
    }


def build_loop_definition():
    return {
        "id": "loop",
        "initial": "idle",
        "context": {},
        "states": {
            "idle": {"on": {"START": "a"}},
            "a": {"always": "b"},
            "b": {"always": "a"},
        },
    }


@pytest.fixture
def order_definition():
    return build_order_definition()


@pytest.fixture
def adapter():
    return InMemoryWorkflowAdapter()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def registry():
    registry = WorkflowRegistry()
    registry.register("orders", build_order_definition())
    registry.register("chains", build_chain_definition())
    registry.register("loops", build_loop_definition())
    return registry


@pytest.fixture
def manager(registry, adapter, emitter):
    return WorkflowManager(
        registry,
        adapter,
        emitter=emitter,
        max_transition_depth=5,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def after_timeout():
    return FIXED_NOW + timedelta(minutes=31)
