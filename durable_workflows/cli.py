"""Command line interface for durable workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

from durable_workflows.cli_utils import load_registry
from durable_workflows.config import load_config
from durable_workflows.errors import DurableWorkflowError
from durable_workflows.manager import WorkflowManager
from durable_workflows.persistence import get_adapter
from durable_workflows.sweeper import TimeoutSweeper

app = typer.Typer(help="CLI for durable workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting and driving workflow instances")
timeout_app = typer.Typer(help="Commands for timeout processing")

app.add_typer(workflow_app, name="workflow")
app.add_typer(timeout_app, name="timeout")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for library output"),
) -> None:
    """Durable workflows CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@workflow_app.command("show")
def workflow_show(workflow_type: str, instance_id: str) -> None:
    """
    Show the live row and transition history of one workflow instance.

    Args:
        workflow_type: Registered workflow type (the live table name)
        instance_id: Workflow instance identifier

    Example:
        durable-workflows workflow show orders 6b1e...
        # Output: Workflow orders/6b1e...: picking
        #         Expires: 2026-01-01 10:30:00+00:00
        #         - idle -> picking (START) at 2026-01-01 10:00:00+00:00
    """
    adapter = get_adapter()

    async def _load():
        record = await adapter.find_one(workflow_type, instance_id)
        if record is None:
            return None, []
        return record, await adapter.find_history(workflow_type, instance_id)

    try:
        record, history = asyncio.run(_load())
    except DurableWorkflowError as exc:
        _fail(str(exc))
    if record is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {workflow_type}/{record.id}: {record.state_value}")
    typer.echo(f"Status: {record.snapshot.get('status', 'unknown')}")
    if record.expires_at:
        typer.echo(f"Expires: {record.expires_at}")
    context = record.snapshot.get("context")
    if context:
        typer.echo(f"Context: {json.dumps(context)}")
    for entry in history:
        typer.echo(
            f"- {entry.from_state} -> {entry.to_state} ({entry.event_type}) "
            f"at {entry.transitioned_at}"
        )


@workflow_app.command("list")
def workflow_list(
    workflow_type: str,
    state: str = typer.Option(..., help="Flattened state value to match"),
) -> None:
    """
    List instances of a workflow type currently in a given state.

    Useful for archiving finished instances or finding stuck ones.

    Example:
        durable-workflows workflow list orders --state delivered
    """
    adapter = get_adapter()
    try:
        records = asyncio.run(adapter.find_by_state(workflow_type, state))
    except DurableWorkflowError as exc:
        _fail(str(exc))
    if not records:
        typer.echo("No workflows found")
        return
    for record in records:
        typer.echo(f"{record.id}\t{record.state_value}\t{record.expires_at or '-'}")


@workflow_app.command("dispatch")
def workflow_dispatch(
    registry: str,
    workflow_type: str,
    instance_id: str,
    event_type: str,
    payload: Optional[str] = typer.Option(None, help="JSON object merged into the event"),
) -> None:
    """
    Deliver one event to a workflow instance and print the settled state.

    Args:
        registry: Import reference of a WorkflowRegistry, 'module:attribute'
        workflow_type: Registered workflow type
        instance_id: Workflow instance identifier (created if unseen)
        event_type: Event type to deliver

    Example:
        durable-workflows workflow dispatch myapp.workflows:registry orders 42 START
        durable-workflows workflow dispatch myapp.workflows:registry orders 42 PAY --payload '{"amount": 10}'
    """
    event: dict = {}
    if payload:
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as exc:
            _fail(f"Invalid payload: {exc}")
        if not isinstance(event, dict):
            _fail("Payload must be a JSON object")
    event["type"] = event_type

    config = load_config()
    manager = WorkflowManager(
        load_registry(registry),
        get_adapter(),
        max_transition_depth=config.max_transition_depth,
    )
    try:
        result = asyncio.run(manager.dispatch(workflow_type, instance_id, event))
    except DurableWorkflowError as exc:
        _fail(str(exc))

    typer.echo(f"Workflow {workflow_type}/{result.id}: {result.state_value}")
    typer.echo(f"Transitions: {result.transition_count}")
    if result.done:
        typer.echo("Workflow reached a final state")


@timeout_app.command("sweep")
def timeout_sweep(
    registry: str,
    watch: bool = typer.Option(False, help="Keep sweeping at the configured interval"),
    interval: Optional[float] = typer.Option(None, help="Seconds between sweeps"),
) -> None:
    """
    Deliver the timeout event to every expired workflow instance.

    Example:
        durable-workflows timeout sweep myapp.workflows:registry
        durable-workflows timeout sweep myapp.workflows:registry --watch --interval 30
    """
    config = load_config()
    manager = WorkflowManager(
        load_registry(registry),
        get_adapter(),
        max_transition_depth=config.max_transition_depth,
    )
    sweeper = TimeoutSweeper(manager, timeout_event_type=config.timeout.event_type)

    if watch:
        if not config.timeout.enabled:
            _fail("Timeout sweeping is disabled by configuration")
        asyncio.run(sweeper.run(interval or config.timeout.interval_seconds))
        return

    summary = asyncio.run(sweeper.sweep())
    typer.echo(
        f"scanned={summary.scanned} expired={summary.expired_found} "
        f"attempted={summary.attempted} succeeded={summary.succeeded} "
        f"failed={summary.failed}"
    )
    for failure in summary.failures:
        typer.secho(
            f"- {failure.workflow_type}/{failure.instance_id}: {failure.error}",
            fg=typer.colors.RED,
        )
    if summary.failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
