"""Command line interface for managing and running triggerflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml

from triggerflow.analytics import AnalyticsAggregator
from triggerflow.config import load_config
from triggerflow.engine import WorkflowEngine
from triggerflow.errors import TriggerflowError
from triggerflow.manager import WorkflowManager
from triggerflow.persistence import get_repository
from triggerflow.transports import get_transport
from triggerflow.triggers import TriggerListener, publish_trigger

app = typer.Typer(help="CLI for triggerflow workflow automation")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
execution_app = typer.Typer(help="Commands for inspecting executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")


@app.callback()
def main() -> None:
    """Triggerflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(coro: Any) -> Any:
    """Run ``coro`` and turn domain errors into a red message and exit 1."""
    try:
        return asyncio.run(coro)
    except TriggerflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _read_document(path: Path) -> Dict[str, Any]:
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        typer.secho(f"{path} must contain a mapping", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


def _parse_data(data: Optional[str]) -> Dict[str, Any]:
    if not data:
        return {}
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON for --data: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(parsed, dict):
        typer.secho("--data must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return parsed


def _manager() -> WorkflowManager:
    config = load_config()
    return WorkflowManager(
        get_repository(), default_page_size=config.engine.default_page_size
    )


def _engine() -> WorkflowEngine:
    return WorkflowEngine.from_config(repository=get_repository())


@workflow_app.command("list")
def workflow_list(
    status: Optional[str] = typer.Option(None, help="draft, active or archived"),
    trigger_type: Optional[str] = typer.Option(None, help="Only this trigger type"),
    limit: Optional[int] = typer.Option(None, help="Page size"),
    offset: int = typer.Option(0, help="Number of workflows to skip"),
) -> None:
    """
    List workflow definitions with their execution counters.

    Example:
        triggerflow workflow list --trigger-type lead_created
        # Output: 3f0c...  Welcome new leads  lead_created  enabled  runs=12 ok=11 failed=1
    """
    filters = {"status": status, "trigger_type": trigger_type}
    page = _run(_manager().list_with_stats(filters, limit, offset))
    if not page.items:
        typer.echo("No workflows found")
        return
    for summary in page.items:
        wf = summary.workflow
        stats = summary.execution_stats
        state = "enabled" if wf.is_enabled else "disabled"
        typer.echo(
            f"{wf.id}\t{wf.name}\t{wf.trigger_type}\t{state}\t"
            f"runs={stats.total_executions} ok={stats.successful} failed={stats.failed}"
        )
    if page.has_more:
        typer.echo(f"More workflows available, use --offset {page.offset + page.limit}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow definition and its actions."""
    wf = _run(_manager().get(workflow_id))
    state = "enabled" if wf.is_enabled else "disabled"
    typer.echo(f"Workflow {wf.id}: {wf.name} ({wf.status}, {state}, priority {wf.priority})")
    typer.echo(f"Trigger: {wf.trigger_type}")
    if wf.trigger_conditions:
        typer.echo(f"Conditions: {json.dumps(wf.trigger_conditions)}")
    for index, action in enumerate(wf.actions):
        extras = []
        if action.delay_seconds:
            extras.append(f"delay {action.delay_seconds:g}s")
        if action.continue_on_error:
            extras.append("continue on error")
        suffix = f" ({', '.join(extras)})" if extras else ""
        typer.echo(f"- [{index}] {action.type}{suffix}")


@workflow_app.command("create")
def workflow_create(
    file: Path,
    actor: Optional[str] = typer.Option(None, help="User id recorded as creator"),
) -> None:
    """
    Create a workflow from a YAML or JSON definition file.

    Example:
        triggerflow workflow create welcome.yaml --actor u1
    """
    spec = _read_document(file)
    wf = _run(_manager().create(spec, actor=actor))
    typer.echo(f"Created workflow {wf.id}")


@workflow_app.command("update")
def workflow_update(
    workflow_id: str,
    file: Path,
    actor: Optional[str] = typer.Option(None, help="User id recorded as editor"),
) -> None:
    """Apply the fields in FILE to an existing workflow."""
    patch = _read_document(file)
    wf = _run(_manager().update(workflow_id, patch, actor=actor))
    typer.echo(f"Updated workflow {wf.id}")


@workflow_app.command("toggle")
def workflow_toggle(
    workflow_id: str,
    actor: Optional[str] = typer.Option(None, help="User id recorded as editor"),
) -> None:
    """Enable a disabled workflow or disable an enabled one."""
    wf = _run(_manager().toggle_enabled(workflow_id, actor=actor))
    state = "enabled" if wf.is_enabled else "disabled"
    typer.echo(f"Workflow {wf.id} {state}")


@workflow_app.command("delete")
def workflow_delete(workflow_id: str) -> None:
    """Delete a workflow and its execution history."""
    _run(_manager().delete(workflow_id))
    typer.echo(f"Deleted workflow {workflow_id}")


@workflow_app.command("duplicate")
def workflow_duplicate(
    workflow_id: str,
    actor: Optional[str] = typer.Option(None, help="User id recorded as creator"),
) -> None:
    """Copy a workflow as a new disabled draft."""
    wf = _run(_manager().duplicate(workflow_id, actor=actor))
    typer.echo(f"Created workflow {wf.id} ({wf.name})")


@workflow_app.command("execute")
def workflow_execute(
    workflow_id: str,
    data: Optional[str] = typer.Option(None, help="Trigger data as a JSON object"),
    test: bool = typer.Option(False, "--test", help="Describe effects without applying them"),
    actor: Optional[str] = typer.Option(None, help="User id recorded as executor"),
) -> None:
    """
    Execute a workflow once against the given trigger data.

    Example:
        triggerflow workflow execute 3f0c... --data '{"lead_id": "L1"}' --test
    """
    trigger_data = _parse_data(data)
    result = _run(
        _engine().execute(workflow_id, trigger_data, test_mode=test, executed_by=actor)
    )
    for item in result.results:
        mark = "ok" if item.success else "failed"
        detail = item.result if item.success else item.error
        typer.echo(f"- [{item.action_index}] {item.action_type}: {mark} {detail or ''}".rstrip())
    if result.success:
        typer.secho(f"Execution {result.execution_id} completed", fg=typer.colors.GREEN)
    else:
        typer.secho(
            f"Execution {result.execution_id} failed: {result.error}", fg=typer.colors.RED
        )
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(
    workflow_id: Optional[str] = typer.Option(None, help="Only this workflow"),
    status: Optional[str] = typer.Option(None, help="running, completed or failed"),
    limit: Optional[int] = typer.Option(None, help="Page size"),
    offset: int = typer.Option(0, help="Number of executions to skip"),
) -> None:
    """List execution records, newest first."""
    filters = {"workflow_id": workflow_id, "status": status}
    page = _run(_engine().list_executions(filters, limit, offset))
    if not page.items:
        typer.echo("No executions found")
        return
    for record in page.items:
        mode = "\ttest" if record.test_mode else ""
        typer.echo(
            f"{record.id}\t{record.workflow_id}\t{record.status}\t"
            f"{record.started_at.isoformat()}{mode}"
        )


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show one execution record with its per-action results."""
    record = _run(_engine().get_execution(execution_id))
    typer.echo(f"Execution {record.id}: {record.status}")
    typer.echo(f"Workflow: {record.workflow_id} ({record.workflow_name or 'unnamed'})")
    if record.trigger_data:
        typer.echo(f"Trigger data: {json.dumps(record.trigger_data)}")
    typer.echo(f"Started: {record.started_at.isoformat()}")
    if record.completed_at:
        typer.echo(f"Completed: {record.completed_at.isoformat()}")
    if record.error_message:
        typer.echo(f"Error: {record.error_message}")
    for item in record.result_data:
        mark = "ok" if item.success else "failed"
        detail = item.result if item.success else item.error
        typer.echo(f"- [{item.action_index}] {item.action_type}: {mark} {detail or ''}".rstrip())


@execution_app.command("stale")
def execution_stale(
    minutes: float = typer.Option(60, help="Report records running for longer than this"),
) -> None:
    """List executions that are still running after MINUTES."""
    records = _run(_engine().stale_executions(timedelta(minutes=minutes)))
    if not records:
        typer.echo("No stale executions")
        return
    for record in records:
        typer.echo(f"{record.id}\t{record.workflow_id}\t{record.started_at.isoformat()}")


@app.command("analytics")
def analytics(
    period: str = typer.Option("30d", help="7d, 30d, anything else means 90 days"),
    workflow_id: Optional[str] = typer.Option(None, help="Only this workflow"),
    trigger_type: Optional[str] = typer.Option(None, help="Only this trigger type"),
) -> None:
    """Print success rates and error patterns for recent executions."""
    aggregator = AnalyticsAggregator(get_repository())
    report = _run(aggregator.compute(period, workflow_id=workflow_id, trigger_type=trigger_type))
    overview = report.overview
    typer.echo(f"Period: {report.period} (since {report.since.date().isoformat()})")
    typer.echo(
        f"Executions: {overview.total} ok={overview.successful} failed={overview.failed} "
        f"success_rate={overview.success_rate}%"
    )
    for trigger, breakdown in report.by_trigger.items():
        typer.echo(f"  {trigger}: {breakdown.total} ok={breakdown.successful} failed={breakdown.failed}")
    errors = report.error_analysis
    if errors.total_errors:
        typer.echo(f"Errors: {errors.total_errors} ({errors.error_rate}%)")
        for pattern in errors.common_patterns:
            typer.echo(f"  {pattern.pattern}: {pattern.count}")


@app.command("triggers")
def triggers() -> None:
    """List the trigger types a workflow can listen to."""
    for trigger_type in WorkflowManager.trigger_types():
        typer.echo(trigger_type)


@app.command("listen")
def listen(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run indefinitely)"
    ),
) -> None:
    """
    Run a listener that executes matching workflows for incoming trigger events.

    Example:
        triggerflow listen --lifespan 300
    """
    config = load_config()
    repository = get_repository()
    listener = TriggerListener(
        get_transport(config=config),
        WorkflowEngine.from_config(config, repository=repository),
        repository,
        topic=config.transport.topic,
    )
    typer.echo(f"Listening for trigger events on '{config.transport.topic}'")
    _run(listener.start(lifespan=lifespan))


@app.command("emit")
def emit(
    trigger_type: str,
    data: Optional[str] = typer.Option(None, help="Trigger data as a JSON object"),
    actor: Optional[str] = typer.Option(None, help="User id that caused the event"),
) -> None:
    """Publish a trigger event for running listeners."""
    config = load_config()
    event = _run(
        publish_trigger(
            get_transport(config=config),
            trigger_type,
            _parse_data(data),
            actor=actor,
            topic=config.transport.topic,
        )
    )
    typer.echo(f"Published {event.trigger_type} event {event.event_id}")


if __name__ == "__main__":
    app()
