"""Command line interface for running weaveflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from weaveflow import DefinitionRegistry, WorkflowEngine, get_store, load_config
from weaveflow.config import WeaveflowConfig
from weaveflow.constants import DEFAULT_LIST_LIMIT, DEFAULT_WORKFLOW_LIST_LIMIT
from weaveflow.contracts import ExecutionStatus, WorkflowDefinition
from weaveflow.errors import GraphError, WeaveflowError
from weaveflow.registry import load_definition_file

app = typer.Typer(help="CLI for weaveflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting and running workflows")
execution_app = typer.Typer(help="Commands for inspecting recorded executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to a weaveflow YAML config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """weaveflow CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = load_config(str(config) if config else None)


def _config(ctx: typer.Context) -> WeaveflowConfig:
    return ctx.obj if isinstance(ctx.obj, WeaveflowConfig) else load_config()


def _registry(config: WeaveflowConfig) -> DefinitionRegistry:
    registry = DefinitionRegistry()
    if config.definitions_path:
        registry.load_path(config.definitions_path)
    return registry


def _resolve_definition(target: str, config: WeaveflowConfig) -> WorkflowDefinition:
    """Interpret ``target`` as a definition file or a registered workflow id."""
    path = Path(target)
    if path.is_file():
        definitions = load_definition_file(path)
        if len(definitions) != 1:
            typer.secho(
                f"{path} holds {len(definitions)} workflows; pass a workflow id",
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        return definitions[0]

    definition = _registry(config).lookup(target)
    if definition is None:
        typer.secho(f"Workflow not found: {target}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return definition


@workflow_app.command("list")
def workflow_list(
    ctx: typer.Context,
    limit: int = typer.Option(DEFAULT_WORKFLOW_LIST_LIMIT, help="Maximum rows to show"),
) -> None:
    """
    List workflow definitions found under the configured definitions path.

    Example:
        weaveflow workflow list
        # Output: channel-report    1.0.0    4 steps
    """
    config = _config(ctx)
    try:
        definitions = _registry(config).list()
    except WeaveflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not definitions:
        typer.echo("No workflows found")
        return
    for definition in definitions[:limit]:
        typer.echo(f"{definition.id}\t{definition.version}\t{len(definition.steps)} steps")


@workflow_app.command("plan")
def workflow_plan(ctx: typer.Context, target: str) -> None:
    """Show the execution waves of a workflow id or definition file."""
    config = _config(ctx)
    try:
        definition = _resolve_definition(target, config)
        waves = WorkflowEngine(config=config).plan(definition)
    except GraphError as exc:
        typer.secho(f"Invalid workflow graph: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except WeaveflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {definition.id}: {len(waves)} waves")
    for index, wave in enumerate(waves):
        typer.echo(f"  wave {index}: {', '.join(wave)}")


@workflow_app.command("run")
def workflow_run(
    ctx: typer.Context,
    target: str,
    inputs: str = typer.Option("{}", "--inputs", "-i", help="Inputs as a JSON object"),
    timeout: Optional[float] = typer.Option(
        None, help="Deadline for the whole run in seconds"
    ),
) -> None:
    """
    Run a workflow and print its execution record as JSON.

    Exits with code 1 when the run fails.

    Example:
        weaveflow workflow run channel-report --inputs '{"channelId": "UC123"}'
    """
    config = _config(ctx)
    try:
        payload = json.loads(inputs)
    except json.JSONDecodeError as exc:
        typer.secho(f"--inputs is not valid JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(payload, dict):
        typer.secho("--inputs must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        definition = _resolve_definition(target, config)
        registry = _registry(config)
    except WeaveflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    registry.register(definition)

    engine = WorkflowEngine(registry=registry, store=get_store(config=config), config=config)
    execution = asyncio.run(engine.run_definition(definition, payload, deadline=timeout))
    typer.echo(json.dumps(execution.to_dict(), indent=2))
    if execution.status != ExecutionStatus.COMPLETED:
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(
    ctx: typer.Context,
    workflow: Optional[str] = typer.Option(None, help="Only show this workflow id"),
    limit: int = typer.Option(DEFAULT_LIST_LIMIT, help="Maximum rows to show"),
) -> None:
    """
    List recorded executions, newest first.

    Only useful with a durable store (``database_url: sqlite:///path.db``).
    """
    store = get_store(config=_config(ctx))
    executions = (
        store.list_by_workflow(workflow, limit) if workflow else store.list_recent(limit)
    )
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        duration = execution.duration_ms
        shown = f"{duration:.0f}ms" if duration is not None else "-"
        typer.echo(
            f"{execution.id}\t{execution.workflow_id}\t{execution.status.value}\t{shown}"
        )


@execution_app.command("show")
def execution_show(ctx: typer.Context, execution_id: str) -> None:
    """Show the step statuses and errors of one recorded execution."""
    store = get_store(config=_config(ctx))
    execution = store.get(execution_id)
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(
        f"Execution {execution.id} ({execution.workflow_id}): {execution.status.value}"
    )
    if execution.inputs:
        typer.echo(f"Inputs: {json.dumps(execution.inputs)}")
    for step_id, status in execution.step_statuses.items():
        duration = execution.step_durations.get(step_id)
        suffix = f" ({duration:.0f}ms)" if duration is not None else ""
        typer.echo(f"- {step_id}: {status.value}{suffix}")
    for error in execution.errors:
        typer.echo(f"! {error.step_id}: {error.message}")


@execution_app.command("stats")
def execution_stats(ctx: typer.Context) -> None:
    """Print aggregate counters of the execution store."""
    stats = get_store(config=_config(ctx)).stats()
    typer.echo(f"Total: {stats.total}")
    for status, count in sorted(stats.by_status.items()):
        typer.echo(f"{status}: {count}")
    typer.echo(f"Success rate: {stats.success_rate:.1%}")
    typer.echo(f"Average duration: {stats.average_duration_ms:.0f}ms")


if __name__ == "__main__":  # pragma: no cover
    app()
