"""Command line interface for blockflow workers and runs."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from blockflow.config import load_config
from blockflow.contracts import WorkflowGraph
from blockflow.dispatch import ExecutionDispatcher
from blockflow.errors import BlockflowError, GraphError
from blockflow.graph import topological_sort, validate_graph
from blockflow.handlers import default_registry
from blockflow.persistence import get_repository
from blockflow.transports import get_transport
from blockflow.worker import ExecutionWorker

app = typer.Typer(help="CLI for blockflow workflow execution")

# Command groups
worker_app = typer.Typer(help="Commands for running execution workers")
workflow_app = typer.Typer(help="Commands for managing workflow graphs")
run_app = typer.Typer(help="Commands for inspecting and controlling runs")

app.add_typer(worker_app, name="worker")
app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")


@app.callback()
def main(
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to blockflow.yaml"
    ),
) -> None:
    """blockflow CLI entry point."""
    if config_path is not None:
        os.environ["BLOCKFLOW_CONFIG"] = str(config_path)
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_graph(path: Path) -> WorkflowGraph:
    try:
        return WorkflowGraph.from_file(path)
    except FileNotFoundError:
        typer.secho(f"File not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (ValidationError, ValueError) as e:
        typer.secho(f"Invalid workflow file: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@worker_app.command("start")
def worker_start(
    lifespan: Optional[float] = None,
    concurrency: Optional[int] = typer.Option(None, min=1),
) -> None:
    """
    Run a worker that consumes execution messages.

    Args:
        lifespan: Stop after this many seconds (default: run indefinitely)
        concurrency: Number of runs executed at once in this process

    Example:
        blockflow worker start --concurrency 4
    """
    config = load_config()
    worker = ExecutionWorker.from_config(
        config, transport=get_transport(config=config), repository=get_repository()
    )
    typer.echo(f"Starting worker on queue: {worker.queue}")
    asyncio.run(worker.start(lifespan=lifespan, concurrency=concurrency))


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Check a workflow graph file and print its execution order.

    Exits with code 1 when the graph is not executable or a node's
    configuration is rejected by its handler.
    """
    graph = _load_graph(path)
    try:
        validate_graph(graph)
        order = topological_sort(graph.nodes, graph.edges)
    except GraphError as e:
        typer.secho(f"Invalid workflow: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    problems = False
    for node_id, result in default_registry().validate_workflow(graph).items():
        for error in result.errors:
            problems = True
            typer.secho(f"{node_id}: {error}", fg=typer.colors.RED)
        for warning in result.warnings:
            typer.secho(f"{node_id}: {warning}", fg=typer.colors.YELLOW)
    if problems:
        raise typer.Exit(code=1)

    typer.echo("Execution order: " + " -> ".join(node.id for node in order))


@workflow_app.command("register")
def workflow_register(path: Path, workflow_id: str) -> None:
    """Store a validated workflow graph under ``workflow_id``."""
    graph = _load_graph(path)
    try:
        validate_graph(graph)
    except GraphError as e:
        typer.secho(f"Invalid workflow: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    repo = get_repository()
    asyncio.run(repo.save_workflow(workflow_id, graph))
    typer.echo(f"Registered workflow {workflow_id} ({len(graph.nodes)} nodes)")


@run_app.command("dispatch")
def run_dispatch(
    workflow_id: str,
    user_id: Optional[str] = None,
) -> None:
    """Create a run of ``workflow_id`` and publish it to the execution queue."""
    config = load_config()
    dispatcher = ExecutionDispatcher(
        get_transport(config=config), get_repository(), queue=config.transport.queue
    )
    try:
        execution_id = asyncio.run(dispatcher.dispatch(workflow_id, user_id=user_id))
    except BlockflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(execution_id)


@run_app.command("list")
def run_list() -> None:
    """
    List all runs with their current status.

    Example:
        blockflow run list
        # Output: 0b6f...    etl    completed
    """
    repo = get_repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.workflow_id}\t{run.status.value}")


@run_app.command("show")
def run_show(execution_id: str) -> None:
    """Show a run's status, per-node records and execution log."""
    repo = get_repository()
    run = asyncio.run(repo.get_run(execution_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)

    typer.echo(f"Run {run.id} ({run.workflow_id}): {run.status.value}")
    if run.error:
        typer.echo(f"Error: {run.error}")
    if run.result is not None:
        typer.echo(f"Result: {json.dumps(run.result, default=str)}")

    for record in asyncio.run(repo.get_node_executions(execution_id)):
        line = f"- {record.node_id}: {record.status.value}"
        if record.started_at:
            line += f" ({record.started_at}"
            if record.completed_at:
                line += f" -> {record.completed_at}"
            line += ")"
        if record.error:
            line += f" error={record.error}"
        typer.echo(line)

    logs = asyncio.run(repo.get_logs(execution_id))
    if logs:
        typer.echo("Logs:")
        for entry in logs:
            typer.echo(f"  [{entry.level}] {entry.node_id}: {entry.message}")


@run_app.command("pause")
def run_pause(execution_id: str) -> None:
    """Pause a run before its next node starts."""
    _control(execution_id, pause=True)
    typer.echo(f"Paused {execution_id}")


@run_app.command("resume")
def run_resume(
    execution_id: str,
    republish: bool = typer.Option(
        False, help="Publish a fresh execution message for the run"
    ),
) -> None:
    """Resume a paused run."""
    _control(execution_id, pause=False, republish=republish)
    typer.echo(f"Resumed {execution_id}")


def _control(execution_id: str, pause: bool, republish: bool = False) -> None:
    config = load_config()
    dispatcher = ExecutionDispatcher(
        get_transport(config=config), get_repository(), queue=config.transport.queue
    )
    try:
        if pause:
            asyncio.run(dispatcher.pause(execution_id))
        else:
            asyncio.run(dispatcher.resume(execution_id, republish=republish))
    except BlockflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - manual execution
    app()
