"""Command line interface for managing and running maestro workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from maestro.agents import build_default_directory
from maestro.cli_utils.workflow import (
    _format_execution_lines,
    _load_definition_file,
    _parse_input,
    workflow_agent_ids,
)
from maestro.config import load_config
from maestro.exceptions import ConflictError, NotFoundError, WorkflowValidationError
from maestro.models import WorkflowStatus
from maestro.persistence import get_repository
from maestro.service import WorkflowService

app = typer.Typer(help="CLI for maestro workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflows")
execution_app = typer.Typer(help="Commands for inspecting executions")
agent_app = typer.Typer(help="Commands for inspecting agents")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(agent_app, name="agent")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """Maestro CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


async def _build_service() -> WorkflowService:
    config = load_config()
    directory = await build_default_directory()
    return WorkflowService(get_repository(), directory, config.engine)


def _read_definition(path: Path):
    try:
        return _load_definition_file(path)
    except FileNotFoundError:
        typer.secho(f"File not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (ValidationError, ValueError, yaml.YAMLError) as exc:
        typer.secho(f"Could not parse {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _report_validation(errors: list[str], warnings: list[str]) -> None:
    for error in errors:
        typer.secho(f"error: {error}", fg=typer.colors.RED)
    for warning in warnings:
        typer.secho(f"warning: {warning}", fg=typer.colors.YELLOW)


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Validate a workflow definition file without saving it.

    Example:
        maestro workflow validate ./workflows/report.yaml
    """
    definition = _read_definition(path)

    async def _validate():
        service = await _build_service()
        return service.validate_workflow(definition)

    result = asyncio.run(_validate())
    _report_validation(result.errors, result.warnings)
    if not result.is_valid:
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {definition.name} is valid")


@workflow_app.command("create")
def workflow_create(path: Path) -> None:
    """
    Save a new workflow definition from a YAML or JSON file.

    Example:
        maestro workflow create ./workflows/report.yaml
    """
    definition = _read_definition(path)

    async def _create():
        service = await _build_service()
        return await service.create_workflow(definition)

    try:
        created = asyncio.run(_create())
    except WorkflowValidationError as exc:
        _report_validation(exc.result.errors, exc.result.warnings)
        raise typer.Exit(code=1)
    except ConflictError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Created workflow {created.id} ({created.name})")


@workflow_app.command("update")
def workflow_update(path: Path) -> None:
    """Replace an existing workflow definition with the contents of a file."""
    definition = _read_definition(path)

    async def _update():
        service = await _build_service()
        return await service.update_workflow(definition)

    try:
        updated = asyncio.run(_update())
    except WorkflowValidationError as exc:
        _report_validation(exc.result.errors, exc.result.warnings)
        raise typer.Exit(code=1)
    except NotFoundError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Updated workflow {updated.id} ({updated.name})")


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List saved workflow definitions.

    Example:
        maestro workflow list
        # Output: 3f2a...    Nightly report    Sequential    2 steps
    """

    async def _list():
        service = await _build_service()
        return await service.list_workflows()

    workflows = asyncio.run(_list())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(
            f"{wf.id}\t{wf.name}\t{wf.execution_mode.value}\t{len(wf.steps)} steps"
        )


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow definition and its steps in execution order."""

    async def _show():
        service = await _build_service()
        return await service.get_workflow(workflow_id)

    wf = asyncio.run(_show())
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id}: {wf.name} (v{wf.version}, {wf.execution_mode.value})")
    if wf.description:
        typer.echo(wf.description)
    typer.echo(f"Agents: {', '.join(workflow_agent_ids(wf)) or '(none)'}")
    for step in wf.ordered_steps():
        condition = (
            f" if {step.execution_condition}" if step.execution_condition else ""
        )
        typer.echo(f"- [{step.order}] {step.id}: {step.name} -> {step.agent_id}{condition}")


@workflow_app.command("delete")
def workflow_delete(workflow_id: str) -> None:
    """Delete a workflow definition that has no running executions."""

    async def _delete():
        service = await _build_service()
        await service.delete_workflow(workflow_id)

    try:
        asyncio.run(_delete())
    except (NotFoundError, ConflictError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted workflow {workflow_id}")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    input_json: Optional[str] = typer.Option(
        None, "--input", help="JSON object used as workflow input"
    ),
    executed_by: Optional[str] = typer.Option(None, help="Name recorded on the execution"),
    timeout: Optional[float] = typer.Option(None, help="Seconds to wait before cancelling"),
) -> None:
    """
    Execute a workflow in-process and wait for it to finish.

    Example:
        maestro workflow run 3f2a... --input '{"path": "/tmp"}'
    """
    try:
        input_data = _parse_input(input_json)
    except ValueError as exc:
        typer.secho(f"Invalid input: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _run():
        service = await _build_service()
        execution = await service.execute_workflow(workflow_id, input_data, executed_by)
        finished = await service.wait_for_execution(execution.id, timeout=timeout)
        if finished is None or not finished.is_terminal:
            await service.cancel_execution(execution.id)
            finished = await service.wait_for_execution(execution.id)
        return finished

    try:
        execution = asyncio.run(_run())
    except NotFoundError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    for line in _format_execution_lines(execution):
        typer.echo(line)
    if execution.status != WorkflowStatus.COMPLETED:
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(workflow_id: str) -> None:
    """List executions of a workflow, newest first."""

    async def _list():
        service = await _build_service()
        return await service.list_executions(workflow_id)

    executions = asyncio.run(_list())
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(f"{ex.id}\t{ex.status.value}\t{ex.start_time}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution with its step records and logs."""

    async def _show():
        service = await _build_service()
        return await service.get_execution(execution_id)

    execution = asyncio.run(_show())
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    for line in _format_execution_lines(execution):
        typer.echo(line)


@agent_app.command("list")
def agent_list() -> None:
    """List built-in agents with their operations and health."""

    async def _list():
        directory = await build_default_directory()
        infos = [await agent.info() for agent in directory.list()]
        health = {h.agent_id: h for h in await directory.get_all_health()}
        return infos, health

    infos, health = asyncio.run(_list())
    for info in infos:
        operations = ", ".join(info.capabilities.supported_operations) or "-"
        status = health[info.id].status if info.id in health else "Unknown"
        typer.echo(f"{info.id}\t{info.name}\t{status}\t{operations}")


@agent_app.command("stats")
def agent_stats() -> None:
    """Print directory statistics as JSON."""

    async def _stats():
        directory = await build_default_directory()
        return await directory.statistics()

    typer.echo(json.dumps(asyncio.run(_stats()), indent=2))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
