"""Utility functions to read workflow files and render runs for the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Optional

import yaml

from maestro.models import WorkflowDefinition, WorkflowExecution


def _load_definition_file(path: Path) -> WorkflowDefinition:
    """Parse a YAML or JSON workflow definition file."""
    text = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    return WorkflowDefinition.model_validate(data)


def _parse_input(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Workflow input must be a JSON object")
    return data


def _unique_preserve_order(values: Iterable[Optional[str]]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def workflow_agent_ids(definition: WorkflowDefinition) -> list[str]:
    """Return unique agent ids referenced in ``definition`` preserving step order."""

    return _unique_preserve_order(step.agent_id for step in definition.ordered_steps())


def _format_execution_lines(execution: WorkflowExecution) -> list[str]:
    lines = [f"Execution {execution.id}: {execution.status.value}"]
    lines.append(f"Workflow: {execution.workflow_id}")
    lines.append(f"Executed by: {execution.executed_by}")
    if execution.error_message:
        lines.append(f"Error: {execution.error_message}")
    if execution.output_data:
        lines.append(f"Output: {json.dumps(execution.output_data, default=str)}")
    for step in execution.step_executions:
        timing = (
            f" ({step.start_time} -> {step.end_time})"
            if step.start_time or step.end_time
            else ""
        )
        lines.append(f"- {step.step_id} [{step.agent_id}]: {step.status.value}{timing}")
        if step.error_message:
            lines.append(f"    error: {step.error_message}")
    for log in execution.logs:
        lines.append(f"  | {log}")
    return lines
