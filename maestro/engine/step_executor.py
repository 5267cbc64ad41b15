"""Execution of a single workflow step."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..agents import AgentCommand, AgentDirectory
from ..config import EngineConfig
from ..constants import OPERATION_CONFIG_KEY
from ..models import (
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepExecution,
)

logger = logging.getLogger(__name__)


def build_step_input(step: WorkflowStep, context: Mapping[str, Any]) -> dict[str, Any]:
    """Assemble the parameters sent to the agent for ``step``.

    Mapped context values are copied first and ``step.configuration`` is laid
    over them, so configuration wins when both provide the same key. Mapped
    keys missing from the context are left out.
    """
    parameters: dict[str, Any] = {}
    for local_key, context_key in step.input_mapping.items():
        if context_key in context:
            parameters[local_key] = context[context_key]
    parameters.update(step.configuration)
    return parameters


def resolve_operation(step: WorkflowStep, default: str) -> str:
    operation = step.configuration.get(OPERATION_CONFIG_KEY)
    if operation is None or operation == "":
        return default
    return str(operation)


class StepExecutor:
    """Runs one step against the agent directory.

    Never raises for agent-side problems: failures, unknown agents and
    exceptions all come back as a ``Failed`` step record.
    """

    def __init__(
        self, directory: AgentDirectory, config: Optional[EngineConfig] = None
    ) -> None:
        self._directory = directory
        self._config = config or EngineConfig()

    async def execute_step(
        self,
        step: WorkflowStep,
        execution: WorkflowExecution,
        context: Mapping[str, Any],
    ) -> WorkflowStepExecution:
        record = WorkflowStepExecution(
            workflow_execution_id=execution.id,
            step_id=step.id,
            agent_id=step.agent_id,
            status=WorkflowStatus.RUNNING,
            start_time=datetime.now(timezone.utc),
        )

        try:
            record.input_data = build_step_input(step, context)
            command = AgentCommand(
                agent_id=step.agent_id,
                type=resolve_operation(step, self._config.default_operation),
                parameters=record.input_data,
                timeout_seconds=step.timeout_seconds,
                context={
                    "workflow_id": execution.workflow_id,
                    "execution_id": execution.id,
                    "step_id": step.id,
                },
            )

            call = self._directory.execute(step.agent_id, command)
            if self._config.enforce_step_timeouts and step.timeout_seconds > 0:
                result = await asyncio.wait_for(call, timeout=step.timeout_seconds)
            else:
                result = await call

            record.status = (
                WorkflowStatus.COMPLETED if result.success else WorkflowStatus.FAILED
            )
            record.output_data = dict(result.output_data)
            record.error_message = result.error_message
            record.logs = list(result.logs)
            logger.info(f"Step {step.name} executed with result: {result.success}")
        except asyncio.TimeoutError:
            message = f"Step {step.name} timed out after {step.timeout_seconds} seconds"
            record.status = WorkflowStatus.FAILED
            record.error_message = message
            record.logs.append(message)
            logger.error(message)
        except Exception as e:
            record.status = WorkflowStatus.FAILED
            record.error_message = str(e)
            record.logs.append(f"Step execution failed: {e}")
            logger.exception(f"Failed to execute step {step.name}")

        record.end_time = datetime.now(timezone.utc)
        return record
