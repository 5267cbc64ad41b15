"""Workflow service: definition management and execution coordination."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .agents import AgentDirectory
from .config import EngineConfig
from .constants import LOG_TIMESTAMP_FORMAT
from .engine import (
    ConditionEvaluator,
    ExecutionRun,
    RunningExecutionRegistry,
    StepExecutor,
    WorkflowValidator,
    default_evaluator,
    get_strategy,
)
from .engine.registry import CancellationToken
from .exceptions import (
    ConflictError,
    ExecutionCancelled,
    NotFoundError,
    WorkflowValidationError,
)
from .models import (
    ValidationResult,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStepExecution,
)
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)


def _stamp(moment: datetime) -> str:
    return f"{moment.strftime(LOG_TIMESTAMP_FORMAT)} UTC"


class WorkflowService:
    """Manages workflow definitions and runs executions in the background.

    ``execute_workflow`` persists a Running execution and returns at once;
    the steps run in an asyncio task owned by this service. Callers observe
    the outcome by re-fetching the execution (or awaiting
    :meth:`wait_for_execution`).
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        directory: AgentDirectory,
        config: Optional[EngineConfig] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._config = config or EngineConfig()
        self._evaluator = evaluator or default_evaluator()
        self._validator = WorkflowValidator(directory, self._evaluator)
        self._step_executor = StepExecutor(directory, self._config)
        self._registry = RunningExecutionRegistry()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()

    @property
    def registry(self) -> RunningExecutionRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Definitions
    def validate_workflow(
        self, definition: Optional[WorkflowDefinition]
    ) -> ValidationResult:
        return self._validator.validate(definition)

    def _require_valid(self, definition: WorkflowDefinition) -> None:
        if definition is None:
            raise ValueError("Workflow definition cannot be None")
        result = self.validate_workflow(definition)
        if not result.is_valid:
            raise WorkflowValidationError(result)
        for warning in result.warnings:
            logger.warning(f"Workflow {definition.name}: {warning}")

    async def create_workflow(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        self._require_valid(definition)
        if not definition.id:
            definition.id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        definition.created_at = now
        definition.updated_at = now

        await self._repository.create_definition(definition)
        logger.info(f"Created workflow {definition.id} ({definition.name})")
        return definition

    async def update_workflow(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        self._require_valid(definition)
        existing = await self._repository.get_definition(definition.id)
        if existing is None:
            raise NotFoundError(f"Workflow with ID {definition.id} not found")

        updated = definition.model_copy(
            update={
                "created_at": existing.created_at,
                "created_by": existing.created_by or definition.created_by,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        await self._repository.update_definition(updated)
        logger.info(f"Updated workflow {updated.id} ({updated.name})")
        return updated

    async def delete_workflow(self, workflow_id: str) -> None:
        if not workflow_id:
            raise ValueError("Workflow ID cannot be empty")
        existing = await self._repository.get_definition(workflow_id)
        if existing is None:
            raise NotFoundError(f"Workflow with ID {workflow_id} not found")

        running = await self._repository.count_running_executions(workflow_id)
        if running > 0:
            raise ConflictError(
                f"Cannot delete workflow {workflow_id} - it has {running} running executions"
            )
        await self._repository.delete_definition(workflow_id)
        logger.info(f"Deleted workflow {workflow_id} ({existing.name})")

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        if not workflow_id:
            return None
        return await self._repository.get_definition(workflow_id)

    async def list_workflows(self) -> List[WorkflowDefinition]:
        return await self._repository.list_definitions()

    # ------------------------------------------------------------------
    # Executions
    async def execute_workflow(
        self,
        workflow_id: str,
        input_data: Optional[Dict[str, Any]] = None,
        executed_by: Optional[str] = None,
    ) -> WorkflowExecution:
        """Start an execution and return its Running record immediately."""
        if not workflow_id:
            raise ValueError("Workflow ID cannot be empty")
        definition = await self.get_workflow(workflow_id)
        if definition is None:
            raise NotFoundError(f"Workflow with ID {workflow_id} not found")

        execution = WorkflowExecution(
            workflow_id=workflow_id,
            status=WorkflowStatus.RUNNING,
            input_data=dict(input_data or {}),
            executed_by=executed_by or self._config.default_executed_by,
            start_time=datetime.now(timezone.utc),
        )
        await self._repository.insert_execution(execution)

        token = self._registry.register(execution.id)
        logger.info(
            f"Starting execution {execution.id} for workflow {workflow_id}"
        )
        snapshot = execution.model_copy(deep=True)

        task = asyncio.create_task(
            self._run_execution(definition, execution, token),
            name=f"workflow-execution-{execution.id}",
        )
        self._tasks[execution.id] = task
        self._background.add(task)
        task.add_done_callback(self._forget_task(execution))
        return snapshot

    def _forget_task(self, execution: WorkflowExecution):
        def _done(task: asyncio.Task) -> None:
            self._background.discard(task)
            self._tasks.pop(execution.id, None)
            # A task cancelled before its first step never enters _run_execution.
            if task.cancelled() and self._registry.remove(execution.id) is not None:
                self._finish(execution, dict(execution.input_data), WorkflowStatus.CANCELLED)
                logger.info(f"Workflow execution {execution.id} was cancelled before it started")
                persist = task.get_loop().create_task(self._persist(execution))
                self._background.add(persist)
                persist.add_done_callback(self._background.discard)

        return _done

    async def _run_execution(
        self,
        definition: WorkflowDefinition,
        execution: WorkflowExecution,
        token: CancellationToken,
    ) -> None:
        context: Dict[str, Any] = dict(execution.input_data)
        run = ExecutionRun(
            definition=definition,
            execution=execution,
            context=context,
            token=token,
            step_executor=self._step_executor,
            evaluator=self._evaluator,
            record_step=self._recorder(execution),
            max_parallel_steps=self._config.max_parallel_steps,
        )
        try:
            logger.info(
                f"Executing workflow {definition.id} with mode {definition.execution_mode.value}"
            )
            await get_strategy(definition.execution_mode).run(run)
            self._finish(execution, context, WorkflowStatus.COMPLETED)
            logger.info(f"Workflow execution {execution.id} completed successfully")
        except ExecutionCancelled:
            self._finish(execution, context, WorkflowStatus.CANCELLED)
            logger.info(f"Workflow execution {execution.id} was cancelled")
        except asyncio.CancelledError:
            self._finish(execution, context, WorkflowStatus.CANCELLED)
            logger.info(f"Workflow execution {execution.id} was interrupted")
            raise
        except Exception as e:
            self._finish(execution, context, WorkflowStatus.FAILED, error=str(e))
            logger.exception(f"Workflow execution {execution.id} failed")
        finally:
            self._registry.remove(execution.id)
            await self._persist(execution)

    async def _persist(self, execution: WorkflowExecution) -> None:
        try:
            await self._repository.update_execution(execution)
        except Exception:
            logger.exception(f"Failed to update execution {execution.id} in repository")

    def _recorder(self, execution: WorkflowExecution):
        async def _record(record: WorkflowStepExecution) -> None:
            try:
                await self._repository.update_execution(execution)
            except Exception:
                logger.exception(
                    f"Failed to persist progress of execution {execution.id} after step {record.step_id}"
                )

        return _record

    @staticmethod
    def _finish(
        execution: WorkflowExecution,
        context: Dict[str, Any],
        status: WorkflowStatus,
        error: Optional[str] = None,
    ) -> None:
        if execution.is_terminal:
            return
        now = datetime.now(timezone.utc)
        execution.status = status
        execution.end_time = now
        execution.output_data = dict(context)
        if status == WorkflowStatus.COMPLETED:
            execution.logs.append(
                f"Workflow execution completed successfully at {_stamp(now)}"
            )
        elif status == WorkflowStatus.CANCELLED:
            execution.logs.append(f"Workflow execution cancelled at {_stamp(now)}")
        else:
            execution.error_message = error
            execution.logs.append(
                f"Workflow execution failed at {_stamp(now)}: {error}"
            )

    async def wait_for_execution(
        self, execution_id: str, timeout: Optional[float] = None
    ) -> Optional[WorkflowExecution]:
        """Wait until the background task of ``execution_id`` finishes.

        Returns the persisted execution; returns immediately when the
        execution is not running in this service.
        """
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await self.get_execution(execution_id)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        if not execution_id:
            return None
        return await self._repository.get_execution(execution_id)

    async def list_executions(self, workflow_id: str) -> List[WorkflowExecution]:
        if not workflow_id:
            return []
        return await self._repository.list_executions(workflow_id)

    async def cancel_execution(self, execution_id: str) -> None:
        """Request cooperative cancellation; unknown ids are a logged no-op."""
        if not execution_id:
            raise ValueError("Execution ID cannot be empty")
        if self._registry.cancel(execution_id):
            logger.info(f"Cancelled workflow execution {execution_id}")
        else:
            logger.warning(
                f"Attempted to cancel non-running execution {execution_id}"
            )

    async def pause_execution(self, execution_id: str) -> None:
        raise NotImplementedError("Pause functionality is not yet implemented")

    async def resume_execution(self, execution_id: str) -> None:
        raise NotImplementedError("Resume functionality is not yet implemented")

    async def shutdown(self) -> None:
        """Cancel outstanding executions and wait for their tasks to finish."""
        for execution_id in list(self._tasks):
            self._registry.cancel(execution_id)
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
