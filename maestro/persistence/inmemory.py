"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from ..exceptions import ConflictError, NotFoundError
from ..models import WorkflowDefinition, WorkflowExecution, WorkflowStatus
from .repository import WorkflowRepository

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    async def create_definition(self, definition: WorkflowDefinition) -> None:
        if definition.id in self._definitions:
            raise ConflictError(f"Workflow with ID {definition.id} already exists")
        self._definitions[definition.id] = definition.model_copy(deep=True)

    async def update_definition(self, definition: WorkflowDefinition) -> None:
        if definition.id not in self._definitions:
            raise NotFoundError(f"Workflow with ID {definition.id} not found")
        self._definitions[definition.id] = definition.model_copy(deep=True)

    async def delete_definition(self, workflow_id: str) -> None:
        self._definitions.pop(workflow_id, None)

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        definition = self._definitions.get(workflow_id)
        return definition.model_copy(deep=True) if definition else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        return [
            d.model_copy(deep=True)
            for d in sorted(self._definitions.values(), key=lambda d: d.name)
        ]

    # ------------------------------------------------------------------
    async def insert_execution(self, execution: WorkflowExecution) -> None:
        if execution.id in self._executions:
            raise ConflictError(f"Execution with ID {execution.id} already exists")
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def update_execution(self, execution: WorkflowExecution) -> None:
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(self, workflow_id: str) -> list[WorkflowExecution]:
        matches = [e for e in self._executions.values() if e.workflow_id == workflow_id]
        matches.sort(key=lambda e: e.start_time or _EPOCH, reverse=True)
        return [e.model_copy(deep=True) for e in matches]

    async def count_running_executions(self, workflow_id: str) -> int:
        return sum(
            1
            for e in self._executions.values()
            if e.workflow_id == workflow_id and e.status == WorkflowStatus.RUNNING
        )
