"""Repository abstraction for workflow persistence."""

from __future__ import annotations

from typing import Protocol

from ..models import WorkflowDefinition, WorkflowExecution


class WorkflowRepository(Protocol):
    """Protocol for definition and execution persistence backends."""

    async def create_definition(self, definition: WorkflowDefinition) -> None:
        """Persist a new definition; raise ``ConflictError`` if the id exists."""

    async def update_definition(self, definition: WorkflowDefinition) -> None:
        """Overwrite a definition; raise ``NotFoundError`` if missing."""

    async def delete_definition(self, workflow_id: str) -> None:
        """Remove a definition if present."""

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a definition by id."""

    async def list_definitions(self) -> list[WorkflowDefinition]:
        """Return all definitions ordered by name."""

    async def insert_execution(self, execution: WorkflowExecution) -> None:
        """Persist a new execution record."""

    async def update_execution(self, execution: WorkflowExecution) -> None:
        """Overwrite the execution with the same id."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution with its step records."""

    async def list_executions(self, workflow_id: str) -> list[WorkflowExecution]:
        """Return executions of ``workflow_id``, newest first."""

    async def count_running_executions(self, workflow_id: str) -> int:
        """Number of executions of ``workflow_id`` with status Running."""
