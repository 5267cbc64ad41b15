"""Workflow definition and execution records."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .constants import DEFAULT_STEP_TIMEOUT_SECONDS, DEFAULT_WORKFLOW_VERSION


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStatus(str, Enum):
    DRAFT = "Draft"
    READY = "Ready"
    RUNNING = "Running"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}
)


class ExecutionMode(str, Enum):
    """Step-iteration strategy of a workflow."""

    SEQUENTIAL = "Sequential"
    PARALLEL = "Parallel"
    CONDITIONAL = "Conditional"
    MIXED = "Mixed"


class WorkflowStep(BaseModel):
    """A single unit of work bound to one agent and one operation."""

    id: str = Field(default_factory=_new_id)
    name: str = ""
    description: str = ""
    agent_id: str = ""
    order: int = 0
    dependencies: list[str] = Field(default_factory=list)
    input_mapping: dict[str, str] = Field(
        default_factory=dict, description="Local parameter name -> context key"
    )
    configuration: dict[str, Any] = Field(default_factory=dict)
    execution_condition: Optional[str] = None
    timeout_seconds: int = DEFAULT_STEP_TIMEOUT_SECONDS


class WorkflowDefinition(BaseModel):
    """Saved, reusable plan of ordered steps."""

    id: str = Field(default_factory=_new_id)
    name: str = ""
    description: str = ""
    version: str = DEFAULT_WORKFLOW_VERSION
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    steps: list[WorkflowStep] = Field(default_factory=list)
    input_parameters: dict[str, Any] = Field(default_factory=dict)
    output_parameters: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def ordered_steps(self) -> list[WorkflowStep]:
        """Steps sorted by ``order``; ties keep their definition position."""
        return sorted(self.steps, key=lambda step: step.order)


class WorkflowStepExecution(BaseModel):
    """Record of one step attempt inside an execution."""

    id: str = Field(default_factory=_new_id)
    workflow_execution_id: str
    step_id: str
    agent_id: str
    status: WorkflowStatus = WorkflowStatus.READY
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    logs: list[str] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time is None or self.start_time is None:
            return None
        return self.end_time - self.start_time


class WorkflowExecution(BaseModel):
    """One run of a workflow definition against concrete input."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    status: WorkflowStatus = WorkflowStatus.READY
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: dict[str, Any] = Field(default_factory=dict)
    executed_by: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None
    logs: list[str] = Field(default_factory=list)
    step_executions: list[WorkflowStepExecution] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time is None or self.start_time is None:
            return None
        return self.end_time - self.start_time


class ValidationResult(BaseModel):
    """Outcome of validating a workflow definition."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.is_valid = False
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
