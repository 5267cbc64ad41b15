"""Pydantic models exchanged with agents."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..constants import DEFAULT_OPERATION, DEFAULT_STEP_TIMEOUT_SECONDS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentStatus(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    PAUSED = "Paused"
    STOPPED = "Stopped"
    ERROR = "Error"
    COMPLETED = "Completed"


class AgentPriority(int, Enum):
    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


class AgentCapabilities(BaseModel):
    """Operations an agent supports and how much work it accepts at once."""

    supported_operations: List[str] = Field(default_factory=list)
    max_concurrent_tasks: int = 1
    supports_async_execution: bool = True
    requires_authentication: bool = False
    resource_requirements: dict[str, Any] = Field(default_factory=dict)

    @field_validator("max_concurrent_tasks")
    @classmethod
    def _ensure_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_tasks must be at least 1")
        return v


class AgentCommand(BaseModel):
    """A single operation dispatched to an agent."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str
    type: str = DEFAULT_OPERATION
    parameters: dict[str, Any] = Field(default_factory=dict)
    priority: AgentPriority = AgentPriority.NORMAL
    timeout_seconds: int = DEFAULT_STEP_TIMEOUT_SECONDS
    created_at: datetime = Field(default_factory=_utcnow)
    context: dict[str, Any] = Field(default_factory=dict)


class AgentResult(BaseModel):
    """Outcome of executing an :class:`AgentCommand`."""

    execution_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str = ""
    command_id: str = ""
    success: bool = False
    data: Any = None
    output_data: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    logs: List[str] = Field(default_factory=list)

    @classmethod
    def failure(
        cls, agent_id: str, command_id: str, error_message: str
    ) -> "AgentResult":
        return cls(
            agent_id=agent_id,
            command_id=command_id,
            success=False,
            error_message=error_message,
            end_time=_utcnow(),
        )


class AgentHealth(BaseModel):
    """Liveness snapshot reported by an agent."""

    agent_id: str
    status: str = "Healthy"
    active_tasks: int = 0
    total_processed_tasks: int = 0
    last_check_time: datetime = Field(default_factory=_utcnow)
    metrics: dict[str, Any] = Field(default_factory=dict)


class AgentInfo(BaseModel):
    """Descriptive metadata about a registered agent."""

    id: str
    name: str
    description: Optional[str] = None
    version: str = "1.0.0"
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    status: AgentStatus = AgentStatus.IDLE
    last_heartbeat: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
