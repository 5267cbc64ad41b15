"""Maestro: in-process workflow execution engine for pluggable agents."""

from .agents import AgentCommand, AgentDirectory, AgentResult, BaseAgent, EchoAgent
from .config import EngineConfig, MaestroConfig, load_config
from .exceptions import (
    ConflictError,
    ExecutionCancelled,
    MaestroError,
    NotFoundError,
    StepFailedError,
    UnsupportedConditionError,
    WorkflowValidationError,
)
from .models import (
    ExecutionMode,
    ValidationResult,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepExecution,
)
from .persistence import get_repository
from .service import WorkflowService

__version__ = "0.1.0"
__all__ = [
    "AgentCommand",
    "AgentDirectory",
    "AgentResult",
    "BaseAgent",
    "ConflictError",
    "EchoAgent",
    "EngineConfig",
    "ExecutionCancelled",
    "ExecutionMode",
    "MaestroConfig",
    "MaestroError",
    "NotFoundError",
    "StepFailedError",
    "UnsupportedConditionError",
    "ValidationResult",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowService",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowStepExecution",
    "WorkflowValidationError",
    "get_repository",
    "load_config",
]
