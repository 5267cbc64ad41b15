"""Exception hierarchy for maestro."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ValidationResult


class MaestroError(Exception):
    """Base class for all maestro errors."""


class WorkflowValidationError(MaestroError):
    """Raised when a workflow definition fails validation on save."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result = result
        super().__init__(f"Workflow validation failed: {', '.join(result.errors)}")


class NotFoundError(MaestroError, LookupError):
    """A workflow, execution or agent id could not be resolved."""


class ConflictError(MaestroError):
    """The requested change conflicts with existing state."""


class StepFailedError(MaestroError):
    """A step did not complete and the execution stops (fail-fast)."""

    def __init__(self, step_name: str, error_message: str | None) -> None:
        self.step_name = step_name
        self.error_message = error_message
        super().__init__(f"Step {step_name} failed: {error_message}")


class ExecutionCancelled(MaestroError):
    """Cooperative cancellation was observed by a running execution."""


class UnsupportedConditionError(MaestroError, ValueError):
    """An execution condition uses syntax no evaluator understands."""
