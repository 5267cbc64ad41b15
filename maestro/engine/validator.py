"""Static checks on workflow definitions."""

from __future__ import annotations

import logging
from typing import Optional

from ..agents import AgentDirectory
from ..models import ValidationResult, WorkflowDefinition
from .conditions import ConditionEvaluator, default_evaluator

logger = logging.getLogger(__name__)


class WorkflowValidator:
    """Collects every problem in a definition instead of stopping at the first.

    Missing agents are reported as warnings because agents may register after
    a workflow is saved.
    """

    def __init__(
        self,
        directory: AgentDirectory,
        evaluator: Optional[ConditionEvaluator] = None,
    ) -> None:
        self._directory = directory
        self._evaluator = evaluator or default_evaluator()

    def validate(self, definition: Optional[WorkflowDefinition]) -> ValidationResult:
        result = ValidationResult()
        if definition is None:
            result.add_error("Workflow definition cannot be null")
            return result

        if not definition.name:
            result.add_error("Workflow name is required")

        if not definition.steps:
            result.add_error("Workflow must have at least one step")
            return result

        known_ids = {step.id for step in definition.steps if step.id}
        seen: set[str] = set()
        for step in definition.steps:
            if not step.id:
                result.add_error(f"Step {step.name} must have an ID")
            elif step.id in seen:
                result.add_error(f"Duplicate step ID: {step.id}")
            else:
                seen.add(step.id)

            if not step.name:
                result.add_error(f"Step {step.id} must have a name")

            if not step.agent_id:
                result.add_error(f"Step {step.name} must specify an agent ID")
            elif self._directory.get(step.agent_id) is None:
                result.add_warning(
                    f"Agent {step.agent_id} for step {step.name} is not currently registered"
                )

            for dependency in step.dependencies:
                if dependency not in known_ids:
                    result.add_error(
                        f"Step {step.name} depends on non-existent step {dependency}"
                    )

            condition = step.execution_condition
            if condition and not self._evaluator.supports(condition):
                result.add_error(
                    f"Step {step.name} has unsupported execution condition: {condition}"
                )

        if not result.is_valid:
            logger.debug(
                f"Workflow {definition.id} failed validation: {result.errors}"
            )
        return result
