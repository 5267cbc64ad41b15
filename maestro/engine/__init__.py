"""Workflow execution engine internals."""

from .conditions import ConditionEvaluator, PrefixConditionEvaluator, default_evaluator
from .registry import CancellationToken, RunningExecutionRegistry
from .step_executor import StepExecutor, build_step_input, resolve_operation
from .strategies import ExecutionRun, ExecutionStrategy, get_strategy
from .validator import WorkflowValidator

__all__ = [
    "CancellationToken",
    "ConditionEvaluator",
    "ExecutionRun",
    "ExecutionStrategy",
    "PrefixConditionEvaluator",
    "RunningExecutionRegistry",
    "StepExecutor",
    "WorkflowValidator",
    "build_step_input",
    "default_evaluator",
    "get_strategy",
    "resolve_operation",
]
