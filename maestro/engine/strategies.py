"""Step-iteration strategies, one per execution mode."""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Dict, Optional

from ..exceptions import StepFailedError
from ..models import (
    ExecutionMode,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepExecution,
)
from .conditions import ConditionEvaluator
from .registry import CancellationToken
from .step_executor import StepExecutor

logger = logging.getLogger(__name__)

StepRecorder = Callable[[WorkflowStepExecution], Awaitable[None]]


@dataclass
class ExecutionRun:
    """Everything a strategy needs to drive one execution."""

    definition: WorkflowDefinition
    execution: WorkflowExecution
    context: Dict[str, Any]
    token: CancellationToken
    step_executor: StepExecutor
    evaluator: ConditionEvaluator
    record_step: StepRecorder
    max_parallel_steps: Optional[int] = None

    def merge(self, record: WorkflowStepExecution) -> None:
        self.context.update(record.output_data)


def _step_failed(step: WorkflowStep, record: WorkflowStepExecution) -> StepFailedError:
    return StepFailedError(step.name, record.error_message)


class ExecutionStrategy(abc.ABC):
    mode: ClassVar[ExecutionMode]

    @abc.abstractmethod
    async def run(self, run: ExecutionRun) -> None:
        """Execute the steps of ``run.definition``, updating ``run.context``."""
        raise NotImplementedError


class OrderedStrategy(ExecutionStrategy):
    """Runs steps one at a time in ``order``, failing fast.

    Each completed step's output is merged into the context before the next
    step starts, so later input mappings can reference it.
    """

    evaluate_conditions: ClassVar[bool] = False

    async def run(self, run: ExecutionRun) -> None:
        for step in run.definition.ordered_steps():
            run.token.raise_if_cancelled()

            if self.evaluate_conditions and step.execution_condition:
                if not run.evaluator.evaluate(step.execution_condition, run.context):
                    run.execution.logs.append(
                        f"Skipping step {step.name} - condition not met: {step.execution_condition}"
                    )
                    logger.info(
                        f"Skipping step {step.name} of execution {run.execution.id}"
                    )
                    continue

            record = await run.step_executor.execute_step(
                step, run.execution, run.context
            )
            run.execution.step_executions.append(record)
            await run.record_step(record)

            if record.status != WorkflowStatus.COMPLETED:
                raise _step_failed(step, record)
            run.merge(record)


class SequentialStrategy(OrderedStrategy):
    mode = ExecutionMode.SEQUENTIAL


class ConditionalStrategy(OrderedStrategy):
    mode = ExecutionMode.CONDITIONAL
    evaluate_conditions = True


class MixedStrategy(ConditionalStrategy):
    """Mixed mode currently runs exactly like Conditional."""

    mode = ExecutionMode.MIXED


class ParallelStrategy(ExecutionStrategy):
    """Runs every step concurrently against one snapshot of the context.

    Records are appended in ``order`` and outputs are merged in ``order``
    ascending after the join, so when two steps write the same key the step
    with the higher ``order`` wins regardless of which finished first.
    """

    mode = ExecutionMode.PARALLEL

    async def run(self, run: ExecutionRun) -> None:
        run.token.raise_if_cancelled()

        steps = run.definition.ordered_steps()
        snapshot = dict(run.context)
        limit = (
            asyncio.Semaphore(run.max_parallel_steps)
            if run.max_parallel_steps
            else None
        )

        async def _run_step(step: WorkflowStep) -> WorkflowStepExecution:
            if limit is None:
                return await run.step_executor.execute_step(step, run.execution, snapshot)
            async with limit:
                return await run.step_executor.execute_step(step, run.execution, snapshot)

        records = await asyncio.gather(*(_run_step(step) for step in steps))

        for record in records:
            run.execution.step_executions.append(record)
        if records:
            await run.record_step(records[-1])

        run.token.raise_if_cancelled()

        for step, record in zip(steps, records):
            if record.status != WorkflowStatus.COMPLETED:
                raise _step_failed(step, record)

        for record in records:
            run.merge(record)


STRATEGIES: Dict[ExecutionMode, ExecutionStrategy] = {
    strategy.mode: strategy
    for strategy in (
        SequentialStrategy(),
        ParallelStrategy(),
        ConditionalStrategy(),
        MixedStrategy(),
    )
}


def get_strategy(mode: ExecutionMode) -> ExecutionStrategy:
    try:
        return STRATEGIES[mode]
    except KeyError:
        raise NotImplementedError(f"Execution mode {mode} is not supported") from None
