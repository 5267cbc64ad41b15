"""End-to-end behaviour of WorkflowService against in-memory persistence."""

from __future__ import annotations

import asyncio

import pytest

from maestro.config import EngineConfig
from maestro.exceptions import ConflictError, NotFoundError, WorkflowValidationError
from maestro.models import ExecutionMode, WorkflowDefinition, WorkflowStatus, WorkflowStep
from maestro.service import WorkflowService
from tests.fixtures.agents import GatedAgent, ScriptedAgent


def _step(step_id: str, order: int, agent_id: str = "worker", **kwargs) -> WorkflowStep:
    return WorkflowStep(
        id=step_id, name=kwargs.pop("name", step_id), agent_id=agent_id, order=order, **kwargs
    )


def _definition(*steps: WorkflowStep, mode: ExecutionMode = ExecutionMode.SEQUENTIAL) -> WorkflowDefinition:
    return WorkflowDefinition(name="test workflow", execution_mode=mode, steps=list(steps))


async def _run(service: WorkflowService, definition: WorkflowDefinition, input_data=None):
    created = await service.create_workflow(definition)
    started = await service.execute_workflow(created.id, input_data)
    return await service.wait_for_execution(started.id, timeout=5)


def _assert_finalized(service: WorkflowService, execution) -> None:
    assert execution.is_terminal
    assert execution.end_time is not None
    assert execution.id not in service.registry


# ----------------------------------------------------------------------
# Definitions


@pytest.mark.asyncio
async def test_create_rejects_invalid_definition(service) -> None:
    with pytest.raises(WorkflowValidationError) as excinfo:
        await service.create_workflow(WorkflowDefinition(name="empty"))
    assert excinfo.value.result.errors == ["Workflow must have at least one step"]
    assert await service.list_workflows() == []


@pytest.mark.asyncio
async def test_create_assigns_id_and_timestamps(service) -> None:
    wf = _definition(_step("a", 1))
    wf.id = ""
    created = await service.create_workflow(wf)

    assert created.id
    assert created.created_at == created.updated_at
    assert (await service.get_workflow(created.id)).model_dump() == created.model_dump()


@pytest.mark.asyncio
async def test_create_duplicate_conflicts(service) -> None:
    wf = await service.create_workflow(_definition(_step("a", 1)))
    with pytest.raises(ConflictError):
        await service.create_workflow(wf)


@pytest.mark.asyncio
async def test_update_keeps_created_at(service) -> None:
    wf = await service.create_workflow(_definition(_step("a", 1)))
    changed = wf.model_copy(update={"description": "second draft"})

    updated = await service.update_workflow(changed)

    assert updated.created_at == wf.created_at
    assert updated.updated_at >= wf.updated_at
    assert (await service.get_workflow(wf.id)).description == "second draft"

    with pytest.raises(NotFoundError):
        await service.update_workflow(_definition(_step("a", 1)))


@pytest.mark.asyncio
async def test_delete_workflow(service) -> None:
    wf = await service.create_workflow(_definition(_step("a", 1)))
    await service.delete_workflow(wf.id)
    assert await service.get_workflow(wf.id) is None

    with pytest.raises(NotFoundError):
        await service.delete_workflow(wf.id)
    with pytest.raises(ValueError):
        await service.delete_workflow("")


@pytest.mark.asyncio
async def test_delete_blocked_while_executions_run(service, directory) -> None:
    agent = GatedAgent()
    await directory.register(agent)
    wf = await service.create_workflow(_definition(_step("a", 1, agent_id="gated")))

    first = await service.execute_workflow(wf.id)
    second = await service.execute_workflow(wf.id)
    await agent.entered.wait()

    with pytest.raises(ConflictError) as excinfo:
        await service.delete_workflow(wf.id)
    assert str(excinfo.value) == (
        f"Cannot delete workflow {wf.id} - it has 2 running executions"
    )
    assert await service.get_workflow(wf.id) is not None

    agent.gate.set()
    for started in (first, second):
        finished = await service.wait_for_execution(started.id, timeout=5)
        assert finished.status == WorkflowStatus.COMPLETED
    await service.delete_workflow(wf.id)


# ----------------------------------------------------------------------
# Execution lifecycle


@pytest.mark.asyncio
async def test_execute_returns_running_snapshot(service, directory) -> None:
    agent = GatedAgent()
    await directory.register(agent)
    wf = await service.create_workflow(_definition(_step("a", 1, agent_id="gated")))

    started = await service.execute_workflow(wf.id, {"k": "v"}, executed_by="alice")

    assert started.status == WorkflowStatus.RUNNING
    assert started.end_time is None
    assert started.executed_by == "alice"
    assert started.input_data == {"k": "v"}
    assert started.id in service.registry
    stored = await service.get_execution(started.id)
    assert stored.status == WorkflowStatus.RUNNING

    agent.gate.set()
    finished = await service.wait_for_execution(started.id, timeout=5)
    assert finished.status == WorkflowStatus.COMPLETED
    _assert_finalized(service, finished)
    # The returned snapshot is not updated in place
    assert started.status == WorkflowStatus.RUNNING


@pytest.mark.asyncio
async def test_execute_unknown_workflow(service) -> None:
    with pytest.raises(NotFoundError):
        await service.execute_workflow("missing")
    with pytest.raises(ValueError):
        await service.execute_workflow("")


@pytest.mark.asyncio
async def test_default_executed_by(repository, directory) -> None:
    service = WorkflowService(repository, directory, EngineConfig(default_executed_by="scheduler"))
    await directory.register(ScriptedAgent("worker"))
    execution = await _run(service, _definition(_step("a", 1)))
    assert execution.executed_by == "scheduler"


# ----------------------------------------------------------------------
# Sequential


@pytest.mark.asyncio
async def test_sequential_runs_in_order_and_merges_outputs(service, directory) -> None:
    agent = ScriptedAgent(
        "worker",
        outputs={"*": lambda command: {f"done_{command.context['step_id']}": True}},
    )
    await directory.register(agent)
    wf = _definition(_step("c", 3), _step("a", 1), _step("b", 2))

    execution = await _run(service, wf, {"seed": 1})

    assert execution.status == WorkflowStatus.COMPLETED
    assert [c.context["step_id"] for c in agent.commands] == ["a", "b", "c"]
    assert [r.step_id for r in execution.step_executions] == ["a", "b", "c"]
    assert execution.output_data == {
        "seed": 1,
        "done_a": True,
        "done_b": True,
        "done_c": True,
    }
    assert execution.logs[-1].startswith("Workflow execution completed successfully at ")
    assert execution.logs[-1].endswith(" UTC")
    _assert_finalized(service, execution)


@pytest.mark.asyncio
async def test_sequential_mapping_uses_previous_output(service, directory) -> None:
    fs = ScriptedAgent(
        "fs",
        outputs={
            "list_directory": {"picked_path": "/tmp/x"},
            "read_file": {"content": "hello"},
        },
    )
    await directory.register(fs)
    wf = _definition(
        _step("A", 1, agent_id="fs", configuration={"operation": "list_directory"}),
        _step(
            "B",
            2,
            agent_id="fs",
            configuration={"operation": "read_file"},
            input_mapping={"file_path": "picked_path"},
        ),
    )

    execution = await _run(service, wf)

    assert execution.status == WorkflowStatus.COMPLETED
    read = fs.commands[1]
    assert read.type == "read_file"
    assert read.parameters["file_path"] == "/tmp/x"
    assert execution.output_data == {"picked_path": "/tmp/x", "content": "hello"}


@pytest.mark.asyncio
async def test_sequential_fails_fast(service, directory) -> None:
    good = ScriptedAgent("good", outputs={"*": {"ok": True}})
    bad = ScriptedAgent("bad", fail_with="boom")
    await directory.register(good)
    await directory.register(bad)
    wf = _definition(
        _step("a", 1, agent_id="good"),
        _step("b", 2, agent_id="bad", name="Breaker"),
        _step("c", 3, agent_id="good"),
    )

    execution = await _run(service, wf)

    assert execution.status == WorkflowStatus.FAILED
    assert execution.error_message == "Step Breaker failed: boom"
    assert [r.step_id for r in execution.step_executions] == ["a", "b"]
    assert execution.step_executions[1].status == WorkflowStatus.FAILED
    assert len(good.commands) == 1
    assert execution.output_data == {"ok": True}
    assert "Workflow execution failed at " in execution.logs[-1]
    assert execution.logs[-1].endswith("Step Breaker failed: boom")
    _assert_finalized(service, execution)


@pytest.mark.asyncio
async def test_missing_agent_fails_execution(service) -> None:
    execution = await _run(service, _definition(_step("a", 1, agent_id="ghost", name="Lost")))
    assert execution.status == WorkflowStatus.FAILED
    assert execution.error_message == "Step Lost failed: Agent ghost not found"


# ----------------------------------------------------------------------
# Parallel


@pytest.mark.asyncio
async def test_parallel_merges_by_order_not_completion(service, directory) -> None:
    agent = ScriptedAgent(
        "worker",
        outputs={"*": lambda command: {"result": command.parameters["label"]}},
        delays={"low": 0.2, "high": 0.0},
    )
    await directory.register(agent)
    wf = _definition(
        _step("high", 2, configuration={"label": "high"}),
        _step("low", 1, configuration={"label": "low"}),
        mode=ExecutionMode.PARALLEL,
    )

    execution = await _run(service, wf)

    assert execution.status == WorkflowStatus.COMPLETED
    assert execution.output_data["result"] == "high"
    assert [r.step_id for r in execution.step_executions] == ["low", "high"]
    _assert_finalized(service, execution)


@pytest.mark.asyncio
async def test_parallel_steps_share_initial_context(service, directory) -> None:
    agent = ScriptedAgent(
        "worker",
        outputs={"*": lambda command: {command.context["step_id"]: True}},
    )
    await directory.register(agent)
    wf = _definition(
        _step("a", 1),
        _step("b", 2, input_mapping={"saw_a": "a"}),
        mode=ExecutionMode.PARALLEL,
    )

    execution = await _run(service, wf, {"seed": 1})

    assert execution.status == WorkflowStatus.COMPLETED
    b_command = next(c for c in agent.commands if c.context["step_id"] == "b")
    assert "saw_a" not in b_command.parameters
    assert execution.output_data == {"seed": 1, "a": True, "b": True}


@pytest.mark.asyncio
async def test_parallel_failure_fails_execution(service, directory) -> None:
    await directory.register(ScriptedAgent("good", outputs={"*": {"ok": True}}))
    await directory.register(ScriptedAgent("bad", fail_with="nope"))
    wf = _definition(
        _step("a", 1, agent_id="good"),
        _step("b", 2, agent_id="bad", name="Bad step"),
        mode=ExecutionMode.PARALLEL,
    )

    execution = await _run(service, wf)

    assert execution.status == WorkflowStatus.FAILED
    assert execution.error_message == "Step Bad step failed: nope"
    assert len(execution.step_executions) == 2


@pytest.mark.asyncio
async def test_parallel_respects_fan_out_limit(repository, directory) -> None:
    service = WorkflowService(repository, directory, EngineConfig(max_parallel_steps=1))
    agent = GatedAgent()
    await directory.register(agent)
    wf = _definition(
        _step("a", 1, agent_id="gated"),
        _step("b", 2, agent_id="gated"),
        mode=ExecutionMode.PARALLEL,
    )
    created = await service.create_workflow(wf)
    started = await service.execute_workflow(created.id)

    await agent.entered.wait()
    await asyncio.sleep(0.05)
    assert agent.calls == 1

    agent.gate.set()
    finished = await service.wait_for_execution(started.id, timeout=5)
    assert finished.status == WorkflowStatus.COMPLETED
    assert agent.calls == 2


@pytest.mark.asyncio
async def test_parallel_cancel_at_join_discards_outputs(service, directory) -> None:
    gated = GatedAgent(output={"gated": True})
    await directory.register(gated)
    await directory.register(ScriptedAgent("worker", outputs={"*": {"fast": True}}))
    wf = await service.create_workflow(
        _definition(
            _step("a", 1, agent_id="gated"),
            _step("b", 2),
            mode=ExecutionMode.PARALLEL,
        )
    )
    started = await service.execute_workflow(wf.id, {"seed": 1})
    await gated.entered.wait()

    await service.cancel_execution(started.id)
    gated.gate.set()
    execution = await service.wait_for_execution(started.id, timeout=5)

    assert execution.status == WorkflowStatus.CANCELLED
    assert [r.step_id for r in execution.step_executions] == ["a", "b"]
    assert all(r.status == WorkflowStatus.COMPLETED for r in execution.step_executions)
    assert execution.output_data == {"seed": 1}
    _assert_finalized(service, execution)


@pytest.mark.asyncio
async def test_parallel_cancel_wins_over_step_failure(service, directory) -> None:
    gated = GatedAgent()
    await directory.register(gated)
    await directory.register(ScriptedAgent("bad", fail_with="nope"))
    wf = await service.create_workflow(
        _definition(
            _step("a", 1, agent_id="gated"),
            _step("b", 2, agent_id="bad"),
            mode=ExecutionMode.PARALLEL,
        )
    )
    started = await service.execute_workflow(wf.id)
    await gated.entered.wait()

    await service.cancel_execution(started.id)
    gated.gate.set()
    execution = await service.wait_for_execution(started.id, timeout=5)

    assert execution.status == WorkflowStatus.CANCELLED
    assert execution.error_message is None
    assert execution.step_executions[1].status == WorkflowStatus.FAILED


@pytest.mark.asyncio
async def test_parallel_cancel_before_launch_runs_nothing(service, directory) -> None:
    agent = ScriptedAgent("worker")
    await directory.register(agent)
    wf = await service.create_workflow(
        _definition(_step("a", 1), _step("b", 2), mode=ExecutionMode.PARALLEL)
    )

    started = await service.execute_workflow(wf.id)
    await service.cancel_execution(started.id)
    execution = await service.wait_for_execution(started.id, timeout=5)

    assert execution.status == WorkflowStatus.CANCELLED
    assert execution.step_executions == []
    assert agent.commands == []


# ----------------------------------------------------------------------
# Conditional and Mixed


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [ExecutionMode.CONDITIONAL, ExecutionMode.MIXED])
async def test_conditional_skips_unmet_steps(service, directory, mode) -> None:
    agent = ScriptedAgent(
        "worker",
        outputs={"*": lambda command: {command.context["step_id"]: "ran"}},
    )
    await directory.register(agent)
    wf = _definition(
        _step("guarded", 1, name="Guarded", execution_condition="exists:foo"),
        _step("always", 2),
        mode=mode,
    )

    skipped = await _run(service, wf)

    assert skipped.status == WorkflowStatus.COMPLETED
    assert [r.step_id for r in skipped.step_executions] == ["always"]
    assert "Skipping step Guarded - condition not met: exists:foo" in skipped.logs
    assert skipped.output_data == {"always": "ran"}

    ran = await service.execute_workflow(wf.id, {"foo": 1})
    ran = await service.wait_for_execution(ran.id, timeout=5)
    assert [r.step_id for r in ran.step_executions] == ["guarded", "always"]


@pytest.mark.asyncio
async def test_conditional_condition_sees_earlier_outputs(service, directory) -> None:
    await directory.register(ScriptedAgent("producer", outputs={"*": {"foo": 1}}))
    await directory.register(ScriptedAgent("worker"))
    wf = _definition(
        _step("make", 1, agent_id="producer"),
        _step("use", 2, execution_condition="exists:foo"),
        mode=ExecutionMode.CONDITIONAL,
    )

    execution = await _run(service, wf)

    assert [r.step_id for r in execution.step_executions] == ["make", "use"]


@pytest.mark.asyncio
async def test_sequential_ignores_conditions(service, directory) -> None:
    await directory.register(ScriptedAgent("worker"))
    wf = _definition(_step("a", 1, execution_condition="exists:foo"))

    execution = await _run(service, wf)

    assert [r.step_id for r in execution.step_executions] == ["a"]


# ----------------------------------------------------------------------
# Cancellation and faults


@pytest.mark.asyncio
async def test_cancel_running_execution(service, directory) -> None:
    gated = GatedAgent()
    later = ScriptedAgent("worker")
    await directory.register(gated)
    await directory.register(later)
    wf = await service.create_workflow(
        _definition(_step("a", 1, agent_id="gated"), _step("b", 2))
    )
    started = await service.execute_workflow(wf.id)
    await gated.entered.wait()

    await service.cancel_execution(started.id)
    gated.gate.set()
    execution = await service.wait_for_execution(started.id, timeout=5)

    assert execution.status == WorkflowStatus.CANCELLED
    assert later.commands == []
    assert [r.step_id for r in execution.step_executions] == ["a"]
    assert "Workflow execution cancelled at " in execution.logs[-1]
    _assert_finalized(service, execution)

    # Cancelling again, or an id that never ran, is a no-op
    await service.cancel_execution(started.id)
    await service.cancel_execution("never-ran")
    assert (await service.get_execution(started.id)).status == WorkflowStatus.CANCELLED

    with pytest.raises(ValueError):
        await service.cancel_execution("")


@pytest.mark.asyncio
async def test_shutdown_cancels_outstanding_executions(service, directory) -> None:
    gated = GatedAgent()
    await directory.register(gated)
    await directory.register(ScriptedAgent("worker"))
    wf = await service.create_workflow(
        _definition(_step("a", 1, agent_id="gated"), _step("b", 2))
    )
    started = await service.execute_workflow(wf.id)
    await gated.entered.wait()

    shutdown = asyncio.create_task(service.shutdown())
    await asyncio.sleep(0)
    gated.gate.set()
    await shutdown

    execution = await service.get_execution(started.id)
    assert execution.status == WorkflowStatus.CANCELLED
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_task_cancelled_before_start_is_finalized(service, directory) -> None:
    agent = ScriptedAgent("worker")
    await directory.register(agent)
    wf = await service.create_workflow(_definition(_step("a", 1)))

    started = await service.execute_workflow(wf.id, {"seed": 1})
    task = service._tasks[started.id]
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await service.shutdown()

    execution = await service.get_execution(started.id)
    assert execution.status == WorkflowStatus.CANCELLED
    assert execution.output_data == {"seed": 1}
    assert "Workflow execution cancelled at " in execution.logs[-1]
    assert agent.commands == []
    _assert_finalized(service, execution)
    await service.delete_workflow(wf.id)


@pytest.mark.asyncio
async def test_coordinator_fault_fails_execution(service, directory, monkeypatch) -> None:
    await directory.register(ScriptedAgent("worker"))
    wf = await service.create_workflow(_definition(_step("a", 1)))

    async def _explode(step, execution, context):
        raise RuntimeError("executor crashed")

    monkeypatch.setattr(service._step_executor, "execute_step", _explode)
    started = await service.execute_workflow(wf.id)
    execution = await service.wait_for_execution(started.id, timeout=5)

    assert execution.status == WorkflowStatus.FAILED
    assert execution.error_message == "executor crashed"
    _assert_finalized(service, execution)


@pytest.mark.asyncio
async def test_unsupported_condition_fails_closed(service, directory, monkeypatch) -> None:
    agent = ScriptedAgent("worker")
    await directory.register(agent)
    wf = await service.create_workflow(
        _definition(_step("a", 1, execution_condition="exists:foo"), mode=ExecutionMode.CONDITIONAL)
    )
    stored = await service._repository.get_definition(wf.id)
    stored.steps[0].execution_condition = "foo == 1"
    await service._repository.update_definition(stored)

    started = await service.execute_workflow(wf.id)
    execution = await service.wait_for_execution(started.id, timeout=5)

    assert execution.status == WorkflowStatus.FAILED
    assert "Unsupported execution condition: foo == 1" in execution.error_message
    assert agent.commands == []


@pytest.mark.asyncio
async def test_pause_and_resume_not_implemented(service) -> None:
    with pytest.raises(NotImplementedError):
        await service.pause_execution("any")
    with pytest.raises(NotImplementedError):
        await service.resume_execution("any")


@pytest.mark.asyncio
async def test_list_executions_newest_first(service, directory) -> None:
    await directory.register(ScriptedAgent("worker"))
    wf = await service.create_workflow(_definition(_step("a", 1)))
    first = await service.execute_workflow(wf.id)
    await service.wait_for_execution(first.id, timeout=5)
    await asyncio.sleep(0.01)
    second = await service.execute_workflow(wf.id)
    await service.wait_for_execution(second.id, timeout=5)

    listed = await service.list_executions(wf.id)
    assert [e.id for e in listed] == [second.id, first.id]
    assert await service.list_executions("") == []
