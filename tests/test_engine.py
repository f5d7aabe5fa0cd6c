import asyncio

import pytest

from weaveflow import (
    DefinitionRegistry,
    ExecutionStatus,
    StepStatus,
    WorkflowDefinition,
    WorkflowEngine,
)
from weaveflow.config import EngineSettings
from weaveflow.contracts import StepKind, TransformConfig
from weaveflow.errors import WorkflowNotFoundError
from weaveflow.executors import (
    BaseExecutor,
    ExecutorRegistry,
    ParallelExecutor,
    TransformExecutor,
)
from weaveflow.persistence import InMemoryExecutionStore


def _definition(*steps, workflow_id="wf"):
    return WorkflowDefinition.model_validate(
        {"id": workflow_id, "name": workflow_id, "steps": list(steps)}
    )


def _transform(step_id, expr, inputs=None, dependencies=None, **extra):
    return {
        "id": step_id,
        "kind": "transform",
        "config": {"expr": expr},
        "inputs": inputs or {},
        "dependencies": dependencies or [],
        **extra,
    }


class SleepyExecutor(BaseExecutor):
    """Stands in for transform steps and tracks how many run at once."""

    kind = StepKind.TRANSFORM
    config_model = TransformConfig

    def __init__(self, delay=0.05, slow=()):
        self.delay = delay
        self.slow = set(slow)
        self.active = 0
        self.peak = 0
        self.started = []

    async def execute(self, inputs, config, context):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.started.append(context.step.id)
        try:
            await asyncio.sleep(10 if context.step.id in self.slow else self.delay)
        finally:
            self.active -= 1
        return {"step": context.step.id}


@pytest.mark.asyncio
async def test_single_transform_step_completes():
    engine = WorkflowEngine()
    definition = _definition(_transform("x", "return {v: 2+2}"))

    execution = await engine.run_definition(definition, {})

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.step_results["x"] == {"v": 4}
    assert execution.step_statuses["x"] == StepStatus.COMPLETED
    assert execution.end_time is not None
    assert execution.errors == []


@pytest.mark.asyncio
async def test_step_output_threads_into_dependent_inputs():
    engine = WorkflowEngine()
    definition = _definition(
        _transform("a", "return {v: 10}"),
        _transform("b", "return {got: val}", inputs={"val": "$a.v"}, dependencies=["a"]),
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.step_results["b"] == {"got": 10}


@pytest.mark.asyncio
async def test_missing_input_fails_step_but_siblings_complete():
    engine = WorkflowEngine()
    definition = _definition(
        _transform("bad", "return {x}", inputs={"x": "$input.missingField"}),
        _transform("good", "return {ok: true}"),
    )

    execution = await engine.run_definition(definition, {"other": 1})

    assert execution.status == ExecutionStatus.FAILED
    assert execution.step_statuses["bad"] == StepStatus.FAILED
    assert execution.step_statuses["good"] == StepStatus.COMPLETED
    assert execution.step_results["good"] == {"ok": True}
    assert len(execution.errors) == 1
    error = execution.errors[0]
    assert error.step_id == "bad"
    assert error.error_type == "TemplateResolutionError"
    assert "missingField" in error.message


@pytest.mark.asyncio
async def test_cycle_fails_before_any_step_runs():
    engine = WorkflowEngine()
    definition = _definition(
        _transform("a", "return {}", dependencies=["b"]),
        _transform("b", "return {}", dependencies=["a"]),
        _transform("c", "return {}"),
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.FAILED
    assert execution.step_results == {}
    assert set(execution.step_statuses.values()) == {StepStatus.SKIPPED}
    assert len(execution.errors) == 1
    assert execution.errors[0].step_id == "workflow"
    assert execution.errors[0].error_type == "GraphError"
    assert "Circular dependency" in execution.errors[0].message
    assert engine.store.get(execution.id) is not None


@pytest.mark.asyncio
async def test_long_cycle_still_produces_a_failed_record():
    n = 3000
    steps = [
        _transform(f"s{i}", "return {}", dependencies=[f"s{(i + 1) % n}"])
        for i in range(n)
    ]
    definition = _definition(*steps)
    engine = WorkflowEngine()

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.FAILED
    assert execution.errors[0].error_type == "GraphError"
    assert engine.store.get(execution.id) is not None


@pytest.mark.asyncio
async def test_failed_dependency_skips_dependents_but_not_independent_steps():
    engine = WorkflowEngine()
    definition = _definition(
        _transform("a", "return 1"),
        _transform("b", "return {}", dependencies=["a"]),
        _transform("c", "return {}", dependencies=["b"]),
        _transform("d", "return {n: 1}"),
        _transform("e", "return {n: n + 1}", inputs={"n": "$d.n"}, dependencies=["d"]),
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.FAILED
    assert execution.step_statuses == {
        "a": StepStatus.FAILED,
        "b": StepStatus.SKIPPED,
        "c": StepStatus.SKIPPED,
        "d": StepStatus.COMPLETED,
        "e": StepStatus.COMPLETED,
    }
    assert execution.step_results["e"] == {"n": 2}
    assert [e.step_id for e in execution.errors] == ["a"]
    assert execution.errors[0].error_type == "ExecutorError"


@pytest.mark.asyncio
async def test_optional_step_failure_does_not_fail_run():
    engine = WorkflowEngine()
    definition = _definition(
        _transform("enrich", "return 1 / 0", continue_on_error=True),
        _transform("report", "return {done: true}", dependencies=["enrich"]),
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.step_statuses["enrich"] == StepStatus.FAILED
    assert execution.step_statuses["report"] == StepStatus.COMPLETED
    assert execution.errors[0].step_id == "enrich"


@pytest.mark.asyncio
async def test_condition_skips_inactive_branch_and_its_dependents():
    engine = WorkflowEngine()
    definition = _definition(
        {
            "id": "check",
            "kind": "condition",
            "config": {"expression": "views > 1000", "ifTrue": ["big"], "ifFalse": ["small"]},
            "inputs": {"views": "$input.views"},
        },
        _transform("big", "return {size: 'big'}", dependencies=["check"]),
        _transform("small", "return {size: 'small'}", dependencies=["check"]),
        _transform("after_small", "return {}", dependencies=["small"]),
    )

    execution = await engine.run_definition(definition, {"views": 5000})

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.step_results["check"]["result"] is True
    assert execution.step_statuses["big"] == StepStatus.COMPLETED
    assert execution.step_statuses["small"] == StepStatus.SKIPPED
    assert execution.step_statuses["after_small"] == StepStatus.SKIPPED


@pytest.mark.asyncio
async def test_tolerated_condition_failure_skips_both_branches():
    engine = WorkflowEngine()
    definition = _definition(
        {
            "id": "check",
            "kind": "condition",
            "config": {"expression": "1 / 0 > 1", "ifTrue": ["yes"], "ifFalse": ["no"]},
            "continueOnError": True,
        },
        _transform("yes", "return {}", dependencies=["check"]),
        _transform("no", "return {}", dependencies=["check"]),
        _transform("independent", "return {ok: true}"),
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.step_statuses["check"] == StepStatus.FAILED
    assert execution.step_statuses["yes"] == StepStatus.SKIPPED
    assert execution.step_statuses["no"] == StepStatus.SKIPPED
    assert execution.step_statuses["independent"] == StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_parallel_partial_results_when_allowed():
    engine = WorkflowEngine()
    parallel = {
        "id": "fan",
        "kind": "parallel",
        "config": {
            "allowPartial": True,
            "steps": [
                _transform("double", "return {v: n * 2}"),
                _transform("broken", "return n"),
            ],
        },
        "inputs": {"n": "$input.n"},
    }

    execution = await engine.run_definition(_definition(parallel), {"n": 21})

    assert execution.status == ExecutionStatus.COMPLETED
    output = execution.step_results["fan"]
    assert output["double"] == {"v": 42}
    assert "broken" in output["errors"]


@pytest.mark.asyncio
async def test_parallel_failure_reports_partial_results():
    engine = WorkflowEngine()
    parallel = {
        "id": "fan",
        "kind": "parallel",
        "config": {
            "steps": [
                _transform("ok", "return {v: 1}"),
                _transform("broken", "return 'nope'"),
            ]
        },
    }

    execution = await engine.run_definition(_definition(parallel))

    assert execution.status == ExecutionStatus.FAILED
    assert execution.step_statuses["fan"] == StepStatus.FAILED
    details = execution.errors[0].details
    assert details["partial_results"] == {"ok": {"v": 1}}
    assert "broken" in details["branch_errors"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "engine_limit, step_limit, expected",
    [(4, 2, 2), (3, 5, 3), (2, None, 2)],
)
async def test_parallel_sub_steps_respect_concurrency_caps(
    engine_limit, step_limit, expected
):
    sleepy = SleepyExecutor(delay=0.02)
    engine = WorkflowEngine(
        executors=ExecutorRegistry([sleepy, ParallelExecutor()]),
        settings=EngineSettings(parallel_concurrency=engine_limit),
    )
    config = {"steps": [_transform(f"b{i}", "x") for i in range(6)]}
    if step_limit is not None:
        config["maxConcurrency"] = step_limit
    definition = _definition({"id": "fan", "kind": "parallel", "config": config})

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.COMPLETED
    assert sorted(execution.step_results["fan"]) == [f"b{i}" for i in range(6)]
    assert sleepy.peak == expected


@pytest.mark.asyncio
async def test_steps_in_one_wave_run_concurrently():
    sleepy = SleepyExecutor()
    engine = WorkflowEngine(executors=ExecutorRegistry([sleepy]))
    definition = _definition(
        _transform("a", "x"),
        _transform("b", "x"),
        _transform("c", "x"),
        _transform("d", "x", dependencies=["a", "b", "c"]),
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.COMPLETED
    assert sleepy.peak == 3
    assert sleepy.started[-1] == "d"
    assert set(execution.step_durations) == {"a", "b", "c", "d"}


@pytest.mark.asyncio
async def test_max_concurrent_steps_bounds_a_wave():
    sleepy = SleepyExecutor(delay=0.01)
    engine = WorkflowEngine(
        executors=ExecutorRegistry([sleepy]),
        settings=EngineSettings(max_concurrent_steps=1),
    )
    definition = _definition(_transform("a", "x"), _transform("b", "x"))

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.COMPLETED
    assert sleepy.peak == 1


@pytest.mark.asyncio
async def test_deadline_fails_running_and_pending_steps():
    sleepy = SleepyExecutor(delay=0.01, slow={"slow"})
    engine = WorkflowEngine(executors=ExecutorRegistry([sleepy]))
    definition = _definition(
        _transform("fast", "x"),
        _transform("slow", "x"),
        _transform("later", "x", dependencies=["slow"]),
    )

    execution = await engine.run_definition(definition, deadline=0.2)

    assert execution.status == ExecutionStatus.FAILED
    assert execution.step_statuses["fast"] == StepStatus.COMPLETED
    assert execution.step_statuses["slow"] == StepStatus.FAILED
    assert execution.step_statuses["later"] == StepStatus.FAILED
    assert "slow" not in execution.step_results
    timeouts = {e.step_id for e in execution.errors if e.error_type == "WorkflowTimeoutError"}
    assert timeouts == {"slow", "later"}


@pytest.mark.asyncio
async def test_unregistered_kind_is_a_configuration_failure():
    engine = WorkflowEngine(executors=ExecutorRegistry([TransformExecutor()]))
    definition = _definition(
        _transform("a", "return {}"),
        {"id": "call", "kind": "external-call", "config": {"url": "https://example.com"}},
    )

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.FAILED
    assert execution.step_results == {}
    assert execution.errors[0].error_type == "ConfigurationError"
    assert execution.step_statuses["a"] == StepStatus.SKIPPED


@pytest.mark.asyncio
async def test_invalid_step_config_fails_before_start():
    engine = WorkflowEngine()
    definition = _definition({"id": "t", "kind": "transform", "config": {}})

    execution = await engine.run_definition(definition)

    assert execution.status == ExecutionStatus.FAILED
    assert execution.errors[0].step_id == "workflow"
    assert "Step 't'" in execution.errors[0].message


@pytest.mark.asyncio
async def test_sub_workflow_result_is_nested_under_output_key():
    registry = DefinitionRegistry()
    registry.register(
        _definition(
            _transform("sum", "return {total: a + b}", inputs={"a": "$input.a", "b": "$input.b"}),
            workflow_id="adder",
        )
    )
    registry.register(
        _definition(
            {
                "id": "child",
                "kind": "workflow",
                "config": {"workflowId": "adder"},
                "inputs": {"a": 2, "b": "$input.b"},
                "outputs": ["report"],
            },
            _transform("use", "return {t: t}", inputs={"t": "$child.report.sum.total"}, dependencies=["child"]),
            workflow_id="parent",
        )
    )
    store = InMemoryExecutionStore()
    engine = WorkflowEngine(registry=registry, store=store)

    execution = await engine.execute_workflow("parent", {"b": 3})

    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.step_results["use"] == {"t": 5}
    child_id = execution.step_results["child"]["execution_id"]
    assert store.get(child_id).workflow_id == "adder"
    assert store.stats().total == 2


@pytest.mark.asyncio
async def test_failing_sub_workflow_fails_parent_step():
    registry = DefinitionRegistry(
        [
            _definition(_transform("boom", "return 1"), workflow_id="child"),
            _definition(
                {"id": "run_child", "kind": "workflow", "config": {"workflowId": "child"}},
                workflow_id="parent",
            ),
        ]
    )
    engine = WorkflowEngine(registry=registry)

    execution = await engine.execute_workflow("parent")

    assert execution.status == ExecutionStatus.FAILED
    assert execution.errors[0].step_id == "run_child"
    assert "execution_id" in execution.errors[0].details


@pytest.mark.asyncio
async def test_unknown_workflow_id_raises():
    engine = WorkflowEngine()
    with pytest.raises(WorkflowNotFoundError):
        await engine.execute_workflow("nope")


@pytest.mark.asyncio
async def test_records_are_isolated_from_the_store():
    engine = WorkflowEngine()
    execution = await engine.run_definition(_definition(_transform("x", "return {v: 1}")))

    execution.step_results["x"]["v"] = 99
    stored = engine.store.get(execution.id)

    assert stored.step_results["x"] == {"v": 1}
    assert stored.inputs == {}
    assert stored.to_dict()["stepResults"] == {"x": {"v": 1}}


@pytest.mark.asyncio
async def test_step_ids_in_one_wave_keep_declaration_order():
    engine = WorkflowEngine()
    definition = _definition(
        _transform("z", "return {}"),
        _transform("a", "return {}"),
        _transform("m", "return {}", dependencies=["z"]),
    )
    assert engine.plan(definition) == [["z", "a"], ["m"]]
