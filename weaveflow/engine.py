"""Workflow engine: plans, runs and records workflow invocations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from .config import EngineSettings, WeaveflowConfig
from .contracts import (
    ExecutionStatus,
    Step,
    StepConfig,
    StepStatus,
    WorkflowDefinition,
    WorkflowExecution,
    _utcnow,
)
from .errors import (
    ConfigurationError,
    GraphError,
    WeaveflowError,
    WorkflowNotFoundError,
    WorkflowTimeoutError,
)
from .executors import ExecutorRegistry, StepContext, default_registry
from .graph import plan_waves, validate_branch_targets
from .persistence import ExecutionStore, InMemoryExecutionStore
from .registry import DefinitionRegistry
from .templating import TemplateContext, referenced_steps, resolve_inputs

logger = logging.getLogger(__name__)


def _upstream(steps: Dict[str, Step], step_id: str) -> Set[str]:
    found: Set[str] = set()
    stack = list(steps[step_id].dependencies)
    while stack:
        current = stack.pop()
        if current not in found:
            found.add(current)
            stack.extend(steps[current].dependencies)
    return found


class _WorkflowRun:
    """State of a single invocation while its waves are executing."""

    def __init__(
        self,
        engine: "WorkflowEngine",
        definition: WorkflowDefinition,
        execution: WorkflowExecution,
        configs: Dict[str, StepConfig],
        deadline_at: Optional[float],
        depth: int,
    ) -> None:
        self.engine = engine
        self.definition = definition
        self.execution = execution
        self.configs = configs
        self.deadline_at = deadline_at
        self.depth = depth
        self.steps = {s.id: s for s in definition.steps}
        self.inactive: Set[str] = set()
        self.timed_out = False
        limit = engine.settings.max_concurrent_steps
        self._semaphore = asyncio.Semaphore(limit) if limit else None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return asyncio.get_running_loop()

    def _remaining(self) -> Optional[float]:
        if self.deadline_at is None:
            return None
        return self.deadline_at - self.loop.time()

    def _blocked_by(self, step: Step) -> Optional[str]:
        if step.id in self.inactive:
            return "not on the active condition branch"
        statuses = self.execution.step_statuses
        for dep in step.dependencies:
            status = statuses[dep]
            if status == StepStatus.COMPLETED:
                continue
            if status == StepStatus.FAILED and self.steps[dep].continue_on_error:
                continue
            return f"dependency '{dep}' is {status.value}"
        return None

    async def run(self, waves: List[List[str]]) -> None:
        for index, wave in enumerate(waves):
            remaining = self._remaining()
            if remaining is not None and remaining <= 0:
                self._expire()
                return

            tasks: Dict[asyncio.Task, str] = {}
            templates = TemplateContext(
                inputs=self.execution.inputs,
                step_results=dict(self.execution.step_results),
            )
            for step_id in wave:
                step = self.steps[step_id]
                reason = self._blocked_by(step)
                if reason:
                    logger.info(f"Skipping step {step_id}: {reason}")
                    self.execution.set_step_status(step_id, StepStatus.SKIPPED)
                    continue
                if self.execution.status == ExecutionStatus.PENDING:
                    self.execution.status = ExecutionStatus.RUNNING
                self.execution.set_step_status(step_id, StepStatus.RUNNING)
                task = asyncio.create_task(self._run_step(step, templates))
                tasks[task] = step_id

            if not tasks:
                continue
            logger.debug(f"Wave {index}: running {', '.join(tasks.values())}")
            _, pending = await asyncio.wait(tasks, timeout=self._remaining())
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                self._expire()
                return

    async def _run_step(self, step: Step, templates: TemplateContext) -> None:
        execution = self.execution
        started = self.loop.time()
        config = self.configs[step.id]
        executor = self.engine.executors.get(step.kind)
        try:
            inputs = resolve_inputs(step.inputs, templates)
            context = StepContext(
                step=step,
                templates=templates,
                registry=self.engine.executors,
                settings=self.engine.settings,
                execution_id=execution.id,
                engine=self.engine,
                deadline=self.deadline_at,
                depth=self.depth,
            )
            if self._semaphore is not None:
                async with self._semaphore:
                    output = await self.engine.executors.dispatch(
                        step.kind, inputs, config, context
                    )
            else:
                output = await self.engine.executors.dispatch(
                    step.kind, inputs, config, context
                )
        except WeaveflowError as exc:
            execution.step_durations[step.id] = (self.loop.time() - started) * 1000
            execution.add_error(
                step.id,
                exc.message,
                error_type=type(exc).__name__,
                details=exc.details,
            )
            execution.set_step_status(step.id, StepStatus.FAILED)
            self.inactive |= executor.deactivated_on_failure(config)
            if step.continue_on_error:
                logger.warning(f"Optional step {step.id} failed: {exc.message}")
            else:
                logger.error(f"Step {step.id} failed: {exc.message}")
            return

        execution.step_durations[step.id] = (self.loop.time() - started) * 1000
        execution.step_results[step.id] = output
        execution.set_step_status(step.id, StepStatus.COMPLETED)
        self.inactive |= executor.deactivated_steps(config, output)
        logger.info(f"Step {step.id} completed")

    def _expire(self) -> None:
        self.timed_out = True
        for step_id, status in self.execution.step_statuses.items():
            if status not in (StepStatus.PENDING, StepStatus.RUNNING):
                continue
            exc = WorkflowTimeoutError(
                f"Step '{step_id}' did not finish before the workflow deadline"
            )
            self.execution.add_error(
                step_id, exc.message, error_type=type(exc).__name__
            )
            self.execution.set_step_status(step_id, StepStatus.FAILED)
        logger.warning(
            f"Execution {self.execution.id} of {self.definition.id} exceeded its deadline"
        )

    def finalize(self) -> None:
        execution = self.execution
        fatal = [
            step_id
            for step_id, status in execution.step_statuses.items()
            if status == StepStatus.FAILED and not self.steps[step_id].continue_on_error
        ]
        failed = self.timed_out or bool(fatal)
        execution.status = ExecutionStatus.FAILED if failed else ExecutionStatus.COMPLETED
        execution.end_time = _utcnow()


class WorkflowEngine:
    """Run workflow definitions wave by wave and record the outcome.

    Args:
        registry: Definitions looked up by :meth:`execute_workflow`.
        executors: Executor registry used to dispatch steps. Defaults to the
            built-in executors.
        store: Execution store receiving every finished record. Defaults to an
            in-memory ledger.
        settings: Concurrency and deadline limits.
    """

    def __init__(
        self,
        registry: Optional[DefinitionRegistry] = None,
        executors: Optional[ExecutorRegistry] = None,
        store: Optional[ExecutionStore] = None,
        settings: Optional[EngineSettings] = None,
        config: Optional[WeaveflowConfig] = None,
    ) -> None:
        config = config or WeaveflowConfig()
        self.registry = registry if registry is not None else DefinitionRegistry()
        self.executors = executors or default_registry(config)
        self.store = (
            store if store is not None else InMemoryExecutionStore(config.store.capacity)
        )
        self.settings = settings or config.engine

    def plan(self, definition: WorkflowDefinition) -> List[List[str]]:
        """Validate the graph of ``definition`` and return its waves."""
        waves = plan_waves(definition.steps)
        validate_branch_targets(definition.steps)
        return waves

    async def execute_workflow(
        self,
        workflow_id: str,
        inputs: Optional[Dict[str, Any]] = None,
        *,
        deadline: Optional[float] = None,
        depth: int = 0,
    ) -> WorkflowExecution:
        """Run the registered workflow ``workflow_id``.

        Raises:
            WorkflowNotFoundError: If no definition has that id.
        """
        definition = self.registry.lookup(workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(workflow_id)
        return await self.run_definition(
            definition, inputs, deadline=deadline, depth=depth
        )

    async def run_definition(
        self,
        definition: WorkflowDefinition,
        inputs: Optional[Dict[str, Any]] = None,
        *,
        deadline: Optional[float] = None,
        depth: int = 0,
    ) -> WorkflowExecution:
        """Run ``definition`` and return its terminal execution record.

        Step failures never raise; they are reported through the record's
        ``errors`` and ``step_statuses``.
        """
        execution = WorkflowExecution(
            workflow_id=definition.id,
            inputs=dict(inputs or {}),
            step_statuses={s.id: StepStatus.PENDING for s in definition.steps},
        )
        logger.info(f"Starting execution {execution.id} of workflow {definition.id}")

        try:
            waves = self.plan(definition)
            configs = {s.id: self.executors.validate(s) for s in definition.steps}
        except (GraphError, ConfigurationError) as exc:
            logger.error(f"Workflow {definition.id} rejected: {exc}")
            execution.fail_before_start(exc)
            self._record(execution)
            return execution

        self._check_references(definition)

        timeout = deadline if deadline is not None else self.settings.deadline_seconds
        deadline_at = asyncio.get_running_loop().time() + timeout if timeout else None

        run = _WorkflowRun(self, definition, execution, configs, deadline_at, depth)
        await run.run(waves)
        run.finalize()

        logger.info(
            f"Execution {execution.id} finished with status {execution.status.value}"
        )
        self._record(execution)
        return execution

    def _check_references(self, definition: WorkflowDefinition) -> None:
        steps = {s.id: s for s in definition.steps}
        for step in definition.steps:
            refs = referenced_steps(step.inputs) | referenced_steps(step.config)
            unlisted = refs - _upstream(steps, step.id)
            for ref in sorted(unlisted):
                logger.warning(
                    f"Step {step.id} references '{ref}' which is not upstream of it"
                )

    def _record(self, execution: WorkflowExecution) -> None:
        self.store.record(execution)
