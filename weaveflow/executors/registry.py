"""Mapping from step kind to executor implementation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from ..config import WeaveflowConfig
from ..contracts import ParallelConfig, Step, StepConfig, StepKind
from ..errors import ConfigurationError, ExecutorError, WeaveflowError
from .base import BaseExecutor, StepContext
from .condition import ConditionExecutor
from .generative import GenerativeTextExecutor
from .http import ExternalCallExecutor
from .parallel import ParallelExecutor
from .subworkflow import SubWorkflowExecutor
from .transform import TransformExecutor

logger = logging.getLogger(__name__)


class ExecutorRegistry:
    """Explicit, per-engine table of executors keyed by :class:`StepKind`."""

    def __init__(self, executors: Iterable[BaseExecutor] = ()) -> None:
        self._executors: Dict[StepKind, BaseExecutor] = {}
        for executor in executors:
            self.register(executor)

    def register(self, executor: BaseExecutor) -> None:
        """Add ``executor``, replacing any executor of the same kind."""
        if executor.kind in self._executors:
            logger.debug(f"Replacing executor for kind {executor.kind.value}")
        self._executors[executor.kind] = executor

    def __contains__(self, kind: object) -> bool:
        return kind in self._executors

    @property
    def kinds(self) -> list[StepKind]:
        return list(self._executors)

    def get(self, kind: StepKind | str) -> BaseExecutor:
        try:
            kind = StepKind(kind)
        except ValueError:
            raise ConfigurationError(f"Unknown step kind: {kind}") from None
        executor = self._executors.get(kind)
        if executor is None:
            raise ConfigurationError(f"No executor registered for step kind: {kind.value}")
        return executor

    def validate(self, step: Step) -> StepConfig:
        """Check that ``step`` can be dispatched before anything runs.

        Raises:
            ConfigurationError: If no executor handles the step's kind or its
                config does not match the kind's config model.
        """
        executor = self.get(step.kind)
        try:
            config = executor.validate_config(step.config)
        except ConfigurationError as exc:
            raise ConfigurationError(f"Step '{step.id}': {exc}") from exc
        if isinstance(config, ParallelConfig):
            for sub in config.steps:
                self.validate(sub)
        return config

    async def dispatch(
        self,
        kind: StepKind | str,
        inputs: Dict[str, Any],
        config: Mapping[str, Any] | StepConfig,
        context: StepContext,
    ) -> Any:
        """Run the executor for ``kind`` and return its output.

        Raises:
            ExecutorError: For executor failures, including unexpected
                exceptions raised by the implementation.
            TemplateResolutionError: When an executor resolves templates of
                its own (e.g. external-call config) and one is missing.
        """
        executor = self.get(kind)
        try:
            if isinstance(config, executor.config_model):
                parsed = config
            else:
                parsed = executor.validate_config(config)
            return await executor.execute(inputs, parsed, context)
        except ConfigurationError as exc:
            raise ExecutorError(str(exc)) from exc
        except WeaveflowError:
            raise
        except Exception as exc:
            raise ExecutorError(
                f"{executor.kind.value} executor failed: {exc}",
                details={"exception": type(exc).__name__},
            ) from exc


def default_registry(
    config: Optional[WeaveflowConfig] = None, **overrides: Any
) -> ExecutorRegistry:
    """Build a registry holding every built-in executor.

    Args:
        config: Optional :class:`~weaveflow.config.WeaveflowConfig` supplying
            HTTP and generation defaults.
        overrides: ``transport`` (an ``httpx`` transport) and ``model`` (a
            pydantic-ai model) are passed to the respective executors.
    """
    config = config or WeaveflowConfig()
    return ExecutorRegistry(
        [
            ExternalCallExecutor(
                timeout=config.http.timeout,
                max_attempts=config.http.max_attempts,
                transport=overrides.get("transport"),
            ),
            GenerativeTextExecutor(
                defaults=config.generation, model=overrides.get("model")
            ),
            TransformExecutor(),
            ParallelExecutor(),
            ConditionExecutor(),
            SubWorkflowExecutor(),
        ]
    )
