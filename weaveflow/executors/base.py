"""Base executor interface for weaveflow steps."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Mapping, Optional, Set, Type

from pydantic import ValidationError

from ..config import EngineSettings
from ..contracts import Step, StepConfig, StepKind
from ..errors import ConfigurationError
from ..templating import TemplateContext

if TYPE_CHECKING:
    from ..engine import WorkflowEngine
    from .registry import ExecutorRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepContext:
    """Everything an executor may need besides its inputs and config."""

    step: Step
    templates: TemplateContext
    registry: "ExecutorRegistry"
    settings: EngineSettings
    execution_id: str = ""
    engine: Optional["WorkflowEngine"] = None
    deadline: Optional[float] = None
    depth: int = 0


class BaseExecutor(metaclass=abc.ABCMeta):
    """Abstract base for the implementation behind one step kind."""

    kind: ClassVar[StepKind]
    config_model: ClassVar[Type[StepConfig]]

    def validate_config(self, raw: Mapping[str, Any]) -> StepConfig:
        """Parse raw step config into this kind's config model."""
        try:
            return self.config_model.model_validate(dict(raw))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid config for {self.kind.value} step: {exc}"
            ) from exc

    @abc.abstractmethod
    async def execute(
        self, inputs: Dict[str, Any], config: Any, context: StepContext
    ) -> Any:
        """Run the step and return its output.

        Raises:
            ExecutorError: On any kind-specific failure.
        """
        raise NotImplementedError

    def deactivated_steps(self, config: Any, output: Any) -> Set[str]:
        """Step ids that must be skipped because of ``output``."""
        return set()

    def deactivated_on_failure(self, config: Any) -> Set[str]:
        """Step ids that must be skipped when the step itself fails."""
        return set()

    def log_step(self, context: StepContext, message: str) -> None:
        logger.info(f"[{context.execution_id}] step {context.step.id}: {message}")
