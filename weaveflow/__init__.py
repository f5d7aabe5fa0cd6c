"""weaveflow: Declarative workflow orchestration with concurrent step waves."""

from .config import WeaveflowConfig, load_config
from .contracts import (
    ExecutionStats,
    ExecutionStatus,
    Step,
    StepKind,
    StepStatus,
    WorkflowDefinition,
    WorkflowExecution,
)
from .engine import WorkflowEngine
from .executors import BaseExecutor, ExecutorRegistry, default_registry
from .graph import plan_waves
from .persistence import get_store
from .registry import DefinitionRegistry
from .templating import TemplateContext, resolve

__version__ = "0.1.0"
__all__ = [
    "BaseExecutor",
    "DefinitionRegistry",
    "ExecutionStats",
    "ExecutionStatus",
    "ExecutorRegistry",
    "Step",
    "StepKind",
    "StepStatus",
    "TemplateContext",
    "WeaveflowConfig",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowExecution",
    "default_registry",
    "get_store",
    "load_config",
    "plan_waves",
    "resolve",
]
