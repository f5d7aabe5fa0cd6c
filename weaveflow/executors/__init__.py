"""Step executors and the registry that dispatches to them."""

from .base import BaseExecutor, StepContext
from .condition import ConditionExecutor
from .generative import GenerativeTextExecutor
from .http import ExternalCallExecutor
from .parallel import ParallelExecutor
from .registry import ExecutorRegistry, default_registry
from .subworkflow import SubWorkflowExecutor
from .transform import TransformExecutor

__all__ = [
    "BaseExecutor",
    "StepContext",
    "ExecutorRegistry",
    "default_registry",
    "ExternalCallExecutor",
    "GenerativeTextExecutor",
    "TransformExecutor",
    "ParallelExecutor",
    "ConditionExecutor",
    "SubWorkflowExecutor",
]
