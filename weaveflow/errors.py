"""Exception taxonomy for weaveflow workflows."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class WeaveflowError(Exception):
    """Base class for all weaveflow errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})


class GraphError(WeaveflowError):
    """Structural problem in a workflow definition.

    Raised before any step runs for duplicate ids, dangling dependencies,
    reserved ids and dependency cycles. ``step_ids`` names the offenders.
    """

    def __init__(self, message: str, step_ids: Iterable[str] = ()):
        self.step_ids: List[str] = list(step_ids)
        super().__init__(message, {"step_ids": self.step_ids})


class ConfigurationError(WeaveflowError):
    """Unknown step kind or invalid executor configuration."""


class TemplateResolutionError(WeaveflowError):
    """A ``$input.*`` or ``$<step>.*`` reference could not be resolved."""

    def __init__(self, template: str, segment: str, reason: str):
        self.template = template
        self.segment = segment
        self.reason = reason
        super().__init__(
            f"Cannot resolve '{template}': {reason} (at '{segment}')",
            {"template": template, "segment": segment},
        )


class ExecutorError(WeaveflowError):
    """Failure reported by a step executor."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        merged = dict(details or {})
        if status_code is not None:
            merged.setdefault("status_code", status_code)
        super().__init__(message, merged)


class ExpressionError(WeaveflowError):
    """Syntax or evaluation error inside the sandboxed expression language."""


class WorkflowTimeoutError(WeaveflowError):
    """The invocation deadline expired before the step settled."""


class WorkflowNotFoundError(WeaveflowError, LookupError):
    """No definition is registered under the requested workflow id."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


__all__ = [
    "WeaveflowError",
    "GraphError",
    "ConfigurationError",
    "TemplateResolutionError",
    "ExecutorError",
    "ExpressionError",
    "WorkflowTimeoutError",
    "WorkflowNotFoundError",
]
