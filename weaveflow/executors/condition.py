"""Branching steps."""

from __future__ import annotations

from typing import Any, Dict, Set

from ..contracts import ConditionConfig, StepKind
from ..errors import ExecutorError, ExpressionError
from ..expressions import run_expression
from .base import BaseExecutor, StepContext


class ConditionExecutor(BaseExecutor):
    """Pick one of two continuation branches from a boolean expression.

    Steps listed in the branch that was not chosen, and everything depending
    on them, end up ``skipped``.
    """

    kind = StepKind.CONDITION
    config_model = ConditionConfig

    async def execute(
        self, inputs: Dict[str, Any], config: ConditionConfig, context: StepContext
    ) -> Dict[str, Any]:
        variables = {"inputs": dict(inputs), **inputs}
        try:
            result = bool(run_expression(config.expression, variables))
        except ExpressionError as exc:
            raise ExecutorError(f"Condition evaluation failed: {exc}") from exc

        active, inactive = (
            (config.if_true, config.if_false) if result else (config.if_false, config.if_true)
        )
        self.log_step(context, f"condition is {result}; active branch {active}")
        return {
            "result": result,
            "branch": "true" if result else "false",
            "active": list(active),
            "inactive": list(inactive),
        }

    def deactivated_steps(self, config: ConditionConfig, output: Any) -> Set[str]:
        if not isinstance(output, dict) or "result" not in output:
            return set()
        return set(config.if_false if output["result"] else config.if_true)

    def deactivated_on_failure(self, config: ConditionConfig) -> Set[str]:
        return set(config.if_true) | set(config.if_false)
