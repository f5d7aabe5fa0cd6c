"""Pure data-shaping steps."""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import StepKind, TransformConfig
from ..errors import ExecutorError, ExpressionError
from ..expressions import run_expression
from .base import BaseExecutor, StepContext


class TransformExecutor(BaseExecutor):
    """Evaluate a sandboxed expression over the step's resolved inputs.

    Each input is bound as a variable of the same name and the whole input
    map is also available as ``inputs``. The expression must produce an
    object, e.g. ``return {total: sum(pluck(videos, "views"))}``.
    """

    kind = StepKind.TRANSFORM
    config_model = TransformConfig

    async def execute(
        self, inputs: Dict[str, Any], config: TransformConfig, context: StepContext
    ) -> Dict[str, Any]:
        self.log_step(context, "evaluating transform")
        variables = {"inputs": dict(inputs), **inputs}
        try:
            result = run_expression(config.expression, variables)
        except ExpressionError as exc:
            raise ExecutorError(f"Transform execution failed: {exc}") from exc

        if not isinstance(result, dict):
            raise ExecutorError(
                f"Transform must return an object, got {type(result).__name__}"
            )
        return result
