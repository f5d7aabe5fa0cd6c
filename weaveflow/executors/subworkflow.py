"""Steps that run another registered workflow."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from ..constants import MAX_WORKFLOW_DEPTH
from ..contracts import ExecutionStatus, StepKind, SubWorkflowConfig
from ..errors import ExecutorError
from .base import BaseExecutor, StepContext


class SubWorkflowExecutor(BaseExecutor):
    """Run ``config.workflow_id`` with this step's inputs as its inputs.

    The child shares the parent's remaining deadline and its execution
    record is stored like any other.
    """

    kind = StepKind.WORKFLOW
    config_model = SubWorkflowConfig

    async def execute(
        self, inputs: Dict[str, Any], config: SubWorkflowConfig, context: StepContext
    ) -> Dict[str, Any]:
        if context.engine is None:
            raise ExecutorError("Sub-workflow steps require an engine")
        if context.depth >= MAX_WORKFLOW_DEPTH:
            raise ExecutorError(
                f"Sub-workflow nesting exceeds {MAX_WORKFLOW_DEPTH} levels"
            )

        remaining = None
        if context.deadline is not None:
            remaining = context.deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                raise ExecutorError("No time left to start sub-workflow")

        self.log_step(context, f"starting sub-workflow {config.workflow_id}")
        child = await context.engine.execute_workflow(
            config.workflow_id, inputs, deadline=remaining, depth=context.depth + 1
        )
        if child.status != ExecutionStatus.COMPLETED:
            raise ExecutorError(
                f"Sub-workflow {config.workflow_id} failed",
                details={
                    "execution_id": child.id,
                    "errors": [e.message for e in child.errors],
                },
            )
        return {
            context.step.output_key or "result": child.step_results,
            "execution_id": child.id,
        }
