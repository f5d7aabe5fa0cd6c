"""Fan-out steps that run a fixed set of sub-steps concurrently."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict

from ..contracts import ParallelConfig, Step, StepKind
from ..errors import ExecutorError, WeaveflowError
from ..templating import resolve_inputs
from .base import BaseExecutor, StepContext

logger = logging.getLogger(__name__)


class ParallelExecutor(BaseExecutor):
    """Run every sub-step under a shared concurrency cap.

    The output maps each sub-step id to that sub-step's output. When any
    sub-step fails the whole step fails unless ``allow_partial`` is set, in
    which case failures are reported under ``errors``.
    """

    kind = StepKind.PARALLEL
    config_model = ParallelConfig

    async def execute(
        self, inputs: Dict[str, Any], config: ParallelConfig, context: StepContext
    ) -> Dict[str, Any]:
        limit = context.settings.parallel_concurrency
        if config.max_concurrency:
            limit = min(limit, config.max_concurrency)
        semaphore = asyncio.Semaphore(limit)
        self.log_step(context, f"running {len(config.steps)} sub-steps (limit {limit})")

        async def run_branch(sub: Step) -> Any:
            async with semaphore:
                branch_inputs = {**inputs, **resolve_inputs(sub.inputs, context.templates)}
                sub_context = replace(context, step=sub)
                return await context.registry.dispatch(
                    sub.kind, branch_inputs, sub.config, sub_context
                )

        outcomes = await asyncio.gather(
            *(run_branch(sub) for sub in config.steps), return_exceptions=True
        )

        results: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for sub, outcome in zip(config.steps, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, WeaveflowError):
                errors[sub.id] = outcome.message
            elif isinstance(outcome, Exception):
                errors[sub.id] = str(outcome)
            else:
                results[sub.id] = outcome

        if errors and not config.allow_partial:
            failed = ", ".join(errors)
            raise ExecutorError(
                f"Parallel sub-steps failed: {failed}",
                details={"partial_results": results, "branch_errors": errors},
            )
        if errors:
            logger.warning(f"Parallel step {context.step.id} partial failure: {errors}")
            results["errors"] = errors
        return results
