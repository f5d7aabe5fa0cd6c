"""Generative text steps backed by pydantic-ai agents."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model

from ..config import GenerationConfig
from ..contracts import GenerativeTextConfig, StepKind
from ..errors import ExecutorError
from ..templating import stringify
from .base import BaseExecutor, StepContext

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\{\{\s*([A-Za-z_][\w.-]*)\s*\}\}")


def render_prompt(prompt: str, variables: Dict[str, Any]) -> str:
    """Fill ``{{name}}`` placeholders from ``variables``.

    Unknown placeholders are left in place.
    """

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return stringify(variables[name])
        return match.group(0)

    return _VARIABLE.sub(_sub, prompt)


class GenerativeTextExecutor(BaseExecutor):
    """Ask a language model for text using a rendered prompt.

    The prompt is taken from ``config.prompt`` or, failing that, from the
    ``prompt`` input. The remaining inputs fill ``{{name}}`` placeholders.
    """

    kind = StepKind.GENERATIVE_TEXT
    config_model = GenerativeTextConfig

    def __init__(
        self,
        defaults: Optional[GenerationConfig] = None,
        model: Optional[Model | str] = None,
    ) -> None:
        self.defaults = defaults or GenerationConfig()
        self.model = model

    def _agent(self, config: GenerativeTextConfig) -> Agent:
        model = self.model or config.model or self.defaults.model
        if config.system:
            return Agent(model, system_prompt=config.system)
        return Agent(model)

    async def execute(
        self,
        inputs: Dict[str, Any],
        config: GenerativeTextConfig,
        context: StepContext,
    ) -> Dict[str, Any]:
        template = config.prompt or inputs.get("prompt")
        if not template:
            raise ExecutorError("Generative text step requires a prompt")
        variables = {k: v for k, v in inputs.items() if k != "prompt"}
        prompt = render_prompt(stringify(template), variables)

        settings = {
            "max_tokens": config.max_tokens or self.defaults.max_tokens,
            "temperature": (
                config.temperature
                if config.temperature is not None
                else self.defaults.temperature
            ),
        }
        model_name = config.model or self.defaults.model
        self.log_step(context, f"generating text with {model_name}")
        try:
            result = await self._agent(config).run(prompt, model_settings=settings)
        except AgentRunError as exc:
            raise ExecutorError(f"Text generation failed: {exc}") from exc

        content = result.output
        if not isinstance(content, str) or not content.strip():
            raise ExecutorError("No content generated")
        content = content.strip()

        key = context.step.output_key or "text"
        if config.response_format == "json":
            try:
                return {key: json.loads(content)}
            except json.JSONDecodeError as exc:
                raise ExecutorError(
                    f"Generated content is not valid JSON: {exc}",
                    details={"content": content},
                ) from exc
        return {key: content}
