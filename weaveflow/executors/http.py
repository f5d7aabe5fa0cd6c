"""External HTTP call steps."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..constants import DEFAULT_HTTP_TIMEOUT
from ..contracts import ExternalCallConfig, StepKind
from ..errors import ExecutorError
from ..templating import resolve_value
from ..utils import retry
from .base import BaseExecutor, StepContext

logger = logging.getLogger(__name__)


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text
    return response.text


class ExternalCallExecutor(BaseExecutor):
    """Perform an HTTP request described by the step config.

    ``url``, ``headers``, ``params`` and ``body`` may contain ``$input.*`` and
    ``$<step>.*`` references. Any non-2xx response is a step failure.
    """

    kind = StepKind.EXTERNAL_CALL
    config_model = ExternalCallConfig

    def __init__(
        self,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        max_attempts: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    async def execute(
        self, inputs: Dict[str, Any], config: ExternalCallConfig, context: StepContext
    ) -> Dict[str, Any]:
        templates = context.templates
        url = resolve_value(config.url, templates)
        headers = {k: str(v) for k, v in resolve_value(config.headers, templates).items()}
        params = resolve_value(config.params, templates)
        if config.inputs_as_params:
            params = {**inputs, **params}
        params = {k: v for k, v in params.items() if v is not None}
        body = resolve_value(config.body, templates)
        method = config.method.upper()

        attempts = config.max_attempts or self.max_attempts
        timeout = config.timeout or self.timeout
        response: Optional[httpx.Response] = None

        async with self._client(timeout) as client:
            for attempt in range(1, attempts + 1):
                self.log_step(context, f"{method} {url} (attempt {attempt}/{attempts})")
                try:
                    response = await client.request(
                        method,
                        url,
                        headers=headers,
                        params=params or None,
                        json=body if body is not None else None,
                    )
                except httpx.HTTPError as exc:
                    if attempt < attempts:
                        logger.warning(f"Request to {url} failed: {exc}; retrying")
                        await retry.schedule_retry(attempt)
                        continue
                    raise ExecutorError(
                        f"Request to {url} failed: {exc}",
                        details={"url": url, "method": method},
                    ) from exc

                retryable = retry.is_retryable_status(response.status_code)
                if retryable and attempt < attempts:
                    logger.warning(
                        f"Request to {url} returned {response.status_code}; retrying"
                    )
                    await retry.schedule_retry(attempt)
                    continue
                break

        assert response is not None
        payload = _decode_body(response)
        if not response.is_success:
            raise ExecutorError(
                f"HTTP {response.status_code} from {method} {url}",
                status_code=response.status_code,
                details={"url": url, "method": method, "body": payload},
            )

        output: Dict[str, Any] = {
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": payload,
        }
        if context.step.output_key:
            output[context.step.output_key] = payload
        return output
