from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_GENERATION_MODEL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_MAX_TOKENS,
    DEFAULT_PARALLEL_CONCURRENCY,
    DEFAULT_STORE_CAPACITY,
    DEFAULT_TEMPERATURE,
)


class EngineSettings(BaseModel):
    """Limits applied to every workflow invocation."""

    parallel_concurrency: int = Field(default=DEFAULT_PARALLEL_CONCURRENCY, ge=1)
    max_concurrent_steps: Optional[int] = Field(default=None, ge=1)
    deadline_seconds: Optional[float] = Field(default=DEFAULT_DEADLINE_SECONDS, gt=0)


class StoreConfig(BaseModel):
    """Execution store settings."""

    capacity: int = Field(default=DEFAULT_STORE_CAPACITY, ge=1)


class HttpConfig(BaseModel):
    """Defaults for the external-call executor."""

    timeout: float = DEFAULT_HTTP_TIMEOUT
    max_attempts: int = Field(default=1, ge=1)


class GenerationConfig(BaseModel):
    """Defaults for the generative-text-call executor."""

    model: str = DEFAULT_GENERATION_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE


class WeaveflowConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineSettings = EngineSettings()
    store: StoreConfig = StoreConfig()
    http: HttpConfig = HttpConfig()
    generation: GenerationConfig = GenerationConfig()
    definitions_path: Optional[str] = None
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> WeaveflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to WEAVEFLOW_CONFIG env
            variable or 'weaveflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("WEAVEFLOW_CONFIG", "weaveflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = WeaveflowConfig(**data)
    else:
        config = WeaveflowConfig()

    env_db_url = os.getenv("WEAVEFLOW_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_definitions = os.getenv("WEAVEFLOW_DEFINITIONS")
    if env_definitions:
        config.definitions_path = env_definitions
    return config
