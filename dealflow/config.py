from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_BACKOFF_BASE_MS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MAX_STEP_RETRIES,
    DEFAULT_RULES_MAX_AGE_SECONDS,
    DEFAULT_SNAPSHOT_MAX_AGE_SECONDS,
    DEFAULT_STEP_TIMEOUT_SECONDS,
    DEFAULT_WORKFLOW_RETENTION_MINUTES,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis store backend."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class StoreConfig(BaseModel):
    """Store backend settings for rules, workflows and sessions."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class LLMConfig(BaseModel):
    """Generative-language provider settings."""

    model: str = "anthropic:claude-sonnet-4-0"
    temperature: float = 0.1
    max_tokens: int = 2000
    timeout_seconds: float = 60.0


class AgentSettings(BaseModel):
    """Per-request behaviour of the agent orchestrator."""

    real_time_context: bool = True
    snapshot_max_age_seconds: float = DEFAULT_SNAPSHOT_MAX_AGE_SECONDS
    snapshot_timeout_seconds: float = 30.0
    history_limit: int = DEFAULT_HISTORY_LIMIT
    workflow_orchestration: bool = True
    thinking_enabled: bool = True
    requests_per_minute: int = 30


class WorkflowSettings(BaseModel):
    """Retry and timeout bounds for workflow steps."""

    step_timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_STEP_RETRIES
    backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS
    retention_minutes: int = DEFAULT_WORKFLOW_RETENTION_MINUTES


class RulesSettings(BaseModel):
    max_age_seconds: float = DEFAULT_RULES_MAX_AGE_SECONDS


class DealflowConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = StoreConfig()
    llm: LLMConfig = LLMConfig()
    agent: AgentSettings = AgentSettings()
    workflow: WorkflowSettings = WorkflowSettings()
    rules: RulesSettings = RulesSettings()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> DealflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to DEALFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("DEALFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = DealflowConfig(**data)
    else:
        config = DealflowConfig()

    env_store = os.getenv("DEALFLOW_STORE")
    if env_store:
        config.store.backend = env_store.lower()
    env_model = os.getenv("DEALFLOW_MODEL")
    if env_model:
        config.llm.model = env_model
    env_level = os.getenv("DEALFLOW_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()
    return config
