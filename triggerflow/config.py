"""YAML-backed settings for the repository, transport and engine."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_PAGE_SIZE, DEFAULT_TRIGGER_TOPIC

DEFAULT_CONFIG_FILE = "config.yaml"


class RedisConfig(BaseModel):
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    block_seconds: int = Field(default=1, ge=1)


class TransportConfig(BaseModel):
    """Where trigger events are published and consumed."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    topic: str = DEFAULT_TRIGGER_TOPIC
    redis: RedisConfig = RedisConfig()


class EngineConfig(BaseModel):
    """Execution engine settings.

    ``execution_timeout`` bounds a whole execution in seconds; ``None``
    leaves executions unbounded.
    """

    execution_timeout: Optional[float] = Field(default=None, gt=0)
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)


class TriggerflowConfig(BaseModel):
    transport: TransportConfig = TransportConfig()
    engine: EngineConfig = EngineConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level


def load_config(path: Optional[str] = None) -> TriggerflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TRIGGERFLOW_CONFIG env
            variable or 'config.yaml' in the current directory. A missing file
            yields the defaults.

    ``TRIGGERFLOW_DATABASE_URL`` (or ``DATABASE_URL``) and
    ``TRIGGERFLOW_LOG_LEVEL`` override the file.
    """

    config_path = Path(path or os.getenv("TRIGGERFLOW_CONFIG", DEFAULT_CONFIG_FILE))
    data = {}
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text()) or {}

    env_db_url = os.getenv("TRIGGERFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        data["database_url"] = env_db_url
    env_level = os.getenv("TRIGGERFLOW_LOG_LEVEL")
    if env_level:
        data["log_level"] = env_level
    return TriggerflowConfig(**data)
