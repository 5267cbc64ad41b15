from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_EXECUTED_BY, DEFAULT_OPERATION


class EngineConfig(BaseModel):
    """Execution engine settings."""

    default_operation: str = DEFAULT_OPERATION
    default_executed_by: str = DEFAULT_EXECUTED_BY
    # When enabled every agent call is wrapped in the step's timeout_seconds.
    enforce_step_timeouts: bool = False
    max_parallel_steps: Optional[int] = Field(default=None, ge=1)


class MaestroConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def _read_yaml(path: str) -> dict:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def load_config(path: Optional[str] = None) -> MaestroConfig:
    """Build the maestro configuration.

    The YAML file at ``path`` (or ``$MAESTRO_CONFIG``, or ``./config.yaml``)
    may set ``database_url``, ``log_level`` and an ``engine`` section that is
    parsed into :class:`EngineConfig`, for example::

        engine:
          default_operation: execute
          enforce_step_timeouts: true
          max_parallel_steps: 4

    A missing file yields the defaults. ``MAESTRO_DATABASE_URL`` or
    ``DATABASE_URL`` replace whatever database the file names.
    """

    config_path = path or os.getenv("MAESTRO_CONFIG", "config.yaml")
    data = _read_yaml(config_path) if os.path.exists(config_path) else {}
    config = MaestroConfig.model_validate(data)

    env_db_url = os.getenv("MAESTRO_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
