"""Storage backends for workflow definitions and their executions."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MaestroConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore

SQLITE_PREFIX = "sqlite://"
POSTGRES_PREFIXES = ("postgres://", "postgresql://")

_repository_instance: WorkflowRepository | None = None


def _resolve_database_url(
    database_url: Optional[str], config: Optional[MaestroConfig]
) -> Optional[str]:
    if database_url:
        return database_url
    env_url = os.getenv("MAESTRO_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return (config or load_config()).database_url


def _open_repository(database_url: Optional[str]) -> WorkflowRepository:
    if not database_url:
        return InMemoryWorkflowRepository()
    if database_url.startswith(SQLITE_PREFIX):
        return SQLiteWorkflowRepository(database_url[len(SQLITE_PREFIX):])
    if database_url.startswith(POSTGRES_PREFIXES):
        if PostgresWorkflowRepository is None:
            raise RuntimeError(
                "Postgres support not available; install maestro[postgres]"
            )
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[MaestroConfig] = None
) -> WorkflowRepository:
    """Return the repository the service and CLI share.

    Without arguments the first repository opened in this process is reused,
    so every CLI command sees the same store. Passing ``database_url`` or a
    ``MaestroConfig`` opens a fresh backend: ``sqlite://<path>``,
    ``postgres(ql)://...`` or, when no URL is configured anywhere, an
    in-memory store that keeps definitions and executions for the life of
    the process.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    _repository_instance = _open_repository(_resolve_database_url(database_url, config))
    return _repository_instance


__all__ = [
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
