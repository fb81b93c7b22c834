"""Storage for workflow definitions and execution records."""

from __future__ import annotations

import logging
import os
from typing import Optional

from ..config import TriggerflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

logger = logging.getLogger(__name__)

_repository_instance: WorkflowRepository | None = None


def _sqlite_path(database_url: str) -> str:
    # sqlite:///relative.db and sqlite:////abs/path.db, as SQLAlchemy spells them
    path = database_url.split("://", 1)[1]
    return path[1:] if path.startswith("/") else path


def _open(database_url: str) -> WorkflowRepository:
    scheme = database_url.split("://", 1)[0].lower()
    if scheme == "sqlite":
        return SQLiteWorkflowRepository(_sqlite_path(database_url))
    if scheme in ("postgres", "postgresql"):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[TriggerflowConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    The first call (or any call given an explicit ``database_url`` or
    ``config``) opens the backend named by the URL, taken from the argument,
    ``TRIGGERFLOW_DATABASE_URL``/``DATABASE_URL`` or the configuration.
    Without a URL definitions live in memory for the life of the process.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("TRIGGERFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if database_url:
        _repository_instance = _open(database_url)
        logger.debug(f"Using {type(_repository_instance).__name__} for {database_url.split('://', 1)[0]}")
    else:
        _repository_instance = InMemoryWorkflowRepository()
    return _repository_instance


__all__ = [
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
