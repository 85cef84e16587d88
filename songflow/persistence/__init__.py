"""Storage backends for song workflow records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import SongflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[SongflowConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    ``database_url`` wins over ``SONGFLOW_DATABASE_URL``, then ``DATABASE_URL``,
    then ``config.database_url``. Only ``sqlite://<path>`` URLs are understood;
    with no URL at all records live in memory and vanish on restart.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("SONGFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryWorkflowRepository()
    elif database_url.startswith("sqlite://"):
        _repository_instance = SQLiteWorkflowRepository(
            database_url[len("sqlite://") :]
        )
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")
    return _repository_instance


__all__ = [
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
