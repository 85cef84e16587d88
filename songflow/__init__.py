"""Songflow: human-in-the-loop song generation workflows."""

__version__ = "0.1.0"

from .config import SongflowConfig, load_config  # noqa: E402
from .contracts import (  # noqa: E402
    PersonaInspo,
    ReviewEdits,
    SongProperties,
    WorkflowRecord,
    WorkflowStatus,
)
from .engine import WorkflowEngine  # noqa: E402
from .persistence import get_repository  # noqa: E402

__all__ = [
    "PersonaInspo",
    "ReviewEdits",
    "SongProperties",
    "SongflowConfig",
    "WorkflowEngine",
    "WorkflowRecord",
    "WorkflowStatus",
    "get_repository",
    "load_config",
]
