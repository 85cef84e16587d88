"""Core records and errors for the song workflow."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStatus(str, Enum):
    PROCESSING = "processing"
    AWAITING_REVIEW = "awaiting_review"
    APPROVED = "approved"
    GENERATING = "generating"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.REJECTED, WorkflowStatus.FAILED}
)

# Allowed forward moves along the success path. ``failed`` is handled separately.
_TRANSITIONS = {
    WorkflowStatus.PROCESSING: {WorkflowStatus.AWAITING_REVIEW},
    WorkflowStatus.AWAITING_REVIEW: {WorkflowStatus.APPROVED, WorkflowStatus.REJECTED},
    WorkflowStatus.APPROVED: {WorkflowStatus.GENERATING},
    WorkflowStatus.GENERATING: {WorkflowStatus.COMPLETED},
}


def can_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    """Return ``True`` if ``current -> target`` is a legal state change."""
    if current.is_terminal:
        return False
    if target is WorkflowStatus.FAILED:
        return True
    return target in _TRANSITIONS.get(current, set())


class SongflowError(Exception):
    """Base class for songflow errors."""


class ConfigError(SongflowError):
    """Raised when required configuration is missing or invalid."""


class UpstreamError(SongflowError):
    """Transport or application error reported by an external service."""

    service = "upstream"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMError(UpstreamError):
    service = "llm"


class SunoError(UpstreamError):
    service = "suno"


class SunoTimeoutError(SunoError):
    """Polling gave up before the job reached a ready status."""


class NotifierError(UpstreamError):
    service = "telegram"


class ParseError(SongflowError):
    """LLM output did not contain the expected JSON object."""


class InvalidTransitionError(SongflowError):
    def __init__(
        self, workflow_id: str, current: WorkflowStatus, target: WorkflowStatus
    ) -> None:
        super().__init__(
            f"workflow {workflow_id} cannot move from {current.value} to {target.value}"
        )
        self.workflow_id = workflow_id
        self.current = current
        self.target = target


class WorkflowNotFoundError(SongflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"workflow {workflow_id} not found")
        self.workflow_id = workflow_id


def _without_nulls(data: Any) -> Any:
    """Drop ``null`` values so the field defaults apply."""
    if isinstance(data, dict):
        return {key: value for key, value in data.items() if value is not None}
    return data


class SongProperties(BaseModel):
    """Generation settings inferred from the brief."""

    style: str = ""
    vocal_type: str = ""
    lyrics_mode: str = ""
    weirdness: float = 0.0
    style_influence: str = ""

    @model_validator(mode="before")
    @classmethod
    def skip_nulls(cls, data: Any) -> Any:
        return _without_nulls(data)

    def tags(self) -> str:
        """Comma-joined style and vocal descriptor sent as MGS ``tags``."""
        if self.vocal_type:
            return f"{self.style}, {self.vocal_type}"
        return self.style


class PersonaInspo(BaseModel):
    """Premium-only persona and inspiration references."""

    persona: str = ""
    inspo: str = ""

    @model_validator(mode="before")
    @classmethod
    def skip_nulls(cls, data: Any) -> Any:
        return _without_nulls(data)

    def is_populated(self) -> bool:
        return bool(self.persona or self.inspo)


class WorkflowRecord(BaseModel):
    """Persisted state of one song workflow."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status: WorkflowStatus = WorkflowStatus.PROCESSING

    task_description: str
    is_premium: bool = False
    audio_file_path: str = ""
    audio_file_name: str = ""

    lyrics: str = ""
    properties: Optional[SongProperties] = None
    lyrics_with_brackets: str = ""
    persona_inspo: Optional[PersonaInspo] = None

    edited_lyrics: str = ""
    edited_properties: Optional[SongProperties] = None
    edited_persona_inspo: Optional[PersonaInspo] = None

    mgs_job_id: str = ""
    mgs_result: str = ""
    mgs_title: str = ""
    audio_url: str = ""
    video_url: str = ""
    error_msg: str = ""

    def transition(self, target: WorkflowStatus) -> None:
        """Move to ``target`` or raise :class:`InvalidTransitionError`."""
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.id, self.status, target)
        self.status = target

    def fail(self, step: str, error: BaseException | str) -> None:
        """Mark the record failed, naming the step that broke."""
        self.transition(WorkflowStatus.FAILED)
        self.error_msg = f"{step} failed: {error}"

    def seed_review_fields(self) -> None:
        """Copy generated values into the user-editable overrides."""
        self.edited_lyrics = self.lyrics_with_brackets
        self.edited_properties = (
            self.properties.model_copy() if self.properties else SongProperties()
        )
        if self.persona_inspo is not None:
            self.edited_persona_inspo = self.persona_inspo.model_copy()
        else:
            self.edited_persona_inspo = PersonaInspo()


class ReviewEdits(BaseModel):
    """Fields a reviewer may change before approving."""

    edited_lyrics: str = ""
    edited_properties: SongProperties = Field(default_factory=SongProperties)
    edited_persona_inspo: Optional[PersonaInspo] = None
