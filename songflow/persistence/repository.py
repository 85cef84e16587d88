"""Repository abstraction for workflow record persistence."""

from __future__ import annotations

from typing import Protocol

from ..contracts import WorkflowRecord, WorkflowStatus


class WorkflowRepository(Protocol):
    """Protocol for workflow record persistence backends."""

    async def save(self, record: WorkflowRecord) -> None:
        """Insert or replace ``record``, stamping ``updated_at``."""

    async def get(self, workflow_id: str) -> WorkflowRecord | None:
        """Retrieve a record by id."""

    async def list(self) -> list[WorkflowRecord]:
        """Return all records, newest first."""

    async def list_by_status(self, status: WorkflowStatus) -> list[WorkflowRecord]:
        """Return records currently in ``status``."""

    async def transition(
        self, workflow_id: str, expected: WorkflowStatus, target: WorkflowStatus
    ) -> bool:
        """Atomically move a stored record from ``expected`` to ``target``.

        Returns ``False`` when the record is missing or not in ``expected``.
        """

    async def delete(self, workflow_id: str) -> None:
        """Remove a record if present."""
