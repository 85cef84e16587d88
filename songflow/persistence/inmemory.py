"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
from typing import Dict

from ..contracts import WorkflowRecord, WorkflowStatus, utcnow
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow records in local memory.

    The default backend. Records are kept by reference, so the engine's
    in-place mutations are visible to readers once saved. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: WorkflowRecord) -> None:
        async with self._lock:
            record.updated_at = max(utcnow(), record.created_at)
            self._workflows[record.id] = record

    async def get(self, workflow_id: str) -> WorkflowRecord | None:
        async with self._lock:
            return self._workflows.get(workflow_id)

    async def list(self) -> list[WorkflowRecord]:
        async with self._lock:
            records = list(self._workflows.values())
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def list_by_status(self, status: WorkflowStatus) -> list[WorkflowRecord]:
        return [r for r in await self.list() if r.status == status]

    async def transition(
        self, workflow_id: str, expected: WorkflowStatus, target: WorkflowStatus
    ) -> bool:
        async with self._lock:
            record = self._workflows.get(workflow_id)
            if record is None or record.status is not expected:
                return False
            record.status = target
            record.updated_at = max(utcnow(), record.created_at)
            return True

    async def delete(self, workflow_id: str) -> None:
        async with self._lock:
            self._workflows.pop(workflow_id, None)
