"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

from ..contracts import WorkflowRecord, WorkflowStatus, utcnow
from .repository import WorkflowRepository


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow records as JSON documents in SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = asyncio.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflows_status ON workflows (status)"
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _compare_and_set(
        self, workflow_id: str, expected: WorkflowStatus, target: WorkflowStatus
    ) -> bool:
        row = self._fetchone(
            "SELECT document FROM workflows WHERE id = ? AND status = ?",
            workflow_id,
            expected.value,
        )
        if row is None:
            return False
        record = self._to_record(row)
        record.status = target
        record.updated_at = max(utcnow(), record.created_at)
        cur = self._conn.cursor()
        cur.execute(
            """
            UPDATE workflows SET status = ?, updated_at = ?, document = ?
            WHERE id = ? AND status = ?
            """,
            (
                target.value,
                record.updated_at.isoformat(),
                record.model_dump_json(),
                workflow_id,
                expected.value,
            ),
        )
        self._conn.commit()
        return cur.rowcount == 1

    @staticmethod
    def _to_record(row: sqlite3.Row) -> WorkflowRecord:
        return WorkflowRecord.model_validate_json(row["document"])

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, record: WorkflowRecord) -> None:
        async with self._lock:
            record.updated_at = max(utcnow(), record.created_at)
            await asyncio.to_thread(
                self._execute,
                """
                INSERT INTO workflows (id, status, created_at, updated_at, document)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status = excluded.status,
                    updated_at = excluded.updated_at,
                    document = excluded.document
                """,
                record.id,
                record.status.value,
                record.created_at.isoformat(),
                record.updated_at.isoformat(),
                record.model_dump_json(),
            )

    async def get(self, workflow_id: str) -> WorkflowRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT document FROM workflows WHERE id = ?", workflow_id
        )
        return self._to_record(row) if row else None

    async def list(self) -> list[WorkflowRecord]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT document FROM workflows ORDER BY created_at DESC"
        )
        return [self._to_record(r) for r in rows]

    async def list_by_status(self, status: WorkflowStatus) -> list[WorkflowRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT document FROM workflows WHERE status = ? ORDER BY created_at DESC",
            status.value,
        )
        return [self._to_record(r) for r in rows]

    async def transition(
        self, workflow_id: str, expected: WorkflowStatus, target: WorkflowStatus
    ) -> bool:
        async with self._lock:
            return await asyncio.to_thread(
                self._compare_and_set, workflow_id, expected, target
            )

    async def delete(self, workflow_id: str) -> None:
        async with self._lock:
            await asyncio.to_thread(
                self._execute, "DELETE FROM workflows WHERE id = ?", workflow_id
            )
