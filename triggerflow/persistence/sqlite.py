"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..constants import EXECUTION_RUNNING
from ..contracts import (
    ExecutionFilters,
    ExecutionRecord,
    ExecutionStats,
    WorkflowDefinition,
    WorkflowFilters,
)
from ..errors import ExecutionSealedError, NotFoundError
from .repository import WorkflowRepository


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so text comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist definitions and execution records using SQLite.

    Filterable fields live in their own columns; the full model is kept as
    a JSON document.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                trigger_type TEXT NOT NULL,
                status TEXT NOT NULL,
                is_enabled INTEGER NOT NULL,
                created_by TEXT,
                created_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                trigger_type TEXT,
                status TEXT NOT NULL,
                test_mode INTEGER NOT NULL,
                started_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow ON workflow_executions (workflow_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_started ON workflow_executions (started_at)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _delete_workflow(self, workflow_id: str) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("DELETE FROM workflow_executions WHERE workflow_id = ?", (workflow_id,))
            cur.execute("DELETE FROM workflows WHERE id = ?", (workflow_id,))
            deleted = cur.rowcount
            self._conn.commit()
            return deleted

    def _seal(self, record: ExecutionRecord) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "UPDATE workflow_executions SET status = ?, document = ? WHERE id = ? AND status = ?",
                (record.status, record.model_dump_json(), record.id, EXECUTION_RUNNING),
            )
            if cur.rowcount == 1:
                self._conn.commit()
                return
            row = cur.execute(
                "SELECT status FROM workflow_executions WHERE id = ?", (record.id,)
            ).fetchone()
            self._conn.rollback()
        if row is None:
            raise NotFoundError(f"Execution {record.id} not found")
        raise ExecutionSealedError(f"Execution {record.id} is already {row['status']}")

    # ------------------------------------------------------------------
    # Definitions
    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflows (id, trigger_type, status, is_enabled, created_by, created_at, document)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            workflow.id,
            workflow.trigger_type,
            workflow.status,
            int(workflow.is_enabled),
            workflow.created_by,
            _ts(workflow.created_at),
            workflow.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT document FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["document"])

    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflows
            SET trigger_type = ?, status = ?, is_enabled = ?, created_by = ?, document = ?
            WHERE id = ?
            """,
            workflow.trigger_type,
            workflow.status,
            int(workflow.is_enabled),
            workflow.created_by,
            workflow.model_dump_json(),
            workflow.id,
        )
        if updated == 0:
            raise NotFoundError(f"Workflow {workflow.id} not found")

    async def delete_workflow(self, workflow_id: str) -> bool:
        deleted = await asyncio.to_thread(self._delete_workflow, workflow_id)
        return deleted > 0

    async def list_workflows(
        self, filters: WorkflowFilters, limit: int, offset: int
    ) -> list[WorkflowDefinition]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters.status is not None:
            clauses.append("status = ?")
            params.append(filters.status)
        if filters.trigger_type is not None:
            clauses.append("trigger_type = ?")
            params.append(filters.trigger_type)
        if filters.is_enabled is not None:
            clauses.append("is_enabled = ?")
            params.append(int(filters.is_enabled))
        if filters.created_by is not None:
            clauses.append("created_by = ?")
            params.append(filters.created_by)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT document FROM workflows {where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            *params,
            limit,
            offset,
        )
        return [WorkflowDefinition.model_validate_json(r["document"]) for r in rows]

    # ------------------------------------------------------------------
    # Executions
    async def create_execution(self, record: ExecutionRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_executions (id, workflow_id, trigger_type, status, test_mode, started_at, document)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            record.id,
            record.workflow_id,
            record.trigger_type,
            record.status,
            int(record.test_mode),
            _ts(record.started_at),
            record.model_dump_json(),
        )

    async def seal_execution(self, record: ExecutionRecord) -> None:
        await asyncio.to_thread(self._seal, record)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT document FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        if not row:
            return None
        return ExecutionRecord.model_validate_json(row["document"])

    async def list_executions(
        self, filters: ExecutionFilters, limit: int, offset: int
    ) -> list[ExecutionRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters.workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(filters.workflow_id)
        if filters.status is not None:
            clauses.append("status = ?")
            params.append(filters.status)
        if filters.test_mode is not None:
            clauses.append("test_mode = ?")
            params.append(int(filters.test_mode))
        if filters.started_before is not None:
            clauses.append("started_at < ?")
            params.append(_ts(filters.started_before))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT document FROM workflow_executions {where} ORDER BY started_at DESC LIMIT ? OFFSET ?",
            *params,
            limit,
            offset,
        )
        return [ExecutionRecord.model_validate_json(r["document"]) for r in rows]

    async def executions_since(
        self,
        since: datetime,
        workflow_id: str | None = None,
        trigger_type: str | None = None,
    ) -> list[ExecutionRecord]:
        query = "SELECT document FROM workflow_executions WHERE started_at >= ?"
        params: list[Any] = [_ts(since)]
        if workflow_id is not None:
            query += " AND workflow_id = ?"
            params.append(workflow_id)
        if trigger_type is not None:
            query += " AND trigger_type = ?"
            params.append(trigger_type)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [ExecutionRecord.model_validate_json(r["document"]) for r in rows]

    async def execution_stats(self, workflow_id: str) -> ExecutionStats:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT status, COUNT(*) AS n FROM workflow_executions WHERE workflow_id = ? GROUP BY status",
            workflow_id,
        )
        counts = {r["status"]: r["n"] for r in rows}
        return ExecutionStats(
            total_executions=sum(counts.values()),
            successful=counts.get("completed", 0),
            failed=counts.get("failed", 0),
            running=counts.get("running", 0),
        )
