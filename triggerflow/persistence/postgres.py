"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import asyncpg

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


def _where(clauses: list[str]) -> str:
    return f"WHERE {' AND '.join(clauses)}" if clauses else ""


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist definitions and execution records using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                trigger_type TEXT NOT NULL,
                status TEXT NOT NULL,
                is_enabled BOOLEAN NOT NULL,
                created_by TEXT,
                created_at TIMESTAMPTZ NOT NULL,
                document JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows (id) ON DELETE CASCADE,
                trigger_type TEXT,
                status TEXT NOT NULL,
                test_mode BOOLEAN NOT NULL,
                started_at TIMESTAMPTZ NOT NULL,
                document JSONB NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflows (id, trigger_type, status, is_enabled, created_by, created_at, document)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                workflow.id,
                workflow.trigger_type,
                workflow.status,
                workflow.is_enabled,
                workflow.created_by,
                workflow.created_at,
                workflow.model_dump_json(),
            )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT document FROM workflows WHERE id = $1", workflow_id
            )
        finally:
            await conn.close()
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["document"])

    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                UPDATE workflows
                SET trigger_type = $1, status = $2, is_enabled = $3, created_by = $4, document = $5
                WHERE id = $6
                """,
                workflow.trigger_type,
                workflow.status,
                workflow.is_enabled,
                workflow.created_by,
                workflow.model_dump_json(),
                workflow.id,
            )
        finally:
            await conn.close()
        if result.endswith(" 0"):
            raise NotFoundError(f"Workflow {workflow.id} not found")

    async def delete_workflow(self, workflow_id: str) -> bool:
        conn = await self._connect()
        try:
            result = await conn.execute("DELETE FROM workflows WHERE id = $1", workflow_id)
        finally:
            await conn.close()
        return not result.endswith(" 0")

    async def list_workflows(
        self, filters: WorkflowFilters, limit: int, offset: int
    ) -> list[WorkflowDefinition]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("status", filters.status),
            ("trigger_type", filters.trigger_type),
            ("is_enabled", filters.is_enabled),
            ("created_by", filters.created_by),
        ):
            if value is not None:
                params.append(value)
                clauses.append(f"{column} = ${len(params)}")
        params.extend([limit, offset])
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT document FROM workflows {_where(clauses)} "
                f"ORDER BY created_at DESC LIMIT ${len(params) - 1} OFFSET ${len(params)}",
                *params,
            )
        finally:
            await conn.close()
        return [WorkflowDefinition.model_validate_json(r["document"]) for r in rows]

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_executions (id, workflow_id, trigger_type, status, test_mode, started_at, document)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                record.id,
                record.workflow_id,
                record.trigger_type,
                record.status,
                record.test_mode,
                record.started_at,
                record.model_dump_json(),
            )
        finally:
            await conn.close()

    async def seal_execution(self, record: ExecutionRecord) -> None:
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                UPDATE workflow_executions SET status = $1, document = $2
                WHERE id = $3 AND status = $4
                """,
                record.status,
                record.model_dump_json(),
                record.id,
                EXECUTION_RUNNING,
            )
            if not result.endswith(" 0"):
                return
            current = await conn.fetchval(
                "SELECT status FROM workflow_executions WHERE id = $1", record.id
            )
        finally:
            await conn.close()
        if current is None:
            raise NotFoundError(f"Execution {record.id} not found")
        raise ExecutionSealedError(f"Execution {record.id} is already {current}")

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT document FROM workflow_executions WHERE id = $1", execution_id
            )
        finally:
            await conn.close()
        if not row:
            return None
        return ExecutionRecord.model_validate_json(row["document"])

    async def list_executions(
        self, filters: ExecutionFilters, limit: int, offset: int
    ) -> list[ExecutionRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("workflow_id", filters.workflow_id),
            ("status", filters.status),
            ("test_mode", filters.test_mode),
        ):
            if value is not None:
                params.append(value)
                clauses.append(f"{column} = ${len(params)}")
        if filters.started_before is not None:
            params.append(filters.started_before)
            clauses.append(f"started_at < ${len(params)}")
        params.extend([limit, offset])
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT document FROM workflow_executions {_where(clauses)} "
                f"ORDER BY started_at DESC LIMIT ${len(params) - 1} OFFSET ${len(params)}",
                *params,
            )
        finally:
            await conn.close()
        return [ExecutionRecord.model_validate_json(r["document"]) for r in rows]

    async def executions_since(
        self,
        since: datetime,
        workflow_id: str | None = None,
        trigger_type: str | None = None,
    ) -> list[ExecutionRecord]:
        clauses = ["started_at >= $1"]
        params: list[Any] = [since]
        if workflow_id is not None:
            params.append(workflow_id)
            clauses.append(f"workflow_id = ${len(params)}")
        if trigger_type is not None:
            params.append(trigger_type)
            clauses.append(f"trigger_type = ${len(params)}")
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT document FROM workflow_executions {_where(clauses)}", *params
            )
        finally:
            await conn.close()
        return [ExecutionRecord.model_validate_json(r["document"]) for r in rows]

    async def execution_stats(self, workflow_id: str) -> ExecutionStats:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT status, COUNT(*) AS n FROM workflow_executions WHERE workflow_id = $1 GROUP BY status",
                workflow_id,
            )
        finally:
            await conn.close()
        counts = {r["status"]: r["n"] for r in rows}
        return ExecutionStats(
            total_executions=sum(counts.values()),
            successful=counts.get("completed", 0),
            failed=counts.get("failed", 0),
            running=counts.get("running", 0),
        )
