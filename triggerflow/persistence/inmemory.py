"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from ..constants import EXECUTION_COMPLETED, EXECUTION_FAILED, EXECUTION_RUNNING
from ..contracts import (
    ExecutionFilters,
    ExecutionRecord,
    ExecutionStats,
    WorkflowDefinition,
    WorkflowFilters,
)
from ..errors import ExecutionSealedError, NotFoundError
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store definitions and execution records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Stored objects are copies, so
    callers cannot mutate persisted state by accident.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._executions: Dict[str, ExecutionRecord] = {}

    # ------------------------------------------------------------------
    # Definitions
    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        if workflow.id not in self._workflows:
            raise NotFoundError(f"Workflow {workflow.id} not found")
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def delete_workflow(self, workflow_id: str) -> bool:
        if self._workflows.pop(workflow_id, None) is None:
            return False
        self._executions = {
            key: record
            for key, record in self._executions.items()
            if record.workflow_id != workflow_id
        }
        return True

    async def list_workflows(
        self, filters: WorkflowFilters, limit: int, offset: int
    ) -> list[WorkflowDefinition]:
        matching = [
            wf
            for wf in self._workflows.values()
            if (filters.status is None or wf.status == filters.status)
            and (filters.trigger_type is None or wf.trigger_type == filters.trigger_type)
            and (filters.is_enabled is None or wf.is_enabled == filters.is_enabled)
            and (filters.created_by is None or wf.created_by == filters.created_by)
        ]
        matching.sort(key=lambda wf: wf.created_at, reverse=True)
        return [wf.model_copy(deep=True) for wf in matching[offset : offset + limit]]

    # ------------------------------------------------------------------
    # Executions
    async def create_execution(self, record: ExecutionRecord) -> None:
        self._executions[record.id] = record.model_copy(deep=True)

    async def seal_execution(self, record: ExecutionRecord) -> None:
        stored = self._executions.get(record.id)
        if stored is None:
            raise NotFoundError(f"Execution {record.id} not found")
        if stored.status != EXECUTION_RUNNING:
            raise ExecutionSealedError(f"Execution {record.id} is already {stored.status}")
        self._executions[record.id] = record.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def list_executions(
        self, filters: ExecutionFilters, limit: int, offset: int
    ) -> list[ExecutionRecord]:
        matching = [
            rec
            for rec in self._executions.values()
            if (filters.workflow_id is None or rec.workflow_id == filters.workflow_id)
            and (filters.status is None or rec.status == filters.status)
            and (filters.test_mode is None or rec.test_mode == filters.test_mode)
            and (filters.started_before is None or rec.started_at < filters.started_before)
        ]
        matching.sort(key=lambda rec: rec.started_at, reverse=True)
        return [rec.model_copy(deep=True) for rec in matching[offset : offset + limit]]

    async def executions_since(
        self,
        since: datetime,
        workflow_id: str | None = None,
        trigger_type: str | None = None,
    ) -> list[ExecutionRecord]:
        return [
            rec.model_copy(deep=True)
            for rec in self._executions.values()
            if rec.started_at >= since
            and (workflow_id is None or rec.workflow_id == workflow_id)
            and (trigger_type is None or rec.trigger_type == trigger_type)
        ]

    async def execution_stats(self, workflow_id: str) -> ExecutionStats:
        statuses = [
            rec.status for rec in self._executions.values() if rec.workflow_id == workflow_id
        ]
        return ExecutionStats(
            total_executions=len(statuses),
            successful=statuses.count(EXECUTION_COMPLETED),
            failed=statuses.count(EXECUTION_FAILED),
            running=statuses.count(EXECUTION_RUNNING),
        )
