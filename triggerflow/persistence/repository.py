"""Repository abstraction for workflow definitions and execution records."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..contracts import (
    ExecutionFilters,
    ExecutionRecord,
    ExecutionStats,
    WorkflowDefinition,
    WorkflowFilters,
)


class WorkflowRepository(Protocol):
    """Protocol for persistence backends.

    Execution records are keyed by their own id, so concurrent executions
    never write to the same row.
    """

    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        """Persist a new definition."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a definition by id."""

    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        """Overwrite an existing definition."""

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a definition and its execution records.

        Returns ``False`` when nothing was deleted.
        """

    async def list_workflows(
        self, filters: WorkflowFilters, limit: int, offset: int
    ) -> list[WorkflowDefinition]:
        """Return matching definitions, newest first."""

    async def create_execution(self, record: ExecutionRecord) -> None:
        """Persist a freshly started execution record."""

    async def seal_execution(self, record: ExecutionRecord) -> None:
        """Persist the final state of a record that is still running in storage.

        Raises:
            ExecutionSealedError: if the stored record is already sealed.
            NotFoundError: if the record does not exist.
        """

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution record by id."""

    async def list_executions(
        self, filters: ExecutionFilters, limit: int, offset: int
    ) -> list[ExecutionRecord]:
        """Return matching execution records, newest first."""

    async def executions_since(
        self,
        since: datetime,
        workflow_id: str | None = None,
        trigger_type: str | None = None,
    ) -> list[ExecutionRecord]:
        """Return every record started at or after ``since``."""

    async def execution_stats(self, workflow_id: str) -> ExecutionStats:
        """Count a workflow's executions by status."""
