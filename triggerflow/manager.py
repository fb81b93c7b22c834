"""Create, edit and list workflow definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from .actions.validation import describe_validation_error, validate_actions
from .constants import DEFAULT_PAGE_SIZE, TRIGGER_TYPES, WORKFLOW_STATUSES
from .contracts import (
    Page,
    WorkflowDefinition,
    WorkflowFilters,
    WorkflowSummary,
    utcnow,
)
from .errors import NotFoundError, ValidationError
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "trigger_type",
        "trigger_conditions",
        "actions",
        "status",
        "is_enabled",
        "priority",
        "metadata",
    }
)


def trigger_types() -> list[str]:
    """Return the fixed list of trigger types a workflow may listen to."""
    return list(TRIGGER_TYPES)


def _check_fields(data: Mapping[str, Any]) -> None:
    unknown = sorted(set(data) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown workflow fields: {', '.join(unknown)}")


def _check_trigger_type(trigger_type: Any) -> None:
    if trigger_type not in TRIGGER_TYPES:
        raise ValidationError(
            f"Invalid trigger_type. Must be one of: {', '.join(TRIGGER_TYPES)}"
        )


def _check_status(status: Any) -> None:
    if status not in WORKFLOW_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(WORKFLOW_STATUSES)}"
        )


def _build(data: dict[str, Any]) -> WorkflowDefinition:
    try:
        return WorkflowDefinition.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(describe_validation_error(exc)) from exc


def _page_bounds(limit: int, offset: int) -> None:
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    if offset < 0:
        raise ValidationError("offset must not be negative")


def _as_filters(filters: WorkflowFilters | Mapping[str, Any] | None) -> WorkflowFilters:
    if filters is None:
        return WorkflowFilters()
    if isinstance(filters, WorkflowFilters):
        return filters
    try:
        return WorkflowFilters.model_validate(dict(filters))
    except PydanticValidationError as exc:
        raise ValidationError(describe_validation_error(exc)) from exc


class WorkflowManager:
    """Definition surface over a workflow repository.

    Every write is validated in full before the repository is touched, so a
    rejected request leaves no partial state behind.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        clock: Callable[[], datetime] = utcnow,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._default_page_size = default_page_size

    async def get(self, workflow_id: str) -> WorkflowDefinition:
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    async def create(
        self, spec: Mapping[str, Any], actor: Optional[str] = None
    ) -> WorkflowDefinition:
        """Validate ``spec`` and persist it as a new definition.

        Raises:
            ValidationError: if name, trigger type or actions are missing or
                invalid, or ``spec`` carries unknown fields.
        """
        data = dict(spec)
        _check_fields(data)
        name = data.get("name")
        if isinstance(name, str):
            name = name.strip()
        trigger_type = data.get("trigger_type")
        actions = data.get("actions") or []
        if not name or not trigger_type or not actions:
            raise ValidationError("Name, trigger_type, and actions are required")
        _check_trigger_type(trigger_type)
        _check_status(data.get("status") or "draft")

        now = self._clock()
        workflow = _build(
            {
                "id": str(uuid.uuid4()),
                "name": name,
                "description": data.get("description") or "",
                "trigger_type": trigger_type,
                "trigger_conditions": data.get("trigger_conditions") or {},
                "actions": validate_actions(actions),
                "status": data.get("status") or "draft",
                "is_enabled": data.get("is_enabled", False),
                "priority": data.get("priority", 1),
                "metadata": data.get("metadata") or {},
                "created_by": actor,
                "updated_by": actor,
                "created_at": now,
                "updated_at": now,
            }
        )
        await self._repository.create_workflow(workflow)
        logger.info(f"Workflow {workflow.id} '{workflow.name}' created by {actor}")
        return workflow

    async def update(
        self, workflow_id: str, patch: Mapping[str, Any], actor: Optional[str] = None
    ) -> WorkflowDefinition:
        """Apply ``patch`` to an existing definition.

        Raises:
            NotFoundError: if ``workflow_id`` is unknown.
            ValidationError: if any patched field is invalid.
        """
        changes = dict(patch)
        _check_fields(changes)
        existing = await self.get(workflow_id)

        if "name" in changes:
            name = changes["name"]
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("Name must not be empty")
            changes["name"] = name.strip()
        if "trigger_type" in changes:
            _check_trigger_type(changes["trigger_type"])
        if "status" in changes:
            _check_status(changes["status"])
        if "actions" in changes:
            if not changes["actions"]:
                raise ValidationError("A workflow needs at least one action")
            changes["actions"] = validate_actions(changes["actions"])

        merged = existing.model_dump()
        merged.update(changes)
        merged["updated_by"] = actor
        merged["updated_at"] = self._clock()
        workflow = _build(merged)
        await self._repository.save_workflow(workflow)
        logger.info(
            f"Workflow {workflow_id} updated by {actor}: {', '.join(sorted(changes)) or 'no fields'}"
        )
        return workflow

    async def toggle_enabled(
        self, workflow_id: str, actor: Optional[str] = None
    ) -> WorkflowDefinition:
        """Flip ``is_enabled`` and return the updated definition."""
        workflow = await self.get(workflow_id)
        workflow.is_enabled = not workflow.is_enabled
        workflow.updated_by = actor
        workflow.updated_at = self._clock()
        await self._repository.save_workflow(workflow)
        state = "enabled" if workflow.is_enabled else "disabled"
        logger.info(f"Workflow {workflow_id} {state} by {actor}")
        return workflow

    async def delete(self, workflow_id: str) -> None:
        """Delete a definition together with its execution records."""
        if not await self._repository.delete_workflow(workflow_id):
            raise NotFoundError(f"Workflow {workflow_id} not found")
        logger.info(f"Workflow {workflow_id} deleted")

    async def duplicate(
        self, workflow_id: str, actor: Optional[str] = None
    ) -> WorkflowDefinition:
        """Copy a definition as a new, disabled draft."""
        source = await self.get(workflow_id)
        now = self._clock()
        copy = source.model_copy(
            deep=True,
            update={
                "id": str(uuid.uuid4()),
                "name": f"{source.name} (Copy)",
                "status": "draft",
                "is_enabled": False,
                "created_by": actor,
                "updated_by": actor,
                "created_at": now,
                "updated_at": now,
            },
        )
        await self._repository.create_workflow(copy)
        logger.info(f"Workflow {workflow_id} duplicated as {copy.id} by {actor}")
        return copy

    async def list(
        self,
        filters: WorkflowFilters | Mapping[str, Any] | None = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[WorkflowDefinition]:
        """Return one page of definitions, newest first."""
        limit = limit or self._default_page_size
        _page_bounds(limit, offset)
        rows = await self._repository.list_workflows(
            _as_filters(filters), limit + 1, offset
        )
        return Page[WorkflowDefinition](
            items=rows[:limit], limit=limit, offset=offset, has_more=len(rows) > limit
        )

    async def list_with_stats(
        self,
        filters: WorkflowFilters | Mapping[str, Any] | None = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[WorkflowSummary]:
        """Like :meth:`list`, with per-workflow execution counters."""
        page = await self.list(filters, limit, offset)
        summaries = [
            WorkflowSummary(
                workflow=wf,
                execution_stats=await self._repository.execution_stats(wf.id),
            )
            for wf in page.items
        ]
        return Page[WorkflowSummary](
            items=summaries, limit=page.limit, offset=page.offset, has_more=page.has_more
        )

    @staticmethod
    def trigger_types() -> list[str]:
        return trigger_types()
