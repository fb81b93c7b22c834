"""Core data contracts for the triggerflow automation engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from .actions.schemas import Action
from .constants import EXECUTION_COMPLETED, EXECUTION_FAILED, EXECUTION_RUNNING
from .errors import ExecutionSealedError

T = TypeVar("T")

WorkflowStatus = Literal["draft", "active", "archived"]
ExecutionStatus = Literal["running", "completed", "failed"]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class WorkflowDefinition(BaseModel):
    """A named trigger → action rule."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1)
    description: str = ""
    trigger_type: str
    trigger_conditions: Dict[str, Any] = Field(default_factory=dict)
    actions: List[Action] = Field(..., min_length=1)
    status: WorkflowStatus = "draft"
    is_enabled: bool = False
    priority: int = 1
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ActionOutcome(BaseModel):
    """What a handler reports back to the dispatcher."""

    success: bool
    result: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, result: str) -> "ActionOutcome":
        return cls(success=True, result=result)

    @classmethod
    def failed(cls, error: str) -> "ActionOutcome":
        return cls(success=False, error=error)


class ActionResult(BaseModel):
    """Audit entry for one attempted action."""

    action_index: int
    action_type: str
    success: bool
    result: Optional[str] = None
    error: Optional[str] = None


class ExecutionRecord(BaseModel):
    """Audit record of one run of a workflow.

    Created as ``running`` and sealed exactly once to ``completed`` or
    ``failed``; a sealed record never changes again.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    workflow_name: Optional[str] = None
    trigger_type: Optional[str] = None
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = EXECUTION_RUNNING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    result_data: List[ActionResult] = Field(default_factory=list)
    error_message: Optional[str] = None
    test_mode: bool = False
    executed_by: Optional[str] = None

    @property
    def is_sealed(self) -> bool:
        return self.status != EXECUTION_RUNNING

    def seal(
        self,
        success: bool,
        result_data: List[ActionResult],
        completed_at: datetime,
        error_message: Optional[str] = None,
    ) -> None:
        """Move the record to its final state."""
        if self.is_sealed:
            raise ExecutionSealedError(
                f"Execution {self.id} is already {self.status}"
            )
        self.status = EXECUTION_COMPLETED if success else EXECUTION_FAILED
        self.result_data = list(result_data)
        self.completed_at = completed_at
        self.error_message = error_message


class ExecutionResult(BaseModel):
    """Returned by the engine once an execution is sealed."""

    success: bool
    execution_id: str
    results: List[ActionResult] = Field(default_factory=list)
    error: Optional[str] = None


class ExecutionStats(BaseModel):
    total_executions: int = 0
    successful: int = 0
    failed: int = 0
    running: int = 0


class WorkflowSummary(BaseModel):
    """A definition together with its execution counters."""

    workflow: WorkflowDefinition
    execution_stats: ExecutionStats = Field(default_factory=ExecutionStats)


class WorkflowFilters(BaseModel):
    status: Optional[WorkflowStatus] = None
    trigger_type: Optional[str] = None
    is_enabled: Optional[bool] = None
    created_by: Optional[str] = None


class ExecutionFilters(BaseModel):
    workflow_id: Optional[str] = None
    status: Optional[ExecutionStatus] = None
    test_mode: Optional[bool] = None
    started_before: Optional[datetime] = None


class Page(BaseModel, Generic[T]):
    """One page of a listing."""

    items: List[T] = Field(default_factory=list)
    limit: int
    offset: int
    has_more: bool = False


class TriggerEvent(BaseModel):
    """Envelope for a business event delivered over a transport."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trigger_type: str
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    actor: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "TriggerEvent":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)
