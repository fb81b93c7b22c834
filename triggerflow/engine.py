"""Execution engine for triggerflow workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from .actions.dispatch import ActionDispatcher
from .actions.schemas import BaseAction
from .actions.validation import describe_validation_error
from .collaborators import Collaborators
from .config import TriggerflowConfig, load_config
from .constants import DEFAULT_PAGE_SIZE, EXECUTION_RUNNING
from .contracts import (
    ActionResult,
    ExecutionFilters,
    ExecutionRecord,
    ExecutionResult,
    Page,
    utcnow,
)
from .errors import NotFoundError, ValidationError, WorkflowDisabledError
from .persistence import WorkflowRepository, get_repository

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs a workflow's actions in order and keeps an audit record.

    Each call to :meth:`execute` is independent: the definition is reloaded,
    a fresh execution record is written, and nothing is shared with other
    executions besides the repository. Delays are awaited with
    ``asyncio.sleep`` so only the current execution is suspended.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        dispatcher: Optional[ActionDispatcher] = None,
        execution_timeout: Optional[float] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher or ActionDispatcher(sleep=sleep, clock=clock)
        self._execution_timeout = execution_timeout
        self._sleep = sleep
        self._clock = clock
        self._default_page_size = default_page_size

    @classmethod
    def from_config(
        cls,
        config: Optional[TriggerflowConfig] = None,
        collaborators: Optional[Collaborators] = None,
        repository: Optional[WorkflowRepository] = None,
    ) -> "WorkflowEngine":
        """Build an engine wired from configuration."""
        config = config or load_config()
        return cls(
            repository or get_repository(config=config),
            ActionDispatcher(collaborators),
            execution_timeout=config.engine.execution_timeout,
            default_page_size=config.engine.default_page_size,
        )

    @property
    def dispatcher(self) -> ActionDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Execution surface
    async def execute(
        self,
        workflow_id: str,
        trigger_data: Optional[Mapping[str, Any]] = None,
        test_mode: bool = False,
        executed_by: Optional[str] = None,
    ) -> ExecutionResult:
        """Run a workflow against ``trigger_data``.

        Raises:
            NotFoundError: the workflow does not exist.
            WorkflowDisabledError: the workflow is disabled and ``test_mode``
                is off.

        In both cases no execution record is written. Action failures never
        raise; they are recorded and decide whether the run continues.
        """
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        if not workflow.is_enabled and not test_mode:
            raise WorkflowDisabledError(f"Workflow {workflow_id} is not enabled")

        data: Dict[str, Any] = dict(trigger_data or {})
        record = ExecutionRecord(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            trigger_type=workflow.trigger_type,
            trigger_data=data,
            status=EXECUTION_RUNNING,
            started_at=self._clock(),
            test_mode=test_mode,
            executed_by=executed_by,
        )
        await self._repository.create_execution(record)
        mode = " (test mode)" if test_mode else ""
        logger.info(f"Execution {record.id} of workflow {workflow.id} started{mode}")

        results: List[ActionResult] = []
        try:
            await self._run_bounded(workflow.actions, data, test_mode, results)
        except Exception as exc:
            logger.exception(f"Execution {record.id} aborted by an unexpected error")
            await self._seal(record, results, fault=f"Unexpected error: {exc}")
            raise

        return await self._seal(record, results)

    async def test(
        self,
        workflow_id: str,
        trigger_data: Optional[Mapping[str, Any]] = None,
        executed_by: Optional[str] = None,
    ) -> ExecutionResult:
        """Execute in test mode: handlers only describe their effects."""
        return await self.execute(
            workflow_id, trigger_data, test_mode=True, executed_by=executed_by
        )

    async def _run_bounded(
        self,
        actions: Sequence[BaseAction],
        trigger_data: Dict[str, Any],
        test_mode: bool,
        results: List[ActionResult],
    ) -> None:
        if self._execution_timeout is None:
            await self._run_actions(actions, trigger_data, test_mode, results)
            return
        try:
            await asyncio.wait_for(
                self._run_actions(actions, trigger_data, test_mode, results),
                timeout=self._execution_timeout,
            )
        except asyncio.TimeoutError:
            index = len(results)
            if index < len(actions):
                results.append(
                    ActionResult(
                        action_index=index,
                        action_type=actions[index].type,
                        success=False,
                        error=f"Execution timed out after {self._execution_timeout:g}s",
                    )
                )

    async def _run_actions(
        self,
        actions: Sequence[BaseAction],
        trigger_data: Dict[str, Any],
        test_mode: bool,
        results: List[ActionResult],
    ) -> None:
        for index, action in enumerate(actions):
            if action.delay_seconds > 0:
                logger.debug(f"Delaying action {index} by {action.delay_seconds}s")
                await self._sleep(action.delay_seconds)

            outcome = await self._dispatcher.dispatch(action, trigger_data, test_mode)
            results.append(
                ActionResult(
                    action_index=index,
                    action_type=action.type,
                    success=outcome.success,
                    result=outcome.result,
                    error=outcome.error,
                )
            )
            if not outcome.success and not action.continue_on_error:
                logger.warning(
                    f"Action {index} ({action.type}) failed; stopping: {outcome.error}"
                )
                break

    async def _seal(
        self,
        record: ExecutionRecord,
        results: List[ActionResult],
        fault: Optional[str] = None,
    ) -> ExecutionResult:
        first_failure = next((r for r in results if not r.success), None)
        success = fault is None and first_failure is None
        error = first_failure.error if first_failure is not None else fault
        record.seal(
            success,
            results,
            completed_at=self._clock(),
            error_message=error,
        )
        await self._repository.seal_execution(record)
        logger.info(f"Execution {record.id} {record.status}")
        return ExecutionResult(
            success=success, execution_id=record.id, results=results, error=error
        )

    # ------------------------------------------------------------------
    # Query surface
    async def get_execution(self, execution_id: str) -> ExecutionRecord:
        record = await self._repository.get_execution(execution_id)
        if record is None:
            raise NotFoundError(f"Execution {execution_id} not found")
        return record

    async def list_executions(
        self,
        filters: ExecutionFilters | Mapping[str, Any] | None = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[ExecutionRecord]:
        """Return one page of execution records, newest first."""
        limit = limit or self._default_page_size
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be at least 1 and offset not negative")
        if filters is None:
            filters = ExecutionFilters()
        elif not isinstance(filters, ExecutionFilters):
            try:
                filters = ExecutionFilters.model_validate(dict(filters))
            except PydanticValidationError as exc:
                raise ValidationError(describe_validation_error(exc)) from exc
        rows = await self._repository.list_executions(filters, limit + 1, offset)
        return Page[ExecutionRecord](
            items=rows[:limit], limit=limit, offset=offset, has_more=len(rows) > limit
        )

    async def stale_executions(
        self, older_than: timedelta, limit: Optional[int] = None
    ) -> List[ExecutionRecord]:
        """Records still ``running`` after ``older_than``.

        These are reported only; a stuck record is never resumed or rewritten.
        """
        cutoff = self._clock() - older_than
        return await self._repository.list_executions(
            ExecutionFilters(status=EXECUTION_RUNNING, started_before=cutoff),
            limit or self._default_page_size,
            0,
        )
