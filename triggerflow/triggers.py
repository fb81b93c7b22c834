"""Event source: turns trigger events into workflow executions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Set

from .conditions import matches
from .constants import DEFAULT_TRIGGER_TOPIC, TRIGGER_TYPES
from .contracts import ExecutionResult, TriggerEvent, WorkflowDefinition, WorkflowFilters
from .engine import WorkflowEngine
from .errors import TriggerflowError, ValidationError
from .persistence import WorkflowRepository
from .transports import BaseTransport

logger = logging.getLogger(__name__)

_SCAN_PAGE = 100


async def publish_trigger(
    transport: BaseTransport,
    trigger_type: str,
    trigger_data: Optional[Mapping[str, Any]] = None,
    actor: Optional[str] = None,
    topic: str = DEFAULT_TRIGGER_TOPIC,
) -> TriggerEvent:
    """Publish a business event for listeners to pick up."""
    if trigger_type not in TRIGGER_TYPES:
        raise ValidationError(
            f"Invalid trigger_type. Must be one of: {', '.join(TRIGGER_TYPES)}"
        )
    event = TriggerEvent(
        trigger_type=trigger_type, trigger_data=dict(trigger_data or {}), actor=actor
    )
    await transport.publish(topic, event)
    return event


class TriggerListener:
    """Consumes trigger events and starts one execution per matching workflow.

    A workflow matches when it is enabled, not archived, listens to the
    event's trigger type and its trigger conditions equal the event data.
    Matching workflows are started highest priority first and run
    concurrently; the listener never waits for one before starting the next.
    """

    def __init__(
        self,
        transport: BaseTransport,
        engine: WorkflowEngine,
        repository: WorkflowRepository,
        topic: str = DEFAULT_TRIGGER_TOPIC,
    ) -> None:
        self._transport = transport
        self._engine = engine
        self._repository = repository
        self._topic = topic
        self._tasks: Set[asyncio.Task] = set()

    async def matching_workflows(self, event: TriggerEvent) -> List[WorkflowDefinition]:
        filters = WorkflowFilters(trigger_type=event.trigger_type, is_enabled=True)
        candidates: List[WorkflowDefinition] = []
        offset = 0
        while True:
            batch = await self._repository.list_workflows(filters, _SCAN_PAGE, offset)
            candidates.extend(batch)
            if len(batch) < _SCAN_PAGE:
                break
            offset += _SCAN_PAGE
        selected = [
            wf
            for wf in candidates
            if wf.status != "archived" and matches(wf.trigger_conditions, event.trigger_data)
        ]
        selected.sort(key=lambda wf: wf.priority, reverse=True)
        return selected

    async def handle_event(self, event: TriggerEvent) -> List[ExecutionResult]:
        """Execute every matching workflow for ``event`` and wait for all of them."""
        workflows = await self.matching_workflows(event)
        if not workflows:
            logger.info(f"No enabled workflow for {event.trigger_type} event {event.event_id}")
            return []

        outcomes = await asyncio.gather(
            *(
                self._engine.execute(wf.id, event.trigger_data, executed_by=event.actor)
                for wf in workflows
            ),
            return_exceptions=True,
        )
        results: List[ExecutionResult] = []
        for wf, outcome in zip(workflows, outcomes):
            if isinstance(outcome, TriggerflowError):
                # e.g. disabled or deleted between lookup and execution
                logger.warning(f"Workflow {wf.id} skipped for event {event.event_id}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Listen on the configured topic until ``lifespan`` expires.

        An event is acknowledged only once every execution it started has
        finished, so events held by a listener that dies are redelivered
        after ``requeue_unacked``. A failed execution still acknowledges
        its event; its record is already sealed.
        """
        await self._transport.requeue_unacked(self._topic)
        logger.info(f"Listening for trigger events on '{self._topic}'")
        async for raw_message, event in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            task = asyncio.create_task(self._consume(raw_message, event))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _consume(self, raw_message: Any, event: TriggerEvent) -> List[ExecutionResult]:
        # A cancelled task leaves its event unacknowledged.
        try:
            results = await self.handle_event(event)
        except Exception:
            await self._transport.ack(raw_message)
            raise
        await self._transport.ack(raw_message)
        return results

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Trigger event handling failed: {task.exception()!r}")
