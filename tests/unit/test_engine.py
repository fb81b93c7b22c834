"""Execution engine tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from triggerflow.actions.dispatch import ActionDispatcher
from triggerflow.actions.handlers import HANDLERS
from triggerflow.collaborators import (
    Collaborators,
    InMemoryMessagingProvider,
    InMemoryRecordStore,
)
from triggerflow.contracts import ExecutionFilters, ExecutionRecord, WorkflowDefinition, utcnow
from triggerflow.engine import WorkflowEngine
from triggerflow.errors import ExecutionSealedError, NotFoundError, WorkflowDisabledError
from triggerflow.persistence import InMemoryWorkflowRepository

LEAD_WORKFLOW_ACTIONS = [
    {"type": "create_notification", "parameters": {"title": "x"}},
    {"type": "wait", "parameters": {"duration": 1}},
    {"type": "update_lead_status", "parameters": {"new_status": "contacted"}},
]


class Harness:
    def __init__(self, execution_timeout=None, real_sleep=False, records=None):
        self.repo = InMemoryWorkflowRepository()
        self.records = records or InMemoryRecordStore(
            tables={"leads": {"L1": {"id": "L1", "status": "new"}}}
        )
        self.messaging = InMemoryMessagingProvider()
        self.sleeps = []
        sleep = asyncio.sleep if real_sleep else self._fake_sleep
        self.engine = WorkflowEngine(
            self.repo,
            ActionDispatcher(
                Collaborators(records=self.records, messaging=self.messaging), sleep=sleep
            ),
            execution_timeout=execution_timeout,
            sleep=sleep,
        )

    async def _fake_sleep(self, seconds):
        self.sleeps.append(seconds)

    async def add_workflow(self, actions, is_enabled=True, **fields):
        wf = WorkflowDefinition(
            name=fields.pop("name", "Lead welcome"),
            trigger_type=fields.pop("trigger_type", "lead_created"),
            actions=actions,
            is_enabled=is_enabled,
            **fields,
        )
        await self.repo.create_workflow(wf)
        return wf

    async def all_executions(self):
        return await self.repo.list_executions(ExecutionFilters(), 100, 0)


@pytest.mark.asyncio
async def test_lead_created_scenario_completes():
    h = Harness()
    wf = await h.add_workflow(LEAD_WORKFLOW_ACTIONS)

    result = await h.engine.execute(wf.id, {"lead_id": "L1"}, executed_by="u1")

    assert result.success
    assert result.error is None
    assert [r.action_type for r in result.results] == [
        "create_notification",
        "wait",
        "update_lead_status",
    ]
    assert all(r.success for r in result.results)
    assert h.sleeps == [1]
    assert h.records.tables["leads"]["L1"]["status"] == "contacted"

    record = await h.engine.get_execution(result.execution_id)
    assert record.status == "completed"
    assert record.completed_at is not None
    assert record.executed_by == "u1"
    assert record.workflow_name == "Lead welcome"
    assert record.trigger_type == "lead_created"
    assert len(record.result_data) == 3


@pytest.mark.asyncio
async def test_disabled_workflow_is_rejected_without_record():
    h = Harness()
    wf = await h.add_workflow(LEAD_WORKFLOW_ACTIONS, is_enabled=False)

    with pytest.raises(WorkflowDisabledError):
        await h.engine.execute(wf.id, {"lead_id": "L1"})

    assert await h.all_executions() == []
    assert h.records.calls == []


@pytest.mark.asyncio
async def test_unknown_workflow_raises_not_found_without_record():
    h = Harness()
    with pytest.raises(NotFoundError):
        await h.engine.execute("missing", {"lead_id": "L1"})
    assert await h.all_executions() == []


@pytest.mark.asyncio
async def test_test_mode_runs_disabled_workflow_without_side_effects():
    h = Harness()
    wf = await h.add_workflow(
        LEAD_WORKFLOW_ACTIONS + [{"type": "send_email"}, {"type": "assign_counselor"}],
        is_enabled=False,
    )

    result = await h.engine.test(wf.id, {"lead_id": "L1"})

    assert result.success
    assert len(result.results) == 5
    assert h.records.calls == []
    assert h.messaging.outbox == []
    assert h.sleeps == []
    record = await h.engine.get_execution(result.execution_id)
    assert record.test_mode is True


@pytest.mark.asyncio
async def test_failure_stops_remaining_actions():
    h = Harness()
    wf = await h.add_workflow(
        [
            {"type": "create_note"},
            {"type": "update_lead_status", "parameters": {"new_status": "lost"}},
            {"type": "create_notification"},
        ]
    )

    result = await h.engine.execute(wf.id, {})

    assert not result.success
    assert len(result.results) == 2
    assert result.results[1].error == "No lead_id in trigger data"
    assert result.error == "No lead_id in trigger data"
    assert [table for _, table, _ in h.records.calls] == ["notes"]

    record = await h.engine.get_execution(result.execution_id)
    assert record.status == "failed"
    assert record.error_message == "No lead_id in trigger data"


@pytest.mark.asyncio
async def test_continue_on_error_attempts_every_action():
    h = Harness()
    wf = await h.add_workflow(
        [
            {"type": "update_lead_status", "continue_on_error": True, "parameters": {"new_status": "x"}},
            {"type": "update_student_status", "continue_on_error": True, "parameters": {"new_status": "y"}},
            {"type": "create_note", "continue_on_error": True},
        ]
    )

    result = await h.engine.execute(wf.id, {})

    assert len(result.results) == 3
    assert [r.success for r in result.results] == [False, False, True]
    assert not result.success
    assert result.error == "No lead_id in trigger data"


class UnreachableRecordStore(InMemoryRecordStore):
    async def insert(self, table, row):
        raise ConnectionError("record store unreachable")


@pytest.mark.asyncio
async def test_store_outage_is_recorded_and_execution_continues():
    h = Harness(records=UnreachableRecordStore())
    wf = await h.add_workflow(
        [
            {"type": "create_note", "continue_on_error": True},
            {"type": "wait", "parameters": {"duration": 0}},
        ]
    )

    result = await h.engine.execute(wf.id, {"lead_id": "L1"})

    assert [r.success for r in result.results] == [False, True]
    assert result.results[0].error == "Record store error: record store unreachable"
    assert not result.success
    [record] = await h.all_executions()
    assert record.status == "failed"
    assert len(record.result_data) == 2
    assert record.error_message == "Record store error: record store unreachable"


@pytest.mark.asyncio
async def test_delay_is_awaited_before_action():
    h = Harness()
    wf = await h.add_workflow(
        [{"type": "create_note", "delay_seconds": 30}, {"type": "create_note"}]
    )
    await h.engine.execute(wf.id, {"lead_id": "L1"})
    assert h.sleeps == [30]


@pytest.mark.asyncio
async def test_definition_is_reloaded_on_every_execute():
    h = Harness()
    wf = await h.add_workflow(LEAD_WORKFLOW_ACTIONS)
    await h.engine.execute(wf.id, {"lead_id": "L1"})

    wf.is_enabled = False
    await h.repo.save_workflow(wf)

    with pytest.raises(WorkflowDisabledError):
        await h.engine.execute(wf.id, {"lead_id": "L1"})


@pytest.mark.asyncio
async def test_concurrent_executions_do_not_block_each_other():
    h = Harness(real_sleep=True)
    wf = await h.add_workflow([{"type": "wait", "parameters": {"duration": 0.2}}])

    loop = asyncio.get_running_loop()
    started = loop.time()
    results = await asyncio.gather(
        h.engine.execute(wf.id, {}), h.engine.execute(wf.id, {})
    )
    elapsed = loop.time() - started

    assert all(r.success for r in results)
    assert results[0].execution_id != results[1].execution_id
    assert elapsed < 0.35


@pytest.mark.asyncio
async def test_execution_timeout_fails_in_flight_action():
    h = Harness(execution_timeout=0.05, real_sleep=True)
    wf = await h.add_workflow(
        [{"type": "create_note"}, {"type": "wait", "parameters": {"duration": 5}}]
    )

    result = await h.engine.execute(wf.id, {"lead_id": "L1"})

    assert not result.success
    assert len(result.results) == 2
    assert result.results[0].success
    assert result.results[1].action_type == "wait"
    assert result.results[1].error == "Execution timed out after 0.05s"
    record = await h.engine.get_execution(result.execution_id)
    assert record.status == "failed"


@pytest.mark.asyncio
async def test_programming_fault_seals_record_and_propagates(monkeypatch):
    async def broken(params, ctx):
        raise RuntimeError("boom")

    monkeypatch.setitem(HANDLERS, "create_note", broken)
    h = Harness()
    wf = await h.add_workflow([{"type": "create_notification"}, {"type": "create_note"}])

    with pytest.raises(RuntimeError):
        await h.engine.execute(wf.id, {})

    [record] = await h.all_executions()
    assert record.status == "failed"
    assert record.error_message == "Unexpected error: boom"
    assert len(record.result_data) == 1


def test_record_is_sealed_only_once():
    record = ExecutionRecord(workflow_id="wf")
    record.seal(True, [], completed_at=utcnow())
    assert record.status == "completed"

    with pytest.raises(ExecutionSealedError):
        record.seal(False, [], completed_at=utcnow(), error_message="late")
    assert record.status == "completed"


@pytest.mark.asyncio
async def test_repository_refuses_second_seal():
    h = Harness()
    wf = await h.add_workflow([{"type": "create_note"}])
    result = await h.engine.execute(wf.id, {})

    stored = await h.repo.get_execution(result.execution_id)
    stored.status = "running"
    stored.seal(False, [], completed_at=utcnow(), error_message="again")
    with pytest.raises(ExecutionSealedError):
        await h.repo.seal_execution(stored)


@pytest.mark.asyncio
async def test_list_executions_filters_and_pages():
    h = Harness()
    wf = await h.add_workflow([{"type": "create_note"}])
    other = await h.add_workflow([{"type": "create_note"}], name="Other")
    for _ in range(3):
        await h.engine.execute(wf.id, {})
    await h.engine.test(other.id, {})

    page = await h.engine.list_executions({"workflow_id": wf.id}, limit=2)
    assert len(page.items) == 2
    assert page.has_more
    assert all(r.workflow_id == wf.id for r in page.items)

    rest = await h.engine.list_executions({"workflow_id": wf.id}, limit=2, offset=2)
    assert len(rest.items) == 1
    assert not rest.has_more

    tests_only = await h.engine.list_executions({"test_mode": True})
    assert [r.workflow_id for r in tests_only.items] == [other.id]


@pytest.mark.asyncio
async def test_get_execution_not_found():
    with pytest.raises(NotFoundError):
        await Harness().engine.get_execution("missing")


@pytest.mark.asyncio
async def test_stale_executions_reports_old_running_records():
    h = Harness()
    old = ExecutionRecord(
        workflow_id="wf",
        started_at=datetime.now(timezone.utc) - timedelta(hours=2),
    )
    fresh = ExecutionRecord(workflow_id="wf")
    await h.repo.create_execution(old)
    await h.repo.create_execution(fresh)

    stale = await h.engine.stale_executions(timedelta(hours=1))

    assert [r.id for r in stale] == [old.id]
    assert (await h.repo.get_execution(old.id)).status == "running"
