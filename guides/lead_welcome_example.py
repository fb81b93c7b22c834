"""Example: define a lead welcome workflow, dry-run it, then execute it."""

import asyncio

from triggerflow import Collaborators, WorkflowEngine, WorkflowManager
from triggerflow.actions.dispatch import ActionDispatcher
from triggerflow.collaborators import InMemoryRecordStore
from triggerflow.persistence import InMemoryWorkflowRepository


async def main():
    repository = InMemoryWorkflowRepository()
    records = InMemoryRecordStore(
        tables={"leads": {"L1": {"id": "L1", "status": "new"}}},
        counselors=["c1", "c2"],
    )
    manager = WorkflowManager(repository)
    engine = WorkflowEngine(repository, ActionDispatcher(Collaborators(records=records)))

    workflow = await manager.create(
        {
            "name": "Welcome new leads",
            "trigger_type": "lead_created",
            "actions": [
                {"type": "send_email", "parameters": {"subject": "Welcome!"}},
                {"type": "assign_counselor"},
                {"type": "update_lead_status", "parameters": {"new_status": "contacted"}},
                {"type": "schedule_follow_up", "parameters": {"days_from_now": 2}},
            ],
        },
        actor="admin",
    )
    print(f"Created workflow {workflow.id}")

    trigger_data = {"lead_id": "L1", "email": "lead@example.com"}

    # Test mode describes every action without touching the record store
    preview = await engine.test(workflow.id, trigger_data)
    for item in preview.results:
        print(f"  [{item.action_index}] {item.action_type}: {item.result}")

    await manager.toggle_enabled(workflow.id, actor="admin")
    result = await engine.execute(workflow.id, trigger_data, executed_by="admin")
    print(f"Execution {result.execution_id} success={result.success}")
    print(f"Lead now: {records.tables['leads']['L1']}")


if __name__ == "__main__":
    asyncio.run(main())
