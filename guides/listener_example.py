"""Example showing a trigger listener and an event publisher over Redis.

Run the listener in one shell and emit events from another:

    python guides/listener_example.py listen
    python guides/listener_example.py emit
"""

import asyncio
import sys

from triggerflow import (
    TriggerListener,
    WorkflowEngine,
    get_repository,
    get_transport,
    publish_trigger,
)


async def listen():
    repository = get_repository()
    listener = TriggerListener(
        get_transport("redis"), WorkflowEngine.from_config(repository=repository), repository
    )
    await listener.start()


async def emit():
    transport = get_transport("redis")
    event = await publish_trigger(
        transport, "payment_received", {"student_id": "S1", "amount": 250}
    )
    print(f"Published event {event.event_id}")


if __name__ == "__main__":
    asyncio.run(listen() if sys.argv[1:] == ["listen"] else emit())
