"""In-process transport used by tests and single-process setups."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..contracts import TriggerEvent
from .base import BaseTransport


class InMemoryTransport(BaseTransport[TriggerEvent]):
    """Per-topic deques polled by subscribers.

    Acknowledged events are kept in ``acked`` so tests can check delivery.
    """

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._queues: Dict[str, Deque[TriggerEvent]] = defaultdict(deque)
        self._poll_interval = poll_interval
        self.acked: List[str] = []

    async def publish(self, topic: str, event: TriggerEvent) -> None:
        # copy so later mutation by the publisher cannot leak into delivery
        self._queues[topic].append(event.model_copy(deep=True))

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[TriggerEvent, TriggerEvent]]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        queue = self._queues[topic]

        while deadline is None or loop.time() < deadline:
            if queue:
                event = queue.popleft()
                yield event, event
                continue
            await asyncio.sleep(self._poll_interval)

    async def ack(self, raw_message: TriggerEvent) -> None:
        self.acked.append(raw_message.event_id)
