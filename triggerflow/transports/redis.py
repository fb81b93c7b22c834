"""Redis transport for cross-process trigger delivery.

Events are pushed onto ``triggerflow:<topic>``. A consumer moves each event
atomically into ``triggerflow:<topic>:processing`` and removes it from there
on ack, so events taken by a listener that dies are not lost:
:meth:`RedisTransport.requeue_unacked` puts them back on the queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError

from ..contracts import TriggerEvent
from .base import BaseTransport

logger = logging.getLogger(__name__)

# (topic, serialized event) as stored in the processing list
RedisMessage = Tuple[str, str]


class RedisTransport(BaseTransport[RedisMessage]):
    """Reliable-queue transport over Redis lists."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        block_seconds: int = 1,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.block_seconds = block_seconds
        self._redis: Optional[Any] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"triggerflow:{topic}"

    @classmethod
    def processing_name(cls, topic: str) -> str:
        return f"{cls.queue_name(topic)}:processing"

    async def connect(self) -> None:
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()
        logger.info(f"Connected to Redis at {self.host}:{self.port}/{self.db}")

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def publish(self, topic: str, event: TriggerEvent) -> None:
        client = await self._client()
        await client.lpush(self.queue_name(topic), event.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RedisMessage, TriggerEvent]]:
        client = await self._client()
        queue = self.queue_name(topic)
        processing = self.processing_name(topic)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None

        while deadline is None or loop.time() < deadline:
            payload = await client.blmove(
                queue, processing, self.block_seconds, src="RIGHT", dest="LEFT"
            )
            if payload is None:
                continue
            try:
                event = TriggerEvent.from_json(payload)
            except PydanticValidationError as exc:
                logger.warning(f"Dropping malformed trigger event on {topic}: {exc}")
                await client.lrem(processing, 1, payload)
                continue
            yield (topic, payload), event

    async def ack(self, raw_message: RedisMessage) -> None:
        topic, payload = raw_message
        client = await self._client()
        await client.lrem(self.processing_name(topic), 1, payload)

    async def requeue_unacked(self, topic: str) -> int:
        client = await self._client()
        moved = 0
        while await client.lmove(
            self.processing_name(topic), self.queue_name(topic), src="RIGHT", dest="RIGHT"
        ):
            moved += 1
        if moved:
            logger.warning(f"Requeued {moved} unacknowledged event(s) on {topic}")
        return moved
