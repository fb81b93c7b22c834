"""Transport interface that carries trigger events to listeners."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..contracts import TriggerEvent

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """A named-topic queue of :class:`TriggerEvent` objects.

    ``RawMessageT`` is whatever the backend needs to acknowledge a delivery.
    """

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self) -> "BaseTransport[RawMessageT]":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def publish(self, topic: str, event: TriggerEvent) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, TriggerEvent]]:
        """Yield ``(raw_message, event)`` pairs until ``lifespan`` seconds pass.

        With no ``lifespan`` the subscription runs until cancelled.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Mark a delivery as handled."""
        raise NotImplementedError

    async def requeue_unacked(self, topic: str) -> int:
        """Return deliveries taken but never acknowledged to the queue.

        Backends without delivery tracking have nothing to requeue.
        """
        return 0
