"""Trigger event transports and the factory that picks one from config."""

from __future__ import annotations

import os
from typing import Optional

from ..config import TriggerflowConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport

TRANSPORT_BACKENDS = ("inmemory", "redis")

# Publishers and listeners in one process must share the same queues.
_inmemory_instance: InMemoryTransport | None = None


def get_transport(
    backend: Optional[str] = None, config: Optional[TriggerflowConfig] = None
) -> BaseTransport:
    """Return the transport named by ``backend``.

    Falls back to ``TRIGGERFLOW_TRANSPORT`` and then ``transport.backend`` in
    the loaded configuration.
    """
    global _inmemory_instance

    config = config or load_config()
    name = (backend or os.getenv("TRIGGERFLOW_TRANSPORT") or config.transport.backend).lower()
    if name not in TRANSPORT_BACKENDS:
        raise ValueError(
            f"Unsupported transport backend: {name}. Use one of: {', '.join(TRANSPORT_BACKENDS)}"
        )

    if name == "redis":
        from .redis import RedisTransport

        settings = config.transport.redis
        return RedisTransport(
            host=settings.host,
            port=settings.port,
            db=settings.db,
            password=settings.password,
            block_seconds=settings.block_seconds,
        )

    if _inmemory_instance is None:
        _inmemory_instance = InMemoryTransport()
    return _inmemory_instance


__all__ = ["BaseTransport", "InMemoryTransport", "TRANSPORT_BACKENDS", "get_transport"]
