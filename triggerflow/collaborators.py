"""External collaborators that action handlers act upon.

The engine never talks to a hosted record store or a messaging provider
directly; it is handed implementations of the protocols below. The
in-memory versions keep everything local and record every mutating call,
which is what tests and the CLI use by default.

Implementations may raise ``CollaboratorError`` themselves. Any other
exception they raise (a dropped connection, a driver or HTTP error) is
reported as ``CollaboratorError`` once the dispatcher has wrapped them
with ``Collaborators.guarded``.
"""

from __future__ import annotations

import functools
import itertools
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from .errors import CollaboratorError, TriggerflowError

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Store holding leads, students, notes, notifications and reminders.

    Raises:
        CollaboratorError: the store rejected the call, e.g. an unknown
            record on ``update``.
    """

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert ``row`` into ``table`` and return it with its id."""

    async def update(
        self, table: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Update an existing row and return the new version."""

    async def next_counselor(self) -> Optional[str]:
        """Return the counselor id next in the assignment rotation."""


class MessagingProvider(Protocol):
    """Outbound email / SMS / WhatsApp delivery.

    Raises:
        CollaboratorError: the provider refused or failed to deliver.
    """

    async def send(
        self, channel: str, recipient: str, content: dict[str, Any]
    ) -> str:
        """Deliver ``content`` and return the provider's message id."""


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed record store.

    Every insert and update is appended to ``calls`` as ``(operation,
    table, payload)`` so callers can assert on side effects.
    """

    def __init__(
        self,
        tables: Optional[Dict[str, Dict[str, dict[str, Any]]]] = None,
        counselors: Optional[List[str]] = None,
    ) -> None:
        self.tables: Dict[str, Dict[str, dict[str, Any]]] = defaultdict(dict)
        for name, rows in (tables or {}).items():
            self.tables[name].update({key: dict(row) for key, row in rows.items()})
        self.calls: List[Tuple[str, str, dict[str, Any]]] = []
        self._rotation = itertools.cycle(counselors) if counselors else None

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        record = dict(row)
        record.setdefault("id", str(uuid.uuid4()))
        self.tables[table][record["id"]] = record
        self.calls.append(("insert", table, record))
        return record

    async def update(
        self, table: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        existing = self.tables[table].get(record_id)
        if existing is None:
            raise CollaboratorError(f"{table} record {record_id} not found")
        existing.update(fields)
        self.calls.append(("update", table, {"id": record_id, **fields}))
        return existing

    async def next_counselor(self) -> Optional[str]:
        if self._rotation is None:
            return None
        return next(self._rotation)


class InMemoryMessagingProvider(MessagingProvider):
    """Collects outgoing messages in ``outbox`` instead of delivering them."""

    def __init__(self) -> None:
        self.outbox: List[dict[str, Any]] = []

    async def send(
        self, channel: str, recipient: str, content: dict[str, Any]
    ) -> str:
        message_id = str(uuid.uuid4())
        self.outbox.append(
            {
                "id": message_id,
                "channel": channel,
                "recipient": recipient,
                "content": content,
            }
        )
        logger.debug(f"Queued {channel} message {message_id} to {recipient}")
        return message_id


@dataclass
class Collaborators:
    """Bundle of collaborator handles injected into the dispatcher.

    ``http`` is used for webhook calls; when absent a short-lived client is
    opened per call.
    """

    records: RecordStore = field(default_factory=InMemoryRecordStore)
    messaging: MessagingProvider = field(default_factory=InMemoryMessagingProvider)
    http: Optional[httpx.AsyncClient] = None

    def guarded(self) -> "Collaborators":
        """Return a copy whose store and provider report failures as ``CollaboratorError``."""
        return Collaborators(
            records=_Guarded(self.records, "record store"),
            messaging=_Guarded(self.messaging, "messaging provider"),
            http=self.http,
        )


class _Guarded:
    """Proxy that re-raises a backend's exceptions as ``CollaboratorError``."""

    def __init__(self, target: Any, label: str) -> None:
        self._target = target
        self._label = label

    def __getattr__(self, name: str) -> Any:
        member = getattr(self._target, name)
        if not callable(member):
            return member

        @functools.wraps(member)
        async def call(*args: Any, **kwargs: Any) -> Any:
            try:
                return await member(*args, **kwargs)
            except TriggerflowError:
                raise
            except Exception as exc:
                logger.warning(f"{self._label} {name} failed: {exc!r}")
                raise CollaboratorError(
                    f"{self._label.capitalize()} error: {str(exc) or type(exc).__name__}"
                ) from exc

        return call
