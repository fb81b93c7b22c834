"""Routes an action to the handler registered for its kind."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from ..collaborators import Collaborators
from ..constants import ACTION_TYPES
from ..contracts import ActionOutcome, utcnow
from ..errors import ActionExecutionError
from .handlers import HANDLERS, ActionContext
from .schemas import BaseAction

logger = logging.getLogger(__name__)

_unhandled = set(ACTION_TYPES) - set(HANDLERS)
if _unhandled:  # pragma: no cover - guards against a missing registration
    raise RuntimeError(f"No handler registered for action types: {sorted(_unhandled)}")


class ActionDispatcher:
    """Invokes action handlers against injected collaborators."""

    def __init__(
        self,
        collaborators: Optional[Collaborators] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.collaborators = collaborators or Collaborators()
        self._sleep = sleep
        self._clock = clock

    async def dispatch(
        self,
        action: BaseAction,
        trigger_data: Dict[str, Any],
        test_mode: bool = False,
    ) -> ActionOutcome:
        """Run ``action`` and report its outcome.

        Action-level failures come back as ``success=False``. Collaborator
        backends are guarded, so their errors arrive here as
        ``CollaboratorError``; anything else raised by a handler is a
        programming fault and propagates.
        """
        action_type = getattr(action, "type", None)
        handler = HANDLERS.get(action_type)
        if handler is None:
            return ActionOutcome.failed(f"Unknown action type: {action_type}")

        context = ActionContext(
            trigger_data=trigger_data,
            test_mode=test_mode,
            collaborators=self.collaborators.guarded(),
            sleep=self._sleep,
            clock=self._clock,
        )
        try:
            outcome = await handler(action.parameters, context)
        except ActionExecutionError as exc:
            logger.warning(f"Action {action_type} failed: {exc}")
            return ActionOutcome.failed(str(exc))

        logger.debug(f"Action {action_type} succeeded: {outcome.result}")
        return outcome
