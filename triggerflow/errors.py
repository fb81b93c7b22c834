"""Exception taxonomy for triggerflow."""

from __future__ import annotations


class TriggerflowError(Exception):
    """Base class for all triggerflow errors."""


class ValidationError(TriggerflowError):
    """A workflow definition or action list is malformed.

    Raised before anything is persisted.
    """


class NotFoundError(TriggerflowError):
    """Unknown workflow or execution id."""


class WorkflowDisabledError(TriggerflowError):
    """A disabled workflow was executed outside test mode."""


class UnauthorizedError(TriggerflowError):
    """Raised by identity collaborators; passed through untouched."""


class ExecutionSealedError(TriggerflowError):
    """An execution record was sealed a second time."""


class ActionExecutionError(TriggerflowError):
    """A single action failed.

    The dispatcher records this as a failed action result; it never leaves
    the engine.
    """


class MissingContextError(ActionExecutionError):
    """The trigger data lacks a field the action needs."""


class CollaboratorError(ActionExecutionError):
    """An external collaborator rejected a call."""
