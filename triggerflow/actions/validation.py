"""Normalization and type checking of workflow action lists."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..constants import ACTION_TYPES
from ..errors import ValidationError
from .schemas import ACTION_MODELS, BaseAction


def describe_validation_error(exc: PydanticValidationError) -> str:
    """Flatten a pydantic error into a single readable line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def validate_action(entry: Any, index: int) -> BaseAction:
    """Validate a single action entry found at ``index``."""
    if isinstance(entry, BaseModel):
        entry = entry.model_dump()
    if not isinstance(entry, Mapping):
        raise ValidationError(f"Invalid action at index {index}: expected a mapping")

    action_type = entry.get("type")
    if not action_type or action_type not in ACTION_TYPES:
        raise ValidationError(f"Invalid action type at index {index}: {action_type}")

    data = dict(entry)
    if data.get("parameters") is None:
        data["parameters"] = {}

    try:
        return ACTION_MODELS[action_type].model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {action_type} action at index {index}: "
            f"{describe_validation_error(exc)}"
        ) from exc


def validate_actions(actions: Iterable[Any]) -> List[BaseAction]:
    """Validate ``actions`` and return them with defaults applied.

    Accepts raw mappings, already-validated action models or a mix of both;
    re-validating the output yields an equal list. Besides the action type,
    each entry's parameters are checked against its kind's schema: unknown
    parameter names and missing required ones (e.g. ``new_status``,
    ``field``, ``url``) are rejected.

    Raises:
        ValidationError: naming the index and type of the first bad entry.
    """
    if isinstance(actions, (str, bytes, Mapping)):
        raise ValidationError("Actions must be a list")
    return [validate_action(entry, index) for index, entry in enumerate(actions)]
