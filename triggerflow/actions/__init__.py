"""Action kinds, their parameter schemas, validation and dispatch."""

from .schemas import ACTION_MODELS, Action, ActionParameters, BaseAction
from .validation import validate_action, validate_actions

__all__ = [
    "ACTION_MODELS",
    "Action",
    "ActionParameters",
    "BaseAction",
    "validate_action",
    "validate_actions",
]
