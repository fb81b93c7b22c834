"""Triggerflow: trigger to action workflow automation."""

from .actions import validate_actions
from .analytics import AnalyticsAggregator
from .collaborators import Collaborators
from .contracts import ExecutionRecord, ExecutionResult, TriggerEvent, WorkflowDefinition
from .engine import WorkflowEngine
from .manager import WorkflowManager, trigger_types
from .persistence import get_repository
from .transports import get_transport
from .triggers import TriggerListener, publish_trigger

__version__ = "0.1.0"
__all__ = [
    "AnalyticsAggregator",
    "Collaborators",
    "ExecutionRecord",
    "ExecutionResult",
    "TriggerEvent",
    "TriggerListener",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowManager",
    "get_repository",
    "get_transport",
    "publish_trigger",
    "trigger_types",
    "validate_actions",
]
