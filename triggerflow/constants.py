"""Fixed enumerations shared across triggerflow."""

from __future__ import annotations

TRIGGER_TYPES: tuple[str, ...] = (
    "lead_created",
    "lead_updated",
    "lead_converted",
    "student_enrolled",
    "student_updated",
    "student_completed",
    "payment_received",
    "payment_failed",
    "payment_overdue",
    "document_uploaded",
    "document_verified",
    "document_rejected",
    "communication_sent",
    "communication_failed",
    "note_created",
    "note_reminder",
    "manual_trigger",
    "scheduled_trigger",
)

ACTION_TYPES: tuple[str, ...] = (
    "send_email",
    "send_sms",
    "send_whatsapp",
    "create_notification",
    "assign_counselor",
    "update_lead_status",
    "create_note",
    "schedule_follow_up",
    "send_document",
    "update_student_status",
    "create_payment_reminder",
    "wait",
    "condition_check",
    "webhook_call",
)

WORKFLOW_STATUSES: tuple[str, ...] = ("draft", "active", "archived")

EXECUTION_RUNNING = "running"
EXECUTION_COMPLETED = "completed"
EXECUTION_FAILED = "failed"

DEFAULT_PAGE_SIZE = 50
DEFAULT_TRIGGER_TOPIC = "triggers"
DEFAULT_WAIT_SECONDS = 5.0
