"""Handlers for each action kind.

A handler takes the action's typed parameters and an ``ActionContext`` and
returns an ``ActionOutcome``. In test mode a handler reports what it would
do and touches no collaborator. Failures are raised as
``ActionExecutionError`` and turned into failed outcomes by the dispatcher.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..collaborators import Collaborators
from ..conditions import MISSING, compare, lookup
from ..contracts import ActionOutcome
from ..errors import ActionExecutionError, MissingContextError
from .schemas import (
    AssignCounselorParameters,
    ConditionCheckParameters,
    CreateNoteParameters,
    CreateNotificationParameters,
    CreatePaymentReminderParameters,
    ScheduleFollowUpParameters,
    SendDocumentParameters,
    SendEmailParameters,
    SendSmsParameters,
    SendWhatsappParameters,
    UpdateLeadStatusParameters,
    UpdateStudentStatusParameters,
    WaitParameters,
    WebhookCallParameters,
)

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """Everything a handler may use besides its parameters."""

    trigger_data: Dict[str, Any]
    test_mode: bool
    collaborators: Collaborators
    sleep: Callable[[float], Awaitable[Any]]
    clock: Callable[[], datetime]


Handler = Callable[[Any, ActionContext], Awaitable[ActionOutcome]]

HANDLERS: Dict[str, Handler] = {}


def handles(action_type: str) -> Callable[[Handler], Handler]:
    """Register the decorated coroutine as the handler for ``action_type``."""

    def decorator(func: Handler) -> Handler:
        HANDLERS[action_type] = func
        return func

    return decorator


def _require(trigger_data: Dict[str, Any], key: str) -> Any:
    value = trigger_data.get(key)
    if not value:
        raise MissingContextError(f"No {key} in trigger data")
    return value


def _recipient(explicit: Optional[str], trigger_data: Dict[str, Any], key: str) -> str:
    recipient = explicit or trigger_data.get(key)
    if not recipient:
        raise MissingContextError(f"No recipient: set 'to' or provide {key} in trigger data")
    return recipient


def _related_ids(trigger_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "lead_id": trigger_data.get("lead_id"),
        "student_id": trigger_data.get("student_id"),
    }


# ----------------------------------------------------------------------
# Messaging


@handles("send_email")
async def send_email(params: SendEmailParameters, ctx: ActionContext) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Email would be sent (test mode)")
    recipient = _recipient(params.to, ctx.trigger_data, "email")
    await ctx.collaborators.messaging.send(
        "email",
        recipient,
        {
            "subject": params.subject or "Notification",
            "body": params.body or "",
            "template_id": params.template_id,
        },
    )
    return ActionOutcome.ok(f"Email sent to {recipient}")


@handles("send_sms")
async def send_sms(params: SendSmsParameters, ctx: ActionContext) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("SMS would be sent (test mode)")
    recipient = _recipient(params.to, ctx.trigger_data, "phone")
    await ctx.collaborators.messaging.send(
        "sms", recipient, {"message": params.message or ""}
    )
    return ActionOutcome.ok(f"SMS sent to {recipient}")


@handles("send_whatsapp")
async def send_whatsapp(
    params: SendWhatsappParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("WhatsApp message would be sent (test mode)")
    recipient = _recipient(params.to, ctx.trigger_data, "phone")
    await ctx.collaborators.messaging.send(
        "whatsapp",
        recipient,
        {"message": params.message or "", "template_name": params.template_name},
    )
    return ActionOutcome.ok(f"WhatsApp message sent to {recipient}")


@handles("send_document")
async def send_document(
    params: SendDocumentParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Document would be sent (test mode)")
    document_id = params.document_id or ctx.trigger_data.get("document_id")
    if not document_id:
        raise MissingContextError("No document_id in parameters or trigger data")
    recipient = _recipient(params.to, ctx.trigger_data, "email")
    await ctx.collaborators.messaging.send(
        "email",
        recipient,
        {"document_id": document_id, "document_type": params.document_type},
    )
    return ActionOutcome.ok(f"Document {document_id} sent to {recipient}")


# ----------------------------------------------------------------------
# Record store


@handles("create_notification")
async def create_notification(
    params: CreateNotificationParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Notification would be created (test mode)")
    await ctx.collaborators.records.insert(
        "notifications",
        {
            "title": params.title,
            "message": params.message,
            "type": params.type,
            "user_id": params.user_id or ctx.trigger_data.get("user_id"),
            "priority": params.priority,
            "metadata": {"workflow_generated": True, "trigger_data": ctx.trigger_data},
            "created_at": ctx.clock().isoformat(),
            **_related_ids(ctx.trigger_data),
        },
    )
    return ActionOutcome.ok("Notification created successfully")


@handles("assign_counselor")
async def assign_counselor(
    params: AssignCounselorParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Counselor would be assigned (test mode)")
    lead_id = _require(ctx.trigger_data, "lead_id")
    if params.strategy == "specific":
        if not params.counselor_id:
            raise ActionExecutionError("counselor_id is required for specific assignment")
        counselor_id = params.counselor_id
    else:
        counselor_id = await ctx.collaborators.records.next_counselor()
        if not counselor_id:
            raise ActionExecutionError("No counselor available for assignment")
    await ctx.collaborators.records.update("leads", lead_id, {"assigned_to": counselor_id})
    return ActionOutcome.ok(f"Lead {lead_id} assigned to counselor {counselor_id}")


@handles("update_lead_status")
async def update_lead_status(
    params: UpdateLeadStatusParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Lead status would be updated (test mode)")
    lead_id = _require(ctx.trigger_data, "lead_id")
    await ctx.collaborators.records.update("leads", lead_id, {"status": params.new_status})
    return ActionOutcome.ok("Lead status updated successfully")


@handles("create_note")
async def create_note(params: CreateNoteParameters, ctx: ActionContext) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Note would be created (test mode)")
    await ctx.collaborators.records.insert(
        "notes",
        {
            "content": params.content,
            "author_id": params.author_id or ctx.trigger_data.get("user_id"),
            "note_type": params.note_type,
            "priority": params.priority,
            "metadata": {"workflow_generated": True},
            "created_at": ctx.clock().isoformat(),
            **_related_ids(ctx.trigger_data),
        },
    )
    return ActionOutcome.ok("Note created successfully")


@handles("schedule_follow_up")
async def schedule_follow_up(
    params: ScheduleFollowUpParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok(
            f"Follow-up would be scheduled in {params.days_from_now} day(s) (test mode)"
        )
    related = _related_ids(ctx.trigger_data)
    if not related["lead_id"] and not related["student_id"]:
        raise MissingContextError("No lead_id or student_id in trigger data")
    due_at = ctx.clock() + timedelta(days=params.days_from_now)
    await ctx.collaborators.records.insert(
        "follow_ups",
        {
            "due_at": due_at.isoformat(),
            "notes": params.notes,
            "assigned_to": params.assigned_to or ctx.trigger_data.get("assigned_to"),
            **related,
        },
    )
    return ActionOutcome.ok(f"Follow-up scheduled for {due_at.date().isoformat()}")


@handles("update_student_status")
async def update_student_status(
    params: UpdateStudentStatusParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Student status would be updated (test mode)")
    student_id = _require(ctx.trigger_data, "student_id")
    await ctx.collaborators.records.update(
        "students", student_id, {"status": params.new_status}
    )
    return ActionOutcome.ok("Student status updated successfully")


@handles("create_payment_reminder")
async def create_payment_reminder(
    params: CreatePaymentReminderParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok("Payment reminder would be created (test mode)")
    student_id = _require(ctx.trigger_data, "student_id")
    amount = params.amount if params.amount is not None else ctx.trigger_data.get("amount")
    due_at = ctx.clock() + timedelta(days=params.due_in_days)
    await ctx.collaborators.records.insert(
        "payment_reminders",
        {
            "student_id": student_id,
            "amount": amount,
            "due_at": due_at.isoformat(),
            "message": params.message or "Payment reminder",
        },
    )
    return ActionOutcome.ok(f"Payment reminder created for student {student_id}")


# ----------------------------------------------------------------------
# Control flow


@handles("wait")
async def wait(params: WaitParameters, ctx: ActionContext) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok(f"Would wait {params.duration:g}s (test mode)")
    await ctx.sleep(params.duration)
    return ActionOutcome.ok("Wait completed")


@handles("condition_check")
async def condition_check(
    params: ConditionCheckParameters, ctx: ActionContext
) -> ActionOutcome:
    actual = lookup(ctx.trigger_data, params.field)
    passed = compare(params.operator, actual, params.value)
    if ctx.test_mode:
        verdict = "pass" if passed else "fail"
        return ActionOutcome.ok(f"Condition on {params.field} would {verdict} (test mode)")
    if not passed:
        shown = "<missing>" if actual is MISSING else repr(actual)
        raise ActionExecutionError(
            f"Condition not met: {params.field} {params.operator} "
            f"{params.value!r} (actual {shown})"
        )
    return ActionOutcome.ok(f"Condition on {params.field} passed")


@handles("webhook_call")
async def webhook_call(
    params: WebhookCallParameters, ctx: ActionContext
) -> ActionOutcome:
    if ctx.test_mode:
        return ActionOutcome.ok(
            f"Webhook {params.method} {params.url} would be called (test mode)"
        )
    payload = params.payload if params.payload is not None else ctx.trigger_data
    body = None if params.method in ("GET", "DELETE") else payload
    client = ctx.collaborators.http
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=params.timeout) as own_client:
                response = await own_client.request(
                    params.method, params.url, headers=params.headers, json=body
                )
        else:
            response = await client.request(
                params.method,
                params.url,
                headers=params.headers,
                json=body,
                timeout=params.timeout,
            )
    except httpx.TimeoutException as exc:
        raise ActionExecutionError(f"Webhook timeout calling {params.url}: {exc}") from exc
    except httpx.HTTPError as exc:
        raise ActionExecutionError(f"Webhook connection error calling {params.url}: {exc}") from exc

    if not response.is_success:
        raise ActionExecutionError(
            f"Webhook {params.url} returned HTTP {response.status_code}"
        )
    logger.debug(f"Webhook {params.method} {params.url} -> {response.status_code}")
    return ActionOutcome.ok(f"Webhook responded with HTTP {response.status_code}")


__all__ = ["ActionContext", "HANDLERS", "handles"]
