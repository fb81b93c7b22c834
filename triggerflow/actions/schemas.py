"""Typed action specifications.

Every action kind is its own model with a ``type`` literal and a parameter
schema, so a workflow's action list is a discriminated union rather than a
list of free-form maps.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..constants import DEFAULT_WAIT_SECONDS


class ActionParameters(BaseModel):
    """Base for per-kind parameter schemas. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class SendEmailParameters(ActionParameters):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    template_id: Optional[str] = None


class SendSmsParameters(ActionParameters):
    to: Optional[str] = None
    message: Optional[str] = None


class SendWhatsappParameters(ActionParameters):
    to: Optional[str] = None
    message: Optional[str] = None
    template_name: Optional[str] = None


class CreateNotificationParameters(ActionParameters):
    title: str = "Workflow Notification"
    message: str = "Automated notification from workflow"
    type: str = "info"
    user_id: Optional[str] = None
    priority: str = "normal"


class AssignCounselorParameters(ActionParameters):
    counselor_id: Optional[str] = None
    strategy: Literal["round_robin", "specific"] = "round_robin"


class UpdateLeadStatusParameters(ActionParameters):
    new_status: str


class CreateNoteParameters(ActionParameters):
    content: str = "Automated note from workflow"
    author_id: Optional[str] = None
    note_type: str = "general"
    priority: str = "normal"


class ScheduleFollowUpParameters(ActionParameters):
    days_from_now: int = Field(default=1, ge=0)
    notes: Optional[str] = None
    assigned_to: Optional[str] = None


class SendDocumentParameters(ActionParameters):
    document_id: Optional[str] = None
    document_type: Optional[str] = None
    to: Optional[str] = None


class UpdateStudentStatusParameters(ActionParameters):
    new_status: str


class CreatePaymentReminderParameters(ActionParameters):
    amount: Optional[float] = Field(default=None, ge=0)
    due_in_days: int = Field(default=7, ge=0)
    message: Optional[str] = None


class WaitParameters(ActionParameters):
    duration: float = Field(default=DEFAULT_WAIT_SECONDS, ge=0)


ConditionOperator = Literal[
    "equals",
    "not_equals",
    "exists",
    "not_exists",
    "contains",
    "greater_than",
    "less_than",
]


class ConditionCheckParameters(ActionParameters):
    field: str = Field(..., min_length=1, description="Dotted path into trigger data")
    operator: ConditionOperator = "equals"
    value: Any = None


class WebhookCallParameters(ActionParameters):
    url: str = Field(..., min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Optional[Dict[str, Any]] = None
    timeout: float = Field(default=10.0, gt=0)


class BaseAction(BaseModel):
    """Fields shared by every action kind."""

    delay_seconds: float = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("delay_seconds", "delay"),
    )
    continue_on_error: bool = False
    condition: Optional[Dict[str, Any]] = None


class SendEmailAction(BaseAction):
    type: Literal["send_email"] = "send_email"
    parameters: SendEmailParameters = Field(default_factory=SendEmailParameters)


class SendSmsAction(BaseAction):
    type: Literal["send_sms"] = "send_sms"
    parameters: SendSmsParameters = Field(default_factory=SendSmsParameters)


class SendWhatsappAction(BaseAction):
    type: Literal["send_whatsapp"] = "send_whatsapp"
    parameters: SendWhatsappParameters = Field(default_factory=SendWhatsappParameters)


class CreateNotificationAction(BaseAction):
    type: Literal["create_notification"] = "create_notification"
    parameters: CreateNotificationParameters = Field(
        default_factory=CreateNotificationParameters
    )


class AssignCounselorAction(BaseAction):
    type: Literal["assign_counselor"] = "assign_counselor"
    parameters: AssignCounselorParameters = Field(
        default_factory=AssignCounselorParameters
    )


class UpdateLeadStatusAction(BaseAction):
    type: Literal["update_lead_status"] = "update_lead_status"
    parameters: UpdateLeadStatusParameters


class CreateNoteAction(BaseAction):
    type: Literal["create_note"] = "create_note"
    parameters: CreateNoteParameters = Field(default_factory=CreateNoteParameters)


class ScheduleFollowUpAction(BaseAction):
    type: Literal["schedule_follow_up"] = "schedule_follow_up"
    parameters: ScheduleFollowUpParameters = Field(
        default_factory=ScheduleFollowUpParameters
    )


class SendDocumentAction(BaseAction):
    type: Literal["send_document"] = "send_document"
    parameters: SendDocumentParameters = Field(default_factory=SendDocumentParameters)


class UpdateStudentStatusAction(BaseAction):
    type: Literal["update_student_status"] = "update_student_status"
    parameters: UpdateStudentStatusParameters


class CreatePaymentReminderAction(BaseAction):
    type: Literal["create_payment_reminder"] = "create_payment_reminder"
    parameters: CreatePaymentReminderParameters = Field(
        default_factory=CreatePaymentReminderParameters
    )


class WaitAction(BaseAction):
    type: Literal["wait"] = "wait"
    parameters: WaitParameters = Field(default_factory=WaitParameters)


class ConditionCheckAction(BaseAction):
    type: Literal["condition_check"] = "condition_check"
    parameters: ConditionCheckParameters


class WebhookCallAction(BaseAction):
    type: Literal["webhook_call"] = "webhook_call"
    parameters: WebhookCallParameters


Action = Annotated[
    Union[
        SendEmailAction,
        SendSmsAction,
        SendWhatsappAction,
        CreateNotificationAction,
        AssignCounselorAction,
        UpdateLeadStatusAction,
        CreateNoteAction,
        ScheduleFollowUpAction,
        SendDocumentAction,
        UpdateStudentStatusAction,
        CreatePaymentReminderAction,
        WaitAction,
        ConditionCheckAction,
        WebhookCallAction,
    ],
    Field(discriminator="type"),
]

ACTION_MODELS: Dict[str, type[BaseAction]] = {
    "send_email": SendEmailAction,
    "send_sms": SendSmsAction,
    "send_whatsapp": SendWhatsappAction,
    "create_notification": CreateNotificationAction,
    "assign_counselor": AssignCounselorAction,
    "update_lead_status": UpdateLeadStatusAction,
    "create_note": CreateNoteAction,
    "schedule_follow_up": ScheduleFollowUpAction,
    "send_document": SendDocumentAction,
    "update_student_status": UpdateStudentStatusAction,
    "create_payment_reminder": CreatePaymentReminderAction,
    "wait": WaitAction,
    "condition_check": ConditionCheckAction,
    "webhook_call": WebhookCallAction,
}
