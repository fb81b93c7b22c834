"""Tests for action list validation."""

import pytest

from triggerflow.actions import validate_action, validate_actions
from triggerflow.actions.schemas import SendEmailAction, WaitAction
from triggerflow.constants import ACTION_TYPES
from triggerflow.errors import ValidationError


def test_defaults_are_applied():
    [action] = validate_actions([{"type": "send_email"}])

    assert isinstance(action, SendEmailAction)
    assert action.delay_seconds == 0
    assert action.continue_on_error is False
    assert action.condition is None
    assert action.parameters.model_dump(exclude_none=True) == {}


def test_null_parameters_become_empty():
    [action] = validate_actions([{"type": "create_note", "parameters": None}])
    assert action.parameters.content == "Automated note from workflow"


def test_delay_alias_is_accepted():
    [action] = validate_actions([{"type": "wait", "delay": 3, "parameters": {"duration": 2}}])
    assert isinstance(action, WaitAction)
    assert action.delay_seconds == 3
    assert action.parameters.duration == 2


def test_unknown_type_names_index_and_type():
    with pytest.raises(ValidationError) as exc_info:
        validate_actions([{"type": "send_email"}, {"type": "send_fax"}])

    message = str(exc_info.value)
    assert "index 1" in message
    assert "send_fax" in message


def test_missing_type_is_rejected():
    with pytest.raises(ValidationError, match="index 0"):
        validate_action({"parameters": {}}, 0)


def test_unknown_parameter_is_rejected():
    with pytest.raises(ValidationError, match="Invalid send_sms action at index 2"):
        validate_action({"type": "send_sms", "parameters": {"fax": "123"}}, 2)


def test_required_parameter_is_enforced():
    with pytest.raises(ValidationError, match="new_status"):
        validate_actions([{"type": "update_lead_status"}])


def test_negative_delay_is_rejected():
    with pytest.raises(ValidationError):
        validate_actions([{"type": "wait", "delay_seconds": -1}])


def test_mapping_instead_of_list_is_rejected():
    with pytest.raises(ValidationError, match="must be a list"):
        validate_actions({"type": "send_email"})


def test_every_action_kind_has_a_schema():
    minimal = {
        "update_lead_status": {"new_status": "contacted"},
        "update_student_status": {"new_status": "active"},
        "condition_check": {"field": "lead_id"},
        "webhook_call": {"url": "https://example.com/hook"},
    }
    raw = [{"type": t, "parameters": minimal.get(t, {})} for t in ACTION_TYPES]
    validated = validate_actions(raw)
    assert [a.type for a in validated] == list(ACTION_TYPES)


def test_validation_is_idempotent():
    raw = [
        {"type": "create_notification", "parameters": {"title": "x"}},
        {"type": "wait", "delay": 2, "parameters": {"duration": 1}},
        {"type": "update_lead_status", "continue_on_error": True, "parameters": {"new_status": "contacted"}},
    ]
    once = validate_actions(raw)
    twice = validate_actions(once)
    from_dump = validate_actions([a.model_dump() for a in once])

    assert twice == once
    assert from_dump == once
