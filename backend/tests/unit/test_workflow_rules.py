# backend/tests/unit/test_workflow_rules.py
from datetime import datetime

from orchestrator.models.instruction import WorkflowStep
from orchestrator.models.workflow import WorkflowContext, WorkflowStepResult
from orchestrator.workflows.templates import render_data_template, render_notification, substitute
from orchestrator.workflows.validator import (
    evaluate_success_criteria, matches_criterion, validate_step_result
)

NOW = datetime(2026, 10, 19, 14, 30)


def _context(**overrides) -> WorkflowContext:
    values = {
        "business_id": "biz-1",
        "location_id": "loc-1",
        "user_id": "user-1",
        "message": "hello",
        "source": "twilio",
        "business_info": {"name": "Smile Dental"},
    }
    values.update(overrides)
    return WorkflowContext(**values)


def _result(step, action, success=True, data=None) -> WorkflowStepResult:
    return WorkflowStepResult(step=step, action=action, success=success, data=data or {})


# --- templates ---

def test_clock_placeholders_and_unknowns():
    rendered = render_data_template(
        {"on": "{date} {time}", "who": ["{customerId}", "{missing}"], "count": 3},
        _context(),
        now=NOW,
    )

    assert rendered == {"on": "2026-10-19 14:30", "who": ["user-1", "{missing}"], "count": 3}


def test_extracted_slots_override_clock_values():
    rendered = render_data_template("{date}/{service}", _context(extracted={"date": "2026-11-01", "service": "x-ray"}), now=NOW)

    assert rendered == "2026-11-01/x-ray"


def test_substitute_leaves_non_word_braces_alone():
    assert substitute("{a} {b-c} {}", {"a": 1}) == "1 {b-c} {}"


def test_notification_placeholders():
    text = render_notification("{utilizatorul} on {data}: {action} at {business} via {source}", _context(), "book", now=NOW)

    assert text == "user-1 on 19.10.2026: book at Smile Dental via twilio"


# --- validation ---

def test_named_predicates():
    assert validate_step_result(_result(1, "extract", data={"date": "x", "service": "y"}), "has_date_and_service")["is_valid"]
    assert validate_step_result(_result(1, "create", data={"reservation_id": "r"}), "reservation_created")["is_valid"]
    assert validate_step_result(_result(1, "create", data={}), "reservation_created")["error_code"] == "NO_RESERVATION_ID"
    assert validate_step_result(_result(1, "identify", data={"requestType": "booking"}), "has_request_type")["is_valid"]
    assert not validate_step_result(_result(1, "process", success=False), "request_processed")["is_valid"]


def test_unknown_predicate_requires_step_success():
    assert validate_step_result(_result(1, "a"), "something_custom")["is_valid"]
    assert not validate_step_result(_result(1, "a", success=False), "something_custom")["is_valid"]


def test_criterion_matches_action_ignoring_underscores():
    assert matches_criterion(_result(1, "create_reservation"), "createreservation")
    assert matches_criterion(_result(1, "send_confirmation_sms"), "send_confirmation")
    assert not matches_criterion(_result(1, "create_reservation", success=False), "create_reservation")


def test_criterion_matches_validation_name():
    steps = [WorkflowStep(step=2, action="create_reservation", validation="reservation_created")]
    results = [_result(2, "create_reservation")]

    assert evaluate_success_criteria(results, ["reservation_created"], steps)
    assert not evaluate_success_criteria(results, ["reservation_created"])


def test_every_criterion_must_be_satisfied():
    results = [_result(1, "create_reservation"), _result(2, "send_confirmation", success=False)]

    assert evaluate_success_criteria(results, ["create_reservation"])
    assert not evaluate_success_criteria(results, ["create_reservation", "send_confirmation"])


def test_empty_criteria_require_no_failed_step():
    assert evaluate_success_criteria([_result(1, "a")], [])
    assert not evaluate_success_criteria([_result(1, "a"), _result(2, "b", success=False)], [])
    assert evaluate_success_criteria([], [])
