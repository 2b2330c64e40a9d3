# backend/tests/unit/test_workflow_engine.py
import pytest
from unittest.mock import AsyncMock

from orchestrator.config import strings
from orchestrator.models.instruction import RagInstruction
from orchestrator.models.workflow import Intent, WorkflowContext
from orchestrator.workflows.definitions import reservation_instruction, fallback_instruction
from orchestrator.workflows.engine import execute_workflow, resource_type_of


def _context(**overrides) -> WorkflowContext:
    values = {
        "business_id": "biz-1",
        "location_id": "loc-1",
        "user_id": "user-1",
        "message": "Can I book a cleaning on 2026-10-20 at 10:00?",
        "source": "meta",
        "business_info": {"businessName": "Smile Dental", "businessType": "dental"},
        "intent": Intent(action="booking", category="reservation", confidence=0.9, can_handle_autonomously=True),
    }
    values.update(overrides)
    return WorkflowContext(**values)


def _instruction(steps, criteria=None, template="") -> RagInstruction:
    return RagInstruction(
        instruction_id="test.workflow.v1",
        business_type="dental",
        category="test",
        instruction="Test workflow",
        workflow=steps,
        success_criteria=criteria or [],
        notification_template=template,
    )


@pytest.fixture
def collaborators(mocker):
    execute = mocker.patch("orchestrator.workflows.engine.resource_service.execute_operation", new_callable=AsyncMock, return_value={})
    extract = mocker.patch("orchestrator.workflows.engine.ai_service.get_json_or_default", new_callable=AsyncMock, return_value={})
    complete = mocker.patch("orchestrator.workflows.engine.ai_service.complete", new_callable=AsyncMock, return_value="All set!")
    send = mocker.patch("orchestrator.workflows.engine.channel_service.send_message", new_callable=AsyncMock, return_value={"success": True})
    return {"execute": execute, "extract": extract, "complete": complete, "send": send}


@pytest.mark.asyncio
async def test_stop_step_failure_ends_the_run(collaborators):
    collaborators["execute"].side_effect = RuntimeError("resource API unavailable")
    instruction = _instruction([
        {"step": 1, "action": "identify_request", "validation": "has_request_type", "error_handling": "stop"},
        {"step": 2, "action": "create_reservation", "error_handling": "stop"},
        {"step": 3, "action": "send_confirmation"},
    ], criteria=["create_reservation"])

    result = await execute_workflow(instruction, _context())

    assert len(result.workflow_results) == 2
    assert [r.success for r in result.workflow_results] == [True, False]
    assert result.workflow_results[1].data == {"error": "resource API unavailable"}
    assert result.success is False
    assert result.should_respond is False
    assert result.response == strings.WORKFLOW_FAILURE
    collaborators["send"].assert_not_awaited()


@pytest.mark.asyncio
async def test_continue_step_failure_runs_remaining_steps(collaborators):
    collaborators["execute"].side_effect = RuntimeError("resource API unavailable")
    instruction = _instruction([
        {"step": 1, "action": "create_reservation", "error_handling": "continue"},
        {"step": 2, "action": "notify_team"},
    ])

    result = await execute_workflow(instruction, _context())

    assert len(result.workflow_results) == 2
    assert result.workflow_results[1].data == {"message": "Executed notify_team"}
    # No criteria: any failed step fails the workflow
    assert result.success is False


@pytest.mark.asyncio
async def test_failed_validation_is_a_single_failed_step(collaborators):
    collaborators["extract"].return_value = {"date": "2026-10-20"}
    instruction = RagInstruction.model_validate(reservation_instruction("dental"))

    result = await execute_workflow(instruction, _context())

    assert len(result.workflow_results) == 1
    failed = result.workflow_results[0]
    assert failed.success is False
    assert failed.data["error_code"] == "MISSING_FIELDS"
    assert failed.data["result"] == {"date": "2026-10-20"}
    collaborators["execute"].assert_not_awaited()


@pytest.mark.asyncio
async def test_reservation_workflow_uses_extracted_slots(collaborators):
    collaborators["extract"].return_value = {"date": "2026-10-20", "time": "10:00", "service": "cleaning"}
    collaborators["execute"].return_value = {"id": "res-9"}
    instruction = RagInstruction.model_validate(reservation_instruction("dental"))

    result = await execute_workflow(instruction, _context())

    assert result.success is True
    assert result.should_respond is True
    assert result.response == "All set!"
    assert [r.action for r in result.workflow_results] == [
        "extract_reservation_details", "create_reservation", "send_confirmation"
    ]
    operation, resource_type, business_id, location_id, payload = collaborators["execute"].await_args.args
    assert (operation, resource_type, business_id, location_id) == ("create", "reservations", "biz-1", "loc-1")
    assert payload == {
        "businessId": "biz-1",
        "locationId": "loc-1",
        "customerId": "user-1",
        "date": "2026-10-20",
        "time": "10:00",
        "service": "cleaning",
        "status": "pending",
    }
    assert result.workflow_results[1].data["reservationId"] == "res-9"
    assert collaborators["send"].await_args.args[:2] == ("meta", "user-1")
    assert result.notification.startswith("New reservation from user-1 via meta on ")


@pytest.mark.asyncio
async def test_extracted_slots_cannot_override_identity(collaborators):
    collaborators["extract"].return_value = {
        "date": "2026-10-20",
        "service": "cleaning",
        "customerId": "user-42",
        "businessId": "biz-2",
        "locationId": "loc-9",
    }
    collaborators["execute"].return_value = {"id": "res-9"}
    instruction = RagInstruction.model_validate(reservation_instruction("dental"))

    await execute_workflow(instruction, _context())

    payload = collaborators["execute"].await_args.args[4]
    assert payload["businessId"] == "biz-1"
    assert payload["locationId"] == "loc-1"
    assert payload["customerId"] == "user-1"
    assert payload["service"] == "cleaning"


@pytest.mark.asyncio
async def test_confirmation_on_unsupported_channel_fails_gracefully(collaborators):
    instruction = _instruction([
        {"step": 1, "action": "send_confirmation", "error_handling": "continue"},
        {"step": 2, "action": "log_request"},
    ], criteria=["log_request"])

    result = await execute_workflow(instruction, _context(source="email"))

    assert result.workflow_results[0].success is False
    assert "Unsupported channel" in result.workflow_results[0].data["error"]
    assert result.success is True
    collaborators["send"].assert_not_awaited()


@pytest.mark.asyncio
async def test_api_call_step_maps_method_and_resource(collaborators):
    collaborators["execute"].return_value = {"id": "inv-1"}
    instruction = _instruction([
        {
            "step": 1,
            "action": "create_invoice",
            "api_call": {
                "method": "POST",
                "endpoint": "/resources/invoices",
                "data_template": {"customerId": "{customerId}", "lines": [{"note": "{unknown}"}]},
            },
        },
    ], criteria=["create_invoice"])

    result = await execute_workflow(instruction, _context())

    assert result.success is True
    collaborators["execute"].assert_awaited_once_with(
        "create", "invoices", "biz-1", "loc-1", {"customerId": "user-1", "lines": [{"note": "{unknown}"}]}
    )
    assert result.workflow_results[0].data == {"operation": "create", "resource_type": "invoices", "id": "inv-1"}


@pytest.mark.asyncio
async def test_fallback_workflow_records_request_type(collaborators):
    instruction = RagInstruction.model_validate(fallback_instruction("dental"))

    result = await execute_workflow(instruction, _context())

    assert result.success is True
    assert result.workflow_results[0].data["request_type"] == "booking"
    assert result.notification == "Request from user-1 processed via meta"


@pytest.mark.asyncio
async def test_success_response_falls_back_when_completion_unavailable(collaborators):
    from orchestrator.services.ai_service import CompletionError
    collaborators["complete"].side_effect = CompletionError("down")
    instruction = _instruction([{"step": 1, "action": "note_request"}], criteria=["note_request"])

    result = await execute_workflow(instruction, _context())

    assert result.success is True
    assert result.response == strings.WORKFLOW_SUCCESS


def test_resource_type_is_last_endpoint_segment():
    assert resource_type_of("/resources/reservations/") == "reservations"
    assert resource_type_of("appointments") == "appointments"
