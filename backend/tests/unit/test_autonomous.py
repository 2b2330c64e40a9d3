# backend/tests/unit/test_autonomous.py
import pytest
from unittest.mock import AsyncMock, MagicMock

from orchestrator.config import strings
from orchestrator.models.api import WebhookMessage
from orchestrator.models.instruction import RagInstruction
from orchestrator.models.workflow import AutonomousActionResult, Intent, WorkflowStepResult
from orchestrator.services import autonomous_service as autonomous_module
from orchestrator.services.agent_service import agent_service
from orchestrator.services.autonomous_service import autonomous_service
from orchestrator.services.broadcast_service import ESCALATION_EVENT, COORDINATOR_NOTIFICATION_EVENT
from orchestrator.workflows.definitions import reservation_instruction

WEBHOOK = WebhookMessage(business_id="biz-1", location_id="loc-1", user_id="+40712345678", message="Book me tomorrow", source="meta")
CONFIDENT = Intent(action="booking", category="reservation", confidence=0.95, can_handle_autonomously=True, requires_human_approval=False)
UNSURE = Intent(action="services", category="customer_service", confidence=0.5)


@pytest.fixture
def broadcasts(mocker):
    return mocker.patch.object(autonomous_module.broadcast_service, "broadcast_background", MagicMock())


@pytest.fixture
def business(mocker):
    mocker.patch.object(autonomous_module.resource_service, "get_business_info", new_callable=AsyncMock, return_value={"businessType": "dental"})
    mocker.patch.object(autonomous_module.resource_service, "get_location_info", new_callable=AsyncMock, return_value={"id": "loc-1"})


@pytest.mark.asyncio
async def test_low_confidence_is_escalated(mocker, business, broadcasts):
    classify = mocker.patch.object(autonomous_module.intent_service, "classify", new_callable=AsyncMock, return_value=UNSURE)

    result = await autonomous_service.handle_webhook(WEBHOOK)

    classify.assert_awaited_once_with("Book me tomorrow", "dental")
    assert result.success is False
    assert result.should_respond is True
    assert result.response == strings.ESCALATION_RESPONSE
    business_id, event, payload = broadcasts.call_args.args
    assert (business_id, event) == ("biz-1", ESCALATION_EVENT)
    assert payload["intent"]["action"] == "services"


@pytest.mark.asyncio
async def test_confident_intent_runs_autonomously_with_single_classification(mocker, business, broadcasts):
    classify = mocker.patch.object(autonomous_module.intent_service, "classify", new_callable=AsyncMock, return_value=CONFIDENT)
    process = mocker.patch.object(autonomous_service, "process_autonomously", new_callable=AsyncMock)

    await autonomous_service.handle_webhook(WEBHOOK)

    classify.assert_awaited_once()
    process.assert_awaited_once_with(WEBHOOK, CONFIDENT)


@pytest.mark.asyncio
async def test_missing_location_fails_without_running_workflows(mocker, broadcasts):
    mocker.patch.object(autonomous_module.resource_service, "get_business_info", new_callable=AsyncMock, return_value={"businessType": "dental"})
    mocker.patch.object(autonomous_module.resource_service, "get_location_info", new_callable=AsyncMock, return_value=None)
    lookup = mocker.patch.object(autonomous_module.instruction_service, "get_instructions_for_request", new_callable=AsyncMock)

    result = await autonomous_service.process_autonomously(WEBHOOK, CONFIDENT)

    assert result.success is False
    assert result.response == strings.BUSINESS_NOT_FOUND
    lookup.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_matching_instruction_asks_for_a_coordinator(mocker, business, broadcasts):
    mocker.patch.object(autonomous_module.instruction_service, "get_instructions_for_request", new_callable=AsyncMock, return_value=[])

    result = await autonomous_service.process_autonomously(WEBHOOK, CONFIDENT)

    assert result.success is False
    assert result.should_respond is True
    assert result.response == strings.NO_INSTRUCTIONS
    broadcasts.assert_not_called()


@pytest.mark.asyncio
async def test_successful_workflow_resolves_session_and_notifies(mocker, business, broadcasts):
    instruction = RagInstruction.model_validate(reservation_instruction("dental"))
    mocker.patch.object(autonomous_module.instruction_service, "get_instructions_for_request", new_callable=AsyncMock, return_value=[instruction])
    mocker.patch.object(autonomous_module.session_service, "get_active_session_for_user", new_callable=AsyncMock, return_value={"session_id": "s-7"})
    resolved = mocker.patch.object(autonomous_module.session_service, "mark_conversation_resolved", new_callable=AsyncMock, return_value=True)
    outcome = AutonomousActionResult(
        success=True,
        workflow_results=[WorkflowStepResult(step=1, action="extract_reservation_details", success=True)],
        notification="New reservation",
        should_respond=True,
        response="Booked!",
    )
    run = mocker.patch.object(autonomous_module, "execute_workflow", new_callable=AsyncMock, return_value=outcome)

    result = await autonomous_service.process_autonomously(WEBHOOK, CONFIDENT)

    assert result is outcome
    context = run.await_args.args[1]
    assert context.session_id == "s-7"
    assert context.intent == CONFIDENT
    resolved.assert_awaited_once_with("s-7")
    business_id, event, payload = broadcasts.call_args.args
    assert event == COORDINATOR_NOTIFICATION_EVENT
    assert payload["type"] == "autonomous_action_completed"
    assert payload["action"] == "extract_reservation_details"
    assert payload["source"] == "autonomous_agent"


@pytest.mark.asyncio
async def test_failed_workflow_keeps_session_open(mocker, business, broadcasts):
    instruction = RagInstruction.model_validate(reservation_instruction("dental"))
    mocker.patch.object(autonomous_module.instruction_service, "get_instructions_for_request", new_callable=AsyncMock, return_value=[instruction])
    resolved = mocker.patch.object(autonomous_module.session_service, "mark_conversation_resolved", new_callable=AsyncMock)
    mocker.patch.object(autonomous_module, "execute_workflow", new_callable=AsyncMock, return_value=AutonomousActionResult(success=False))

    webhook = WEBHOOK.model_copy(update={"session_id": "s-9"})
    result = await autonomous_service.process_autonomously(webhook, CONFIDENT)

    assert result.success is False
    resolved.assert_not_awaited()
    broadcasts.assert_called_once()


@pytest.mark.asyncio
async def test_unexpected_error_becomes_failure_result(mocker):
    mocker.patch.object(autonomous_module.autonomous_service, "handle_webhook", new_callable=AsyncMock, side_effect=RuntimeError("boom"))

    result = await agent_service.process_webhook_message(WEBHOOK)

    assert result.success is False
    assert result.should_respond is True
    assert result.response == strings.WORKFLOW_FAILURE
