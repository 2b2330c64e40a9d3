# backend/tests/integration/test_api.py
from unittest.mock import AsyncMock

from orchestrator.config.settings import settings
from orchestrator.models.api import AgentResponse
from orchestrator.models.context import AgentAction
from orchestrator.models.workflow import AutonomousActionResult, WorkflowStepResult

API_PREFIX = f"/api/{settings.api_version}"
AUTH = {"X-API-KEY": settings.api_key or ""}


def test_root_reports_service(test_client):
    response = test_client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "Agent Orchestrator"


def test_liveness_probe(test_client):
    response = test_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_metrics_require_api_key(test_client):
    assert test_client.get("/metrics").status_code == 403
    response = test_client.get("/metrics", headers=AUTH)
    assert response.status_code == 200
    assert "agent_messages_total" in response.text


def test_operator_message_unauthorized(test_client, mocker):
    process = mocker.patch("orchestrator.routes.agent.agent_service.process_message", new_callable=AsyncMock)

    response = test_client.post(f"{API_PREFIX}/agent/messages", json={"businessId": "biz-1", "userId": "op-1", "message": "hi"})

    assert response.status_code == 401
    process.assert_not_awaited()


def test_operator_message_returns_camel_case_reply(test_client, mocker):
    process = mocker.patch(
        "orchestrator.routes.agent.agent_service.process_message",
        new_callable=AsyncMock,
        return_value=AgentResponse(
            response_id="r-1",
            message="Hi! How can I help?",
            actions=[AgentAction(type="greeting")],
            session_id="session-1",
        ),
    )

    response = test_client.post(
        f"{API_PREFIX}/agent/messages",
        json={"businessId": "biz-1", "userId": "op-1", "message": "hello", "frontendData": {"patients": []}},
        headers=AUTH,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["responseId"] == "r-1"
    assert body["sessionId"] == "session-1"
    assert body["actions"][0]["type"] == "greeting"
    request = process.await_args.args[0]
    assert request.business_id == "biz-1"
    assert request.frontend_data == {"patients": []}


def test_operator_message_validation(test_client):
    response = test_client.post(f"{API_PREFIX}/agent/messages", json={"businessId": "biz-1"}, headers=AUTH)
    assert response.status_code == 422


def test_channel_webhook_replies_through_channel(test_client, mocker):
    result = AutonomousActionResult(
        success=True,
        workflow_results=[WorkflowStepResult(step=1, action="create_reservation", success=True, data={"id": "r-1"})],
        notification="New reservation",
        should_respond=True,
        response="Your appointment is booked.",
    )
    process = mocker.patch("orchestrator.routes.webhooks.agent_service.process_webhook_message", new_callable=AsyncMock, return_value=result)
    send = mocker.patch("orchestrator.routes.webhooks.channel_service.send_message", new_callable=AsyncMock, return_value={"success": True})

    response = test_client.post(
        f"{API_PREFIX}/webhooks/twilio",
        json={"businessId": "biz-1", "locationId": "loc-1", "userId": "+40712345678", "message": "Book me tomorrow"},
        headers=AUTH,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["shouldRespond"] is True
    assert body["workflowResults"][0]["action"] == "create_reservation"
    assert process.await_args.args[0].source == "twilio"
    send.assert_awaited_once_with("twilio", "+40712345678", "Your appointment is booked.", "biz-1")


def test_channel_webhook_without_reply(test_client, mocker):
    mocker.patch(
        "orchestrator.routes.webhooks.agent_service.process_webhook_message",
        new_callable=AsyncMock,
        return_value=AutonomousActionResult(success=False, should_respond=False),
    )
    send = mocker.patch("orchestrator.routes.webhooks.channel_service.send_message", new_callable=AsyncMock)

    response = test_client.post(
        f"{API_PREFIX}/webhooks/meta",
        json={"businessId": "biz-1", "userId": "user-1", "message": "hello"},
        headers=AUTH,
    )

    assert response.status_code == 200
    send.assert_not_awaited()


def test_unknown_platform_is_rejected(test_client, mocker):
    process = mocker.patch("orchestrator.routes.webhooks.agent_service.process_webhook_message", new_callable=AsyncMock)

    response = test_client.post(
        f"{API_PREFIX}/webhooks/carrier-pigeon",
        json={"businessId": "biz-1", "userId": "user-1", "message": "hello"},
        headers=AUTH,
    )

    assert response.status_code == 404
    process.assert_not_awaited()


def test_channel_webhook_through_customer_pipeline(test_client, mocker):
    process = mocker.patch(
        "orchestrator.routes.webhooks.agent_service.process_customer_message",
        new_callable=AsyncMock,
        return_value=AgentResponse(response_id="r-2", message="Welcome!", session_id="s-2"),
    )

    response = test_client.post(
        f"{API_PREFIX}/webhooks/meta/pipeline",
        json={"businessId": "biz-1", "userId": "user-1", "message": "What services do you offer?"},
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Welcome!"
    assert process.await_args.args[0].source == "meta"
