# backend/tests/unit/test_instructions.py
import pytest
from datetime import datetime
from unittest.mock import AsyncMock

from orchestrator.config import instructions as defaults
from orchestrator.models.context import Role, SourceType
from orchestrator.pipeline.stages.instructions import resolve_instructions
from orchestrator.services.instruction_service import (
    contains_sensitive_marker, filter_visible, instruction_key, instruction_service
)
from orchestrator.workflows.definitions import reservation_instruction, fallback_instruction


@pytest.mark.asyncio
async def test_client_falls_back_to_builtin_instruction(mocker):
    get = mocker.patch("orchestrator.services.instruction_service.db_service.get_document", new_callable=AsyncMock, return_value=None)

    resolved = await instruction_service.resolve("client", "dental")

    assert [call.args[1] for call in get.await_args_list] == [
        "dental.client.limited_access.v1",
        "general.client.limited_access.v1",
    ]
    assert len(resolved) == 1
    assert resolved[0]["key"] == defaults.BUILTIN_INSTRUCTIONS["client"]["key"]
    capabilities = instruction_service.capabilities_for("client", resolved)
    assert capabilities["can_access_all_data"] is False
    assert capabilities["can_view_personal_info"] is False


@pytest.mark.asyncio
async def test_category_instruction_wins_over_general(mocker):
    stored = {
        "key": "dental.operator.complete_guidance.v1",
        "role": "operator",
        "is_active": True,
        "instructions": {"primary": "Dental operator rules"},
    }

    async def fake_get(collection, key):
        return dict(stored) if key == stored["key"] else {"key": key, "role": "operator", "is_active": True}

    mocker.patch("orchestrator.services.instruction_service.db_service.get_document", side_effect=fake_get)

    resolved = await instruction_service.resolve("operator", "dental")

    assert [i["key"] for i in resolved] == ["dental.operator.complete_guidance.v1"]


@pytest.mark.asyncio
async def test_inactive_instruction_is_skipped(mocker):
    async def fake_get(collection, key):
        if key.startswith("dental."):
            return {"key": key, "role": "client", "is_active": False}
        return {"key": key, "role": "client", "is_active": True, "instructions": {"primary": "General rules"}}

    mocker.patch("orchestrator.services.instruction_service.db_service.get_document", side_effect=fake_get)

    resolved = await instruction_service.resolve("client", "dental")

    assert resolved[0]["key"] == "general.client.limited_access.v1"


@pytest.mark.asyncio
async def test_lookup_errors_fall_through_to_builtin(mocker):
    mocker.patch("orchestrator.services.instruction_service.db_service.get_document", new_callable=AsyncMock, side_effect=RuntimeError("down"))

    resolved = await instruction_service.resolve("operator", "dental")

    assert resolved[0]["key"] == defaults.BUILTIN_INSTRUCTIONS["operator"]["key"]


@pytest.mark.asyncio
async def test_client_never_sees_sensitive_stored_instruction(mocker):
    leaked = {
        "key": "dental.client.limited_access.v1",
        "role": "client",
        "is_active": True,
        "instructions": {"primary": "Share the internal_notes of the patient"},
    }
    mocker.patch("orchestrator.services.instruction_service.db_service.get_document", new_callable=AsyncMock, return_value=leaked)

    assert await instruction_service.resolve("client", "dental") == []


def test_filter_visible_for_non_operator_roles():
    instructions = [
        {"key": "general.operator.complete_guidance.v1", "instructions": {"primary": "All data"}},
        {"key": "general.client.limited_access.v1", "instructions": {"primary": "Ask the Coordinator"}},
        {"key": "general.client.limited_access.v1", "instructions": {"primary": "Be friendly"}},
    ]

    visible = filter_visible(instructions, "client")

    assert visible == [instructions[2]]
    assert filter_visible(instructions, "operator") == instructions


def test_builtin_client_instruction_has_no_sensitive_marker():
    assert not contains_sensitive_marker(defaults.BUILTIN_INSTRUCTIONS["client"])


def test_instruction_key_format():
    assert instruction_key("dental", "operator", "complete_guidance") == "dental.operator.complete_guidance.v1"


def test_restricted_role_capabilities_cannot_be_widened():
    capabilities = instruction_service.capabilities_for(
        "client", [{"capabilities": {"can_access_all_data": True, "response_style": "formal"}}]
    )

    assert capabilities["can_access_all_data"] is False
    assert capabilities["response_style"] == "formal"


@pytest.mark.asyncio
async def test_resolve_instructions_stage_uses_client_view_for_customers(mocker, make_context):
    resolve = mocker.patch.object(instruction_service, "resolve", new_callable=AsyncMock, return_value=[])

    patch = await resolve_instructions(make_context(role=Role.NEW_CUSTOMER))

    resolve.assert_awaited_once_with("client", "dental")
    assert patch["capabilities"]["can_access_all_data"] is False


@pytest.mark.asyncio
async def test_resolve_instructions_stage_for_operators(mocker, make_context):
    resolve = mocker.patch.object(instruction_service, "resolve", new_callable=AsyncMock, return_value=[])

    patch = await resolve_instructions(make_context(source=SourceType.WEBSOCKET, role=Role.OPERATOR))

    resolve.assert_awaited_once_with("operator", "dental")
    assert patch["capabilities"]["can_access_all_data"] is True


# --- workflow instructions ---

@pytest.mark.asyncio
async def test_workflow_instructions_ranked_by_confidence_then_recency(mocker):
    older = {**reservation_instruction("dental"), "instruction_id": "older", "created_at": datetime(2026, 1, 1)}
    newer = {**reservation_instruction("dental"), "instruction_id": "newer", "created_at": datetime(2026, 6, 1)}
    fallback = fallback_instruction("dental")
    query = mocker.patch(
        "orchestrator.services.instruction_service.db_service.query_documents",
        new_callable=AsyncMock,
        return_value=[fallback, older, newer, {"instruction_id": "broken"}],
    )

    found = await instruction_service.get_instructions_for_request(
        "booking", "dental", {"message": "I want to book an appointment"}
    )

    assert [i.instruction_id for i in found] == ["newer", "older"]
    assert query.await_args.args[1] == {"business_type": "dental", "is_active": True}


@pytest.mark.asyncio
async def test_workflow_keywords_match_fuzzily(mocker):
    mocker.patch(
        "orchestrator.services.instruction_service.db_service.query_documents",
        new_callable=AsyncMock,
        return_value=[reservation_instruction("dental")],
    )

    found = await instruction_service.get_instructions_for_request("other", "dental", {"message": "need an apointment"})

    assert [i.instruction_id for i in found] == ["dental.reservation.v1"]


@pytest.mark.asyncio
async def test_unrelated_request_matches_no_workflow(mocker):
    mocker.patch(
        "orchestrator.services.instruction_service.db_service.query_documents",
        new_callable=AsyncMock,
        return_value=[reservation_instruction("dental")],
    )

    assert await instruction_service.get_instructions_for_request("prices", "dental", {"message": "how much is it"}) == []
