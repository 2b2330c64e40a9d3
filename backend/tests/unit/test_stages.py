# backend/tests/unit/test_stages.py
import pytest
from datetime import datetime
from unittest.mock import AsyncMock

from orchestrator.models.context import ActionStatus, Role, SourceType
from orchestrator.pipeline.stages import customer, operator
from orchestrator.pipeline.stages.identification import build_time_context, identify_sender
from orchestrator.services.ai_service import ai_service
from orchestrator.services.resource_service import resource_service


# --- identification ---

@pytest.mark.asyncio
async def test_console_messages_come_from_operators(make_context):
    patch = await identify_sender(make_context(source=SourceType.WEBSOCKET))

    assert patch["role"] == Role.OPERATOR
    assert "flags" not in patch
    assert patch["capabilities"]["can_access_all_data"] is True
    assert patch["time_context"] is not None


@pytest.mark.asyncio
async def test_webhook_roles(make_context):
    assert (await identify_sender(make_context()))["role"] == Role.NEW_CUSTOMER
    assert (await identify_sender(make_context(user_id="")))["role"] == Role.ANONYMOUS
    assert (await identify_sender(make_context(source=SourceType.CRON)))["role"] == Role.ANONYMOUS


def test_business_hours_are_weekdays_only():
    monday_morning = build_time_context(datetime(2026, 10, 19, 9, 0), 9, 18)
    monday_evening = build_time_context(datetime(2026, 10, 19, 18, 0), 9, 18)
    saturday_noon = build_time_context(datetime(2026, 10, 24, 12, 0), 9, 18)

    assert monday_morning.is_business_hours is True
    assert monday_morning.day_of_week == "Monday"
    assert monday_morning.current_date == "2026-10-19"
    assert monday_evening.is_business_hours is False
    assert saturday_noon.is_weekend is True
    assert saturday_noon.is_business_hours is False


# --- operator stages ---

def test_greeting_detection_uses_whole_words():
    assert operator.is_general_greeting("Hi there")
    assert operator.is_general_greeting("what can you do?")
    assert not operator.is_general_greeting("show this week's bookings")


@pytest.mark.asyncio
async def test_classify_operator_request_sets_branch_flags(make_context):
    greeting = await operator.classify_operator_request(make_context(message="hello"))
    request = await operator.classify_operator_request(make_context(message="list today's reservations"))

    assert greeting["flags"] == {"is_greeting": True, "needs_frontend_round_trip": False}
    assert request["flags"] == {"is_greeting": False, "needs_frontend_round_trip": True}


@pytest.mark.asyncio
async def test_frontend_queries_are_answered_from_console_snapshot(mocker, make_context):
    mocker.patch.object(ai_service, "get_json_or_default", new_callable=AsyncMock, return_value={
        "frontendQueries": [{"repository": "patients"}, {"repository": "invoices"}],
        "needsFrontendInteraction": True,
    })
    context = make_context(
        source=SourceType.WEBSOCKET,
        message="create a reservation for Ana",
        frontend_data={"patients": [{"name": "Ana"}]},
    )

    patch = await operator.plan_frontend_queries(context)

    found = [r["found"] for r in patch["query_results"]]
    assert found == [True, False]
    assert patch["query_results"][0]["data"] == [{"name": "Ana"}]
    assert patch["flags"] == {"needs_frontend_round_trip": True, "needs_draft": True}


@pytest.mark.asyncio
async def test_operator_response_actions(mocker, make_context):
    mocker.patch.object(ai_service, "generate_response", new_callable=AsyncMock, return_value="Here is the data.")
    context = make_context(
        source=SourceType.WEBSOCKET,
        generated_queries=[{"repository": "patients"}],
        query_results=[{"repository": "patients", "found": True, "data": []}],
        drafts=[{"title": "New patient", "status": "pending"}],
    )

    patch = await operator.synthesize_operator_response(context)

    assert patch["response"] == "Here is the data."
    assert [a.type for a in patch["actions"]] == ["view_data", "work_with_drafts", "modify_queries"]
    assert patch["actions"][1].status == ActionStatus.PENDING


@pytest.mark.asyncio
async def test_operator_greeting_response(make_context):
    context = make_context(source=SourceType.WEBSOCKET, flags={"is_greeting": True}, greeting="Hi!")

    patch = await operator.synthesize_operator_response(context)

    assert patch["response"] == "Hi!"
    assert patch["actions"][0].type == "greeting"


# --- customer stages ---

@pytest.mark.asyncio
async def test_treatment_queries_only_touch_public_resources(mocker, make_context):
    mocker.patch.object(ai_service, "get_json_or_default", new_callable=AsyncMock, return_value={
        "databaseQueries": [
            {"resourceType": "treatments", "filters": {"category": "cleaning"}},
            {"resourceType": "patients"},
        ],
        "needsDatabaseQuery": True,
    })
    execute = mocker.patch.object(resource_service, "execute_operation", new_callable=AsyncMock, return_value=[{"name": "Cleaning"}])

    patch = await customer.query_treatments(make_context(capabilities={"can_list_all_resources": True}))

    execute.assert_awaited_once_with("read", "treatments", "biz-1", "loc-1", {"category": "cleaning"})
    assert patch["query_results"][0]["result"] == [{"name": "Cleaning"}]
    assert "not public" in patch["query_results"][1]["error"]
    assert patch["resource_operations"] == [{"operation": "read", "resource_type": "treatments"}]


@pytest.mark.asyncio
async def test_treatment_queries_require_listing_capability(mocker, make_context):
    plan = mocker.patch.object(ai_service, "get_json_or_default", new_callable=AsyncMock)

    patch = await customer.query_treatments(make_context(capabilities={"can_list_all_resources": False}))

    assert patch == {"flags": {"needs_resource_search": False}}
    plan.assert_not_awaited()


@pytest.mark.asyncio
async def test_app_server_data_collects_requested_sources(mocker, make_context):
    mocker.patch.object(ai_service, "get_json_or_default", new_callable=AsyncMock, return_value={
        "appServerRequests": [{"type": "services"}, {"type": "available_dates"}, {"type": "time_slots"}],
        "needsAppServerData": True,
    })
    mocker.patch.object(resource_service, "get_public_services", new_callable=AsyncMock, return_value=[{"id": "s1"}])
    dates = mocker.patch.object(resource_service, "get_available_dates", new_callable=AsyncMock, return_value=["2026-10-20"])
    slots = mocker.patch.object(resource_service, "get_time_slots", new_callable=AsyncMock)

    patch = await customer.gather_app_server_data(make_context())

    assert patch["app_server_data"] == {"services": [{"id": "s1"}], "available_dates": ["2026-10-20"]}
    assert [call["type"] for call in patch["external_api_results"]] == ["services", "available_dates"]
    assert patch["flags"] == {"needs_external_call": True}
    dates.assert_awaited_once()
    # time slots without a date are skipped
    slots.assert_not_awaited()


@pytest.mark.asyncio
async def test_booking_guidance_adds_real_time_availability(mocker, make_context):
    mocker.patch.object(ai_service, "get_json_or_default", new_callable=AsyncMock, return_value={
        "bookingGuidance": {"suggestedService": "cleaning"}, "needsBookingGuidance": True,
    })
    mocker.patch.object(resource_service, "get_available_dates", new_callable=AsyncMock, return_value=["2026-10-20"])
    slots = mocker.patch.object(resource_service, "get_time_slots", new_callable=AsyncMock, return_value=[
        {"time": "10:00", "isAvailable": True}, {"time": "11:00", "isAvailable": False},
    ])

    patch = await customer.build_booking_guidance(make_context(app_server_data={"services": [{"id": "s1"}]}))

    guidance = patch["booking_guidance"]
    assert guidance["suggestedService"] == "cleaning"
    assert len(guidance["availableSlots"]) == 3
    assert guidance["availableSlots"][0]["slots"] == [{"time": "10:00", "isAvailable": True}]
    assert slots.await_count == 3
    assert patch["flags"] == {"needs_booking_guidance": True}


@pytest.mark.asyncio
async def test_customer_response_greets_on_first_turn_only(mocker, make_context):
    mocker.patch.object(ai_service, "generate_response", new_callable=AsyncMock, return_value="We have slots tomorrow.")
    context = make_context(
        greeting="Welcome!",
        app_server_data={"services": [{"id": "s1"}]},
        booking_guidance={"availableSlots": []},
    )

    patch = await customer.synthesize_customer_response(context)

    assert patch["response"] == "Welcome!\n\nWe have slots tomorrow."
    assert [a.type for a in patch["actions"]] == ["view_services", "book_appointment"]
