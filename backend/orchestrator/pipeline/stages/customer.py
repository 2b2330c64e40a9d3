# /orchestrator/pipeline/stages/customer.py

import re
import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from orchestrator.config import strings
from orchestrator.config.prompts import (
    APP_SERVER_PLAN_PROMPT,
    TREATMENT_QUERY_PROMPT,
    BOOKING_GUIDANCE_PROMPT,
    CUSTOMER_RESPONSE_PROMPT,
)
from orchestrator.models.context import AgentAction, ProcessingContext, Role
from orchestrator.pipeline.executor import append_items
from orchestrator.pipeline.stages.identification import business_name, business_type, business_now
from orchestrator.pipeline.stages.memory import platform_of
from orchestrator.services.ai_service import ai_service
from orchestrator.services.resource_service import resource_service

# Customer (external channel) stages. Customers only ever see public business
# data: services, availability and the treatment catalogue.

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"(\+?40|0)[0-9]{9}")
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

PUBLIC_RESOURCE_TYPES = {"treatment", "treatments", "service", "services"}
AVAILABLE_DATES_WINDOW_DAYS = 7
TIME_SLOT_DAYS = 3

EMPTY_APP_SERVER_PLAN = {"appServerRequests": [], "needsAppServerData": False}
EMPTY_TREATMENT_PLAN = {"databaseQueries": [], "needsDatabaseQuery": False}
EMPTY_GUIDANCE = {"bookingGuidance": {}, "needsBookingGuidance": False}


def _today(context: ProcessingContext) -> date:
    if context.time_context:
        try:
            return date.fromisoformat(context.time_context.current_date)
        except ValueError:
            pass
    return business_now().date()


def _dicts(value: Any) -> List[Dict[str, Any]]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


# ==================== Recognition ====================

def extract_contact_hints(message: str) -> Dict[str, str]:
    hints = {}
    phone = PHONE_RE.search(message)
    if phone:
        hints["phone"] = phone.group(0)
    email = EMAIL_RE.search(message)
    if email:
        hints["email"] = email.group(0)
    return hints


def _most_recent(memories: Dict[str, Dict[str, Any]]) -> Optional[str]:
    if not memories:
        return None
    return max(memories, key=lambda platform: str(memories[platform].get("last_interaction") or ""))


async def recognize_customer(context: ProcessingContext) -> Dict[str, Any]:
    """
    Decides whether the sender is new, returning on this channel, or known
    from another channel. Channel memories are keyed by platform, so a record
    under any other platform is a cross-channel match.
    """
    current_platform = platform_of(context)
    hints = extract_contact_hints(context.message)

    try:
        known_platforms = sorted(context.channel_memories)
        other_channels = {p: r for p, r in context.channel_memories.items() if p != current_platform}

        if context.user_memory:
            profile = {
                "is_existing_customer": True,
                "cross_channel": bool(other_channels),
                "platform": current_platform,
                "known_platforms": known_platforms,
                "interaction_count": context.user_memory.get("interaction_count", 0),
                "name": context.user_memory.get("customer_name"),
            }
            greeting = strings.CUSTOMER_WELCOME_BACK.format(business_name=business_name(context))
        elif other_channels:
            previous_platform = _most_recent(other_channels)
            previous = other_channels[previous_platform]
            profile = {
                "is_existing_customer": True,
                "cross_channel": True,
                "platform": current_platform,
                "previous_platform": previous_platform,
                "known_platforms": known_platforms,
                "interaction_count": previous.get("interaction_count", 0),
                "name": previous.get("customer_name"),
            }
            greeting = strings.CROSS_CHANNEL_GREETING.format(previous_platform=previous_platform)
        else:
            profile = {
                "is_existing_customer": False,
                "cross_channel": False,
                "needs_registration": True,
                "platform": current_platform,
            }
            greeting = strings.CUSTOMER_WELCOME.format(business_name=business_name(context))
    except Exception as e:
        logger.warning(f"Customer recognition failed for {context.user_id}: {e}")
        return {"customer_profile": {"is_existing_customer": False, "needs_registration": True, **hints}}

    patch: Dict[str, Any] = {"customer_profile": {**profile, **hints}, "greeting": greeting}
    if profile["is_existing_customer"] and context.role != Role.ANONYMOUS:
        patch["role"] = Role.EXISTING_CUSTOMER
    return patch


# ==================== Public business data ====================

async def _run_app_server_request(context: ProcessingContext, request: Dict[str, Any], today: date) -> Optional[Dict[str, Any]]:
    request_type = request.get("type")
    parameters = request.get("parameters") if isinstance(request.get("parameters"), dict) else {}
    business_id, location_id = context.business_id, context.location_id

    if request_type == "services":
        return {"services": await resource_service.get_public_services(business_id, location_id)}
    if request_type == "available_dates":
        dates = await resource_service.get_available_dates(
            business_id, location_id,
            today.isoformat(),
            (today + timedelta(days=AVAILABLE_DATES_WINDOW_DAYS)).isoformat(),
            parameters.get("serviceId"),
        )
        return {"available_dates": dates}
    if request_type == "time_slots":
        if not parameters.get("date"):
            return None
        slots = await resource_service.get_time_slots(
            business_id, location_id, parameters["date"], parameters.get("serviceId")
        )
        return {"time_slots": slots}
    if request_type == "business_info":
        return {"business_info": await resource_service.get_business_info(business_id) or {}}
    if request_type == "location_info":
        return {"location_info": await resource_service.get_location_info(business_id, location_id) or {}}
    return None


async def gather_app_server_data(context: ProcessingContext) -> Dict[str, Any]:
    prompt = APP_SERVER_PLAN_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        message=context.message,
    )
    plan = await ai_service.get_json_or_default(prompt, EMPTY_APP_SERVER_PLAN)
    requests = _dicts(plan.get("appServerRequests"))
    if not plan.get("needsAppServerData") or not requests:
        return {"flags": {"needs_external_call": False}}

    today = _today(context)
    data: Dict[str, Any] = {}
    calls = []
    for request in requests:
        try:
            result = await _run_app_server_request(context, request, today)
        except Exception as e:
            logger.warning(f"App server request '{request.get('type')}' failed: {e}")
            calls.append({"type": request.get("type"), "success": False, "error": str(e)})
            continue
        if result is None:
            continue
        data.update(result)
        calls.append({"type": request.get("type"), "success": True})

    return {
        "app_server_data": data,
        **append_items(context, "external_api_results", calls),
        "flags": {"needs_external_call": True},
    }


async def query_treatments(context: ProcessingContext) -> Dict[str, Any]:
    if not context.capabilities.get("can_list_all_resources", True):
        return {"flags": {"needs_resource_search": False}}

    prompt = TREATMENT_QUERY_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        message=context.message,
    )
    plan = await ai_service.get_json_or_default(prompt, EMPTY_TREATMENT_PLAN)
    queries = _dicts(plan.get("databaseQueries"))
    if not plan.get("needsDatabaseQuery") or not queries:
        return {"flags": {"needs_resource_search": False}}

    results, operations = [], []
    for query in queries:
        resource_type = str(query.get("resourceType") or "treatment")
        entry: Dict[str, Any] = {"query": query, "timestamp": datetime.utcnow().isoformat()}
        if resource_type not in PUBLIC_RESOURCE_TYPES:
            entry["error"] = f"Resource type '{resource_type}' is not public"
            results.append(entry)
            continue
        filters = query.get("filters") if isinstance(query.get("filters"), dict) else {}
        operations.append({"operation": "read", "resource_type": resource_type})
        try:
            entry["result"] = await resource_service.execute_operation(
                "read", resource_type, context.business_id, context.location_id, filters
            )
        except Exception as e:
            logger.warning(f"Treatment query on '{resource_type}' failed: {e}")
            entry["error"] = str(e)
        results.append(entry)

    return {
        **append_items(context, "generated_queries", queries),
        **append_items(context, "query_results", results),
        **append_items(context, "resource_operations", operations),
        "flags": {"needs_resource_search": True},
    }


# ==================== Booking guidance ====================

async def _real_time_availability(context: ProcessingContext, today: date) -> Dict[str, Any]:
    available_dates = await resource_service.get_available_dates(
        context.business_id, context.location_id,
        today.isoformat(), (today + timedelta(days=AVAILABLE_DATES_WINDOW_DAYS)).isoformat(),
    )
    time_slots = []
    for offset in range(TIME_SLOT_DAYS):
        day = (today + timedelta(days=offset)).isoformat()
        slots = await resource_service.get_time_slots(context.business_id, context.location_id, day)
        time_slots.append({
            "date": day,
            "slots": [s for s in slots if not isinstance(s, dict) or s.get("isAvailable", True)],
        })
    return {
        "availableDates": available_dates,
        "timeSlots": time_slots,
        "lastUpdated": datetime.utcnow().isoformat(),
    }


async def build_booking_guidance(context: ProcessingContext) -> Dict[str, Any]:
    if not context.app_server_data and not context.query_results:
        return {"flags": {"needs_booking_guidance": False}}

    prompt = BOOKING_GUIDANCE_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        message=context.message,
        services=json.dumps(context.app_server_data.get("services", []), default=str),
        available_dates=json.dumps(context.app_server_data.get("available_dates", []), default=str),
        query_results=json.dumps(context.query_results, default=str),
    )
    parsed = await ai_service.get_json_or_default(prompt, EMPTY_GUIDANCE)
    guidance = parsed.get("bookingGuidance") if isinstance(parsed.get("bookingGuidance"), dict) else {}

    real_time = await _real_time_availability(context, _today(context))
    return {
        "booking_guidance": {**guidance, "availableSlots": real_time["timeSlots"], "realTimeData": real_time},
        "flags": {"needs_booking_guidance": bool(parsed.get("needsBookingGuidance"))},
    }


# ==================== Response ====================

def _customer_note(context: ProcessingContext) -> str:
    profile = context.customer_profile
    if profile.get("cross_channel") and profile.get("previous_platform"):
        return f"Returning customer, previously contacted us via {profile['previous_platform']}"
    if profile.get("is_existing_customer"):
        return f"Returning customer ({profile.get('interaction_count', 0)} previous interactions)"
    return "New customer"


def customer_actions(context: ProcessingContext) -> List[AgentAction]:
    actions = []
    services = context.app_server_data.get("services") or []
    if services:
        actions.append(AgentAction(type="view_services", details={"title": "View available services", "data": services}))
    available_dates = context.app_server_data.get("available_dates") or []
    if available_dates:
        actions.append(AgentAction(type="view_available_dates", details={"title": "View available dates", "data": available_dates}))
    treatments = [r for r in context.query_results if "result" in r]
    if treatments:
        actions.append(AgentAction(type="view_treatments", details={"title": "View treatments", "data": treatments}))
    if context.booking_guidance:
        actions.append(AgentAction(type="book_appointment", details={"title": "Book an appointment", "data": context.booking_guidance}))
    return actions


async def synthesize_customer_response(context: ProcessingContext) -> Dict[str, Any]:
    """Terminal stage: friendly reply built only from public data, plus the customer actions."""
    time_context = context.time_context
    prompt = CUSTOMER_RESPONSE_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        instructions=json.dumps([i.get("instructions", {}) for i in context.instructions], default=str),
        response_style=context.capabilities.get("response_style", "friendly_guidance"),
        customer_note=_customer_note(context),
        current_date=time_context.current_date if time_context else "",
        current_time=time_context.current_time if time_context else "",
        day_of_week=time_context.day_of_week if time_context else "",
        is_business_hours=time_context.is_business_hours if time_context else "unknown",
        history=json.dumps([{"role": t.role, "content": t.content} for t in context.conversation_history], ensure_ascii=False),
        services=json.dumps(context.app_server_data.get("services", []), default=str),
        available_dates=json.dumps(context.app_server_data.get("available_dates", []), default=str),
        query_results=json.dumps([r for r in context.query_results if "result" in r], default=str),
        booking_guidance=json.dumps(context.booking_guidance, default=str),
        message=context.message,
    )
    response = await ai_service.generate_response(prompt)

    # Greet only on the first turn of a session
    if context.greeting and not context.conversation_history:
        response = f"{context.greeting}\n\n{response}"
    return {"response": response, "actions": customer_actions(context)}
