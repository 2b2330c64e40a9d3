# /orchestrator/workflows/definitions.py

"""
Autonomous workflow definitions as pure data (no logic).

Each definition is a RagInstruction document: an ordered list of steps, the
success criteria evaluated after the run and the operator notification
template. They are seeded into the instruction store by
`backend/scripts/seed_instructions.py`; at runtime only stored instructions are used.

Step actions with dedicated handling in the engine:
- identify_request: records the classified request type
- extract_reservation_details: completion-based slot extraction
- create_reservation: creates a `reservations` resource from `data_template`
- send_confirmation: replies through the originating channel
Steps carrying an `api_call` run a templated resource operation; any other
action is a pass-through that always succeeds.
"""

from typing import Any, Dict, List

# HTTP method of an api_call -> resource operation
HTTP_METHOD_OPERATIONS: Dict[str, str] = {
    "POST": "create",
    "GET": "read",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}

DEFAULT_OPERATION = "read"

RESERVATION_RESOURCE = "reservations"


def fallback_instruction(business_type: str) -> Dict[str, Any]:
    """Generic two-step workflow seeded for every business type."""
    return {
        "instruction_id": f"{business_type}.fallback.v1",
        "business_type": business_type,
        "category": "fallback",
        "instruction": f"Basic request handling for {business_type}",
        "workflow": [
            {
                "step": 1,
                "action": "identify_request",
                "description": "Identify the request type",
                "validation": "has_request_type",
                "error_handling": "stop",
            },
            {
                "step": 2,
                "action": "process_request",
                "description": "Process the request",
                "validation": "request_processed",
            },
        ],
        "required_permissions": ["basic_access"],
        "api_endpoints": ["/api/basic"],
        "success_criteria": ["request_processed"],
        "notification_template": "Request from {user} processed via {source}",
        "is_active": True,
        "metadata": {
            "examples": ["basic request"],
            "keywords": ["basic", "fallback"],
            "confidence": 0.5,
        },
    }


def reservation_instruction(business_type: str) -> Dict[str, Any]:
    """Books an appointment from a free-text request and confirms it on the same channel."""
    return {
        "instruction_id": f"{business_type}.reservation.v1",
        "business_type": business_type,
        "category": "reservation",
        "instruction": "Create a reservation from the customer's message and confirm it",
        "workflow": [
            {
                "step": 1,
                "action": "extract_reservation_details",
                "description": "Extract date, time and service from the message",
                "validation": "has_date_and_service",
                "error_handling": "stop",
            },
            {
                "step": 2,
                "action": "create_reservation",
                "description": "Create the reservation",
                "data_template": {
                    "businessId": "{businessId}",
                    "locationId": "{locationId}",
                    "customerId": "{customerId}",
                    "date": "{date}",
                    "time": "{time}",
                    "service": "{service}",
                    "status": "pending",
                },
                "validation": "reservation_created",
                "error_handling": "stop",
            },
            {
                "step": 3,
                "action": "send_confirmation",
                "description": "Confirm the reservation to the customer",
                "error_handling": "continue",
            },
        ],
        "required_permissions": ["reservations:write"],
        "api_endpoints": ["/resources/reservations"],
        "success_criteria": ["reservation_created"],
        "notification_template": "New reservation from {user} via {source} on {data}",
        "is_active": True,
        "metadata": {
            "examples": ["I want to book an appointment", "can I come tomorrow"],
            "keywords": ["book", "booking", "appointment", "reservation", "reserve"],
            "confidence": 0.9,
        },
    }


def default_workflow_instructions(business_types: List[str]) -> List[Dict[str, Any]]:
    instructions = []
    for business_type in business_types:
        instructions.append(reservation_instruction(business_type))
        instructions.append(fallback_instruction(business_type))
    return instructions
