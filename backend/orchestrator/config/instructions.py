# /orchestrator/config/instructions.py

# This file holds the built-in behavioural rules used when the instruction
# store has nothing for a role, plus the keyword lists the pipeline stages
# use to branch. Stored instructions always take precedence over these.

OPERATOR_ROLE = "operator"
CLIENT_ROLE = "client"

INSTRUCTION_VERSION = "v1"
GENERAL_CATEGORY = "general"

# Topic used when building the lookup key {category}.{role}.{topic}.{version}
DEFAULT_TOPICS = {
    OPERATOR_ROLE: "complete_guidance",
    CLIENT_ROLE: "limited_access",
}

ROLE_CAPABILITIES = {
    OPERATOR_ROLE: {
        "can_access_all_data": True,
        "can_view_personal_info": True,
        "can_modify_reservations": True,
        "can_list_all_resources": True,
        "response_style": "concise",
    },
    CLIENT_ROLE: {
        "can_access_all_data": False,
        "can_view_personal_info": False,
        "can_modify_reservations": False,
        "can_list_all_resources": True,
        "response_style": "friendly_guidance",
    },
}

# Markers that must never reach a non-operator role, matched case-insensitively
# against the serialized instruction body.
SENSITIVE_MARKERS = [
    "personal_data",
    "personal data",
    "full_history",
    "full history",
    "admin",
    "coordinator",
    "medical_record",
    "medical record",
    "payment_details",
    "internal_notes",
    "all_patients",
]

BUILTIN_INSTRUCTIONS = {
    OPERATOR_ROLE: {
        "key": f"{GENERAL_CATEGORY}.{OPERATOR_ROLE}.builtin.{INSTRUCTION_VERSION}",
        "business_type": GENERAL_CATEGORY,
        "category": "operator_guidelines",
        "role": OPERATOR_ROLE,
        "version": INSTRUCTION_VERSION,
        "is_active": True,
        "capabilities": ROLE_CAPABILITIES[OPERATOR_ROLE],
        "instructions": {
            "primary": (
                "Assist the operator with full access to business data. Answer concisely, "
                "include the relevant records and suggest next steps."
            ),
            "data_access": "Full access to reservations, customers, services and reports.",
        },
        "keywords": ["report", "reservations", "customers", "draft"],
    },
    CLIENT_ROLE: {
        "key": f"{GENERAL_CATEGORY}.{CLIENT_ROLE}.builtin.{INSTRUCTION_VERSION}",
        "business_type": GENERAL_CATEGORY,
        "category": "client_guidelines",
        "role": CLIENT_ROLE,
        "version": INSTRUCTION_VERSION,
        "is_active": True,
        "capabilities": ROLE_CAPABILITIES[CLIENT_ROLE],
        "instructions": {
            "primary": (
                "Guide the customer in a friendly way. Share public information about services, "
                "opening hours and available slots. Never reveal information about other customers."
            ),
            "booking": "Help the customer pick a service, a date and a time before booking.",
        },
        "keywords": ["services", "booking", "availability", "prices"],
    },
}

# Operator messages that only ask for orientation rather than data
GREETING_KEYWORDS = [
    "hello", "hi", "hey", "good morning", "good afternoon", "salut", "buna",
    "what can you do", "how can you help", "help me", "how are you",
]

# Operator messages that ask for something to be created
DRAFT_KEYWORDS = [
    "create", "add", "new", "draft", "template", "form",
    "patient", "appointment", "reservation", "booking", "service", "client",
]
