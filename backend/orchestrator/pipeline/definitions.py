# /orchestrator/pipeline/definitions.py

"""
The two pipeline variants as ordered stage lists (pure data).

Operator (console) messages:
    identify -> load memory -> resolve instructions -> classify request
    -> [greeting | console queries -> drafts] -> operator response -> persist memory

Customer (external channel) messages:
    identify -> load memory -> resolve instructions -> recognize customer
    -> public data -> treatment queries -> booking guidance -> customer response
    -> persist memory

The greeting and console branches are selected with `gated` flags set by
classify_operator_request; every other stage always runs.
"""

from typing import List

from orchestrator.pipeline.executor import Stage, gated
from orchestrator.pipeline.stages import customer, identification, instructions, memory, operator

OPERATOR_PIPELINE_NAME = "operator"
CUSTOMER_PIPELINE_NAME = "customer"

OPERATOR_PIPELINE: List[Stage] = [
    identification.identify_sender,
    memory.load_dynamic_memory,
    instructions.resolve_instructions,
    operator.classify_operator_request,
    gated("is_greeting", operator.operator_greeting),
    gated("needs_frontend_round_trip", operator.plan_frontend_queries),
    gated("needs_draft", operator.create_drafts),
    operator.synthesize_operator_response,
    memory.persist_dynamic_memory,
]

CUSTOMER_PIPELINE: List[Stage] = [
    identification.identify_sender,
    memory.load_dynamic_memory,
    instructions.resolve_instructions,
    customer.recognize_customer,
    customer.gather_app_server_data,
    customer.query_treatments,
    customer.build_booking_guidance,
    customer.synthesize_customer_response,
    memory.persist_dynamic_memory,
]
