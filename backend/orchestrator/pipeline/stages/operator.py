# /orchestrator/pipeline/stages/operator.py

import re
import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from orchestrator.config import strings
from orchestrator.config.instructions import GREETING_KEYWORDS, DRAFT_KEYWORDS
from orchestrator.config.prompts import FRONTEND_QUERY_PROMPT, DRAFT_PROMPT, OPERATOR_RESPONSE_PROMPT
from orchestrator.models.context import ActionStatus, AgentAction, ProcessingContext
from orchestrator.pipeline.executor import append_items
from orchestrator.pipeline.stages.identification import business_name, business_type
from orchestrator.services.ai_service import ai_service

# Operator console stages. Console data is never fetched from the server:
# queries are answered from the snapshot the console sent with the message.

logger = logging.getLogger(__name__)

_GREETING_RES = [re.compile(rf"\b{re.escape(keyword)}\b") for keyword in GREETING_KEYWORDS]
_DRAFT_RES = [re.compile(rf"\b{re.escape(keyword)}") for keyword in DRAFT_KEYWORDS]

EMPTY_QUERY_PLAN = {"frontendQueries": [], "needsFrontendInteraction": False}
EMPTY_DRAFTS = {"drafts": []}


def is_general_greeting(message: str) -> bool:
    text = message.lower().strip()
    return any(pattern.search(text) for pattern in _GREETING_RES)


def mentions_draft(message: str) -> bool:
    text = message.lower()
    return any(pattern.search(text) for pattern in _DRAFT_RES)


def _dicts(value: Any) -> List[Dict[str, Any]]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def _history_text(context: ProcessingContext) -> str:
    return json.dumps(
        [{"role": turn.role, "content": turn.content} for turn in context.conversation_history],
        ensure_ascii=False
    )


async def classify_operator_request(context: ProcessingContext) -> Dict[str, Any]:
    greeting = is_general_greeting(context.message)
    return {"flags": {"is_greeting": greeting, "needs_frontend_round_trip": not greeting}}


async def operator_greeting(context: ProcessingContext) -> Dict[str, Any]:
    return {"greeting": strings.OPERATOR_GREETING.format(business_name=business_name(context))}


async def plan_frontend_queries(context: ProcessingContext) -> Dict[str, Any]:
    prompt = FRONTEND_QUERY_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        message=context.message,
        available_data=json.dumps(sorted(context.frontend_data.keys())),
    )
    plan = await ai_service.get_json_or_default(prompt, EMPTY_QUERY_PLAN)
    queries = _dicts(plan.get("frontendQueries"))

    results = []
    for query in queries:
        repository = query.get("repository")
        data = context.frontend_data.get(repository) if repository else None
        results.append({
            "query": query,
            "repository": repository,
            "data": data if data is not None else [],
            "found": data is not None,
            "timestamp": datetime.utcnow().isoformat(),
        })

    has_data = any(result["found"] for result in results)
    logger.info(f"Planned {len(queries)} console query(ies), data found: {has_data}")
    return {
        **append_items(context, "generated_queries", queries),
        **append_items(context, "query_results", results),
        "flags": {
            "needs_frontend_round_trip": bool(plan.get("needsFrontendInteraction")) and bool(queries),
            "needs_draft": has_data and mentions_draft(context.message),
        },
    }


async def create_drafts(context: ProcessingContext) -> Dict[str, Any]:
    prompt = DRAFT_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        message=context.message,
        query_results=json.dumps([r for r in context.query_results if r.get("found")], default=str),
    )
    parsed = await ai_service.get_json_or_default(prompt, EMPTY_DRAFTS)
    drafts = [{**draft, "status": "pending"} for draft in _dicts(parsed.get("drafts"))]
    return append_items(context, "drafts", drafts)


def operator_actions(context: ProcessingContext) -> List[AgentAction]:
    actions = []
    found = [result for result in context.query_results if result.get("found")]
    if found:
        actions.append(AgentAction(
            type="view_data",
            details={"title": "View retrieved data", "data": found},
        ))
    if context.drafts:
        actions.append(AgentAction(
            type="work_with_drafts",
            status=ActionStatus.PENDING,
            details={"title": "Work with the created drafts", "data": context.drafts},
        ))
    if context.generated_queries:
        actions.append(AgentAction(
            type="modify_queries",
            status=ActionStatus.PENDING,
            details={"title": "Modify the queries", "data": context.generated_queries},
        ))
    return actions


async def synthesize_operator_response(context: ProcessingContext) -> Dict[str, Any]:
    """Terminal stage: writes the reply and the console actions."""
    if context.flags.get("is_greeting") and context.greeting:
        return {
            "response": context.greeting,
            "actions": [AgentAction(
                type="greeting",
                details={
                    "business_name": business_name(context),
                    "capabilities": strings.OPERATOR_GREETING_CAPABILITIES,
                },
            )],
        }

    prompt = OPERATOR_RESPONSE_PROMPT.format(
        business_name=business_name(context),
        business_type=business_type(context),
        instructions=json.dumps([i.get("instructions", {}) for i in context.instructions], default=str),
        message=context.message,
        queries=json.dumps(context.generated_queries, default=str),
        query_results=json.dumps(context.query_results, default=str),
        drafts=json.dumps(context.drafts, default=str),
        history=_history_text(context),
    )
    response = await ai_service.generate_response(prompt)
    return {"response": response, "actions": operator_actions(context)}
