# /orchestrator/pipeline/stages/memory.py

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List

from orchestrator.models.context import ProcessingContext
from orchestrator.pipeline.stages.identification import business_type
from orchestrator.services.memory_service import memory_service

logger = logging.getLogger(__name__)

GENERAL_ACTION = "general"


def platform_of(context: ProcessingContext) -> str:
    return context.platform or context.source.value


async def load_dynamic_memory(context: ProcessingContext) -> Dict[str, Any]:
    """Reads business memory, current-channel user memory and every channel's user memory at once."""
    if not context.user_id:
        business_memory = await memory_service.get_business_memory(
            context.business_id, business_type(context), GENERAL_ACTION
        )
        return {"business_memory": business_memory}

    business_memory, user_memory, channel_memories = await asyncio.gather(
        memory_service.get_business_memory(context.business_id, business_type(context), GENERAL_ACTION),
        memory_service.get_user_memory(context.business_id, context.user_id, platform_of(context)),
        memory_service.get_all_channel_memories(context.business_id, context.user_id),
    )
    return {
        "business_memory": business_memory,
        "user_memory": user_memory,
        "channel_memories": channel_memories,
    }


def _discovered_resource_types(context: ProcessingContext) -> List[str]:
    types = set()
    for operation in context.resource_operations:
        if operation.get("resource_type"):
            types.add(operation["resource_type"])
    for query in context.generated_queries:
        if query.get("repository"):
            types.add(query["repository"])
        if query.get("resourceType"):
            types.add(query["resourceType"])
    types.update(k for k, v in context.app_server_data.items() if v)
    return sorted(types)


async def persist_dynamic_memory(context: ProcessingContext) -> Dict[str, Any]:
    """
    Writes this turn back to memory. Runs after the reply is built, so a
    failure here only costs the memory update, never the reply.
    """
    now = datetime.utcnow().isoformat()
    action_types = [action.type for action in context.actions]

    try:
        await memory_service.put_business_memory(
            context.business_id,
            business_type(context),
            {
                "last_message": context.message,
                "last_response": context.response,
                "last_actions": action_types,
                "discovered_resource_types": _discovered_resource_types(context),
                "last_interaction": now,
            },
            action=GENERAL_ACTION,
        )
    except Exception as e:
        logger.warning(f"Business memory not updated for {context.business_id}: {e}")

    if not context.user_id:
        return {}

    platform = platform_of(context)
    try:
        # Records are overwritten wholesale, so the count is carried over explicitly
        previous = await memory_service.get_user_memory(context.business_id, context.user_id, platform)
        await memory_service.put_user_memory(
            context.business_id,
            context.user_id,
            platform,
            {
                "role": context.role.value,
                "first_seen": previous.get("first_seen") or now,
                "last_interaction": now,
                "last_message": context.message,
                "last_response": context.response,
                "business_type": business_type(context),
                "interaction_count": int(previous.get("interaction_count") or 0) + 1,
                "customer_name": context.customer_profile.get("name") or previous.get("customer_name"),
            },
        )
    except Exception as e:
        logger.warning(f"User memory not updated for {context.user_id} on {platform}: {e}")
    return {}
