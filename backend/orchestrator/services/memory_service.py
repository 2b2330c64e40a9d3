# /orchestrator/services/memory_service.py

import json
import logging
from datetime import datetime
from typing import Any, Dict

from orchestrator.config.settings import settings
from orchestrator.services.db_service import db_service, BUSINESS_MEMORY, USER_MEMORY
from orchestrator.utils.metrics import memory_operations_counter

# Two-tier dynamic memory: one record per (business, business type, action)
# and one per (business, user, channel). Records are read back into every
# future run, so every write is sanitized to keep them bounded.
# Memory is best-effort: reads degrade to {} and failed writes are logged.

logger = logging.getLogger(__name__)

SCALAR_TYPES = (str, int, float, bool)


def business_memory_key(business_id: str, business_type: str, action: str) -> str:
    return f"{business_id}#{business_type}#{action}"


def user_memory_key(business_id: str, user_id: str, platform: str) -> str:
    return f"{business_id}#{user_id}#{platform}"


def _scalar_fields(value: Dict[str, Any], limit: int | None = None) -> Dict[str, Any]:
    fields = {k: v for k, v in value.items() if isinstance(v, SCALAR_TYPES)}
    if limit is not None:
        fields = dict(list(fields.items())[:limit])
    return fields


def _sanitize_item(item: Any, max_nested_fields: int) -> Any:
    if isinstance(item, SCALAR_TYPES):
        return item
    if isinstance(item, dict):
        return _scalar_fields(item, max_nested_fields)
    return json.dumps(item, default=str)


def sanitize_memory_record(
    record: Dict[str, Any],
    max_array_items: int | None = None,
    max_nested_fields: int | None = None
) -> Dict[str, Any]:
    """
    Returns a bounded copy of `record`:

    - None values are dropped
    - scalars pass through unchanged
    - lists keep their first `max_array_items` items; dict items keep at most
      `max_nested_fields` scalar sub-fields, other non-scalar items are
      stringified
    - nested dicts keep only their scalar top-level properties
    - anything else (datetimes, sets, objects) is stringified

    The result is a fixed point: sanitizing it again returns an equal record.
    """
    max_array_items = settings.memory_max_array_items if max_array_items is None else max_array_items
    max_nested_fields = settings.memory_max_nested_fields if max_nested_fields is None else max_nested_fields

    sanitized: Dict[str, Any] = {}
    for key, value in (record or {}).items():
        if value is None:
            continue
        if isinstance(value, SCALAR_TYPES):
            sanitized[key] = value
        elif isinstance(value, (list, tuple)):
            sanitized[key] = [
                _sanitize_item(item, max_nested_fields)
                for item in list(value)[:max_array_items]
                if item is not None
            ]
        elif isinstance(value, dict):
            sanitized[key] = _scalar_fields(value)
        elif isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        else:
            sanitized[key] = str(value)
    return sanitized


class DynamicMemoryService:
    """Reads and writes dynamic memory records through the document store."""

    async def get_business_memory(self, business_id: str, business_type: str = "general", action: str = "general") -> Dict[str, Any]:
        key = business_memory_key(business_id, business_type, action)
        try:
            record = await db_service.get_document(BUSINESS_MEMORY, key)
            memory_operations_counter.labels(operation="get_business", status="hit" if record else "miss").inc()
            return record or {}
        except Exception as e:
            memory_operations_counter.labels(operation="get_business", status="error").inc()
            logger.warning(f"Business memory read failed for {key}: {e}")
            return {}

    async def get_user_memory(self, business_id: str, user_id: str, platform: str) -> Dict[str, Any]:
        key = user_memory_key(business_id, user_id, platform)
        try:
            record = await db_service.get_document(USER_MEMORY, key)
            memory_operations_counter.labels(operation="get_user", status="hit" if record else "miss").inc()
            return record or {}
        except Exception as e:
            memory_operations_counter.labels(operation="get_user", status="error").inc()
            logger.warning(f"User memory read failed for {key}: {e}")
            return {}

    async def get_all_channel_memories(self, business_id: str, user_id: str) -> Dict[str, Dict[str, Any]]:
        """Every user memory record for (business, user), keyed by channel."""
        try:
            records = await db_service.query_documents(
                USER_MEMORY,
                {"business_id": business_id, "user_id": user_id},
                limit=20
            )
        except Exception as e:
            memory_operations_counter.labels(operation="get_all_channels", status="error").inc()
            logger.warning(f"Cross-channel memory read failed for {business_id}/{user_id}: {e}")
            return {}

        memories = {record["platform"]: record for record in records if record.get("platform")}
        memory_operations_counter.labels(operation="get_all_channels", status="hit" if memories else "miss").inc()
        return memories

    async def put_business_memory(self, business_id: str, business_type: str, record: Dict[str, Any], action: str = "general") -> bool:
        """Overwrites the business record. Callers wanting accumulation must read-modify-write."""
        key = business_memory_key(business_id, business_type, action)
        document = sanitize_memory_record({
            **record,
            "business_id": business_id,
            "business_type": business_type,
            "action": action,
            "updated_at": datetime.utcnow().isoformat(),
        })
        return await self._put(BUSINESS_MEMORY, key, document, "put_business")

    async def put_user_memory(self, business_id: str, user_id: str, platform: str, record: Dict[str, Any]) -> bool:
        """Overwrites the user record for one channel. Callers wanting accumulation must read-modify-write."""
        key = user_memory_key(business_id, user_id, platform)
        document = sanitize_memory_record({
            **record,
            "business_id": business_id,
            "user_id": user_id,
            "platform": platform,
            "updated_at": datetime.utcnow().isoformat(),
        })
        return await self._put(USER_MEMORY, key, document, "put_user")

    async def _put(self, collection: str, key: str, document: Dict[str, Any], operation: str) -> bool:
        try:
            stored = await db_service.put_document(collection, key, document)
        except Exception as e:
            logger.error(f"Memory write failed for {key}: {e}")
            stored = False
        if not stored:
            logger.warning(f"Memory not updated this turn for {key}")
        memory_operations_counter.labels(operation=operation, status="success" if stored else "error").inc()
        return stored


# Globally accessible instance
memory_service = DynamicMemoryService()
