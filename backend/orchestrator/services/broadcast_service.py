# /orchestrator/services/broadcast_service.py

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Set

from orchestrator.services.cache_service import cache_service

# Notifies the operator consoles of a business about autonomous outcomes and
# escalations. Delivery is at-most-once: consoles that are not subscribed to
# the Redis channel at publish time never see the event.

logger = logging.getLogger(__name__)

ESCALATION_EVENT = "escalation_required"
COORDINATOR_NOTIFICATION_EVENT = "coordinator_notification"


def operator_channel(business_id: str) -> str:
    return f"operators:{business_id}"


class BroadcastService:

    def __init__(self):
        self._pending: Set[asyncio.Task] = set()

    async def broadcast(self, business_id: str, event: str, payload: Dict[str, Any]) -> bool:
        message = {
            "event": event,
            "business_id": business_id,
            "payload": payload,
            "timestamp": datetime.utcnow().isoformat(),
        }
        published = await cache_service.publish(operator_channel(business_id), message)
        if published:
            logger.info(f"Broadcast '{event}' to operators of {business_id}")
        else:
            logger.warning(f"Broadcast '{event}' to operators of {business_id} was not delivered")
        return published

    def broadcast_background(self, business_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Schedules a broadcast without awaiting it. The caller's result never depends on it."""
        task = asyncio.create_task(self.broadcast(business_id, event, payload))
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception():
            logger.error(f"Background broadcast failed: {task.exception()}")

    async def drain(self) -> None:
        """Waits for scheduled broadcasts; used on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


# Globally accessible instance
broadcast_service = BroadcastService()
