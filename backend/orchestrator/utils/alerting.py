# /orchestrator/utils/alerting.py

import httpx
import logging
from typing import Optional, Dict, Any
from datetime import datetime

from orchestrator.config.settings import settings
from orchestrator.services.cache_service import cache_service

# Posts critical alerts (aborted pipeline runs, unhandled request errors) to an
# external webhook. Repeated alerts for the same dedupe key are suppressed for
# ALERT_SUPPRESSION_SECONDS so one broken stage does not flood the channel.

logger = logging.getLogger(__name__)

ALERT_SUPPRESSION_SECONDS = 300


class AlertingService:
    def __init__(self, webhook_url: Optional[str]):
        self.webhook_url = webhook_url
        self.client = httpx.AsyncClient(timeout=5.0) if webhook_url else None

    async def _is_suppressed(self, dedupe_key: Optional[str]) -> bool:
        if not dedupe_key:
            return False
        cache_key = f"alert_sent:{dedupe_key}"
        if await cache_service.get(cache_key):
            return True
        await cache_service.set(cache_key, "1", ttl=ALERT_SUPPRESSION_SECONDS)
        return False

    async def send_critical_alert(self, error: str, context: Dict[str, Any], dedupe_key: Optional[str] = None):
        if not self.client:
            return
        if await self._is_suppressed(dedupe_key):
            logger.debug(f"Alert suppressed for {dedupe_key}")
            return
        try:
            alert_data = {
                "severity": "critical",
                "service": "agent-orchestrator",
                "error": error,
                "context": context,
                "timestamp": datetime.utcnow().isoformat(),
                "environment": settings.environment
            }
            await self.client.post(self.webhook_url, json=alert_data)
        except Exception as e:
            logger.error(f"Failed to send critical alert: {e}")

    async def alert_pipeline_aborted(self, pipeline: str, stage: str, business_id: str, error: Exception):
        await self.send_critical_alert(
            error=f"Pipeline '{pipeline}' aborted at stage '{stage}': {error}",
            context={"pipeline": pipeline, "stage": stage, "business_id": business_id},
            dedupe_key=f"{pipeline}:{stage}"
        )

    async def cleanup(self):
        if self.client:
            await self.client.aclose()

# Globally accessible instance
alerting_service = AlertingService(settings.alerting_webhook_url)
