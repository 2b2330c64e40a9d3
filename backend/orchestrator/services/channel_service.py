# /orchestrator/services/channel_service.py

import httpx
import logging
import tenacity
from typing import Optional, Dict, Any

from orchestrator.config.settings import settings
from orchestrator.utils.circuit_breaker import RedisCircuitBreaker
from orchestrator.utils.metrics import external_api_counter
from orchestrator.services.cache_service import cache_service

# Outbound delivery to external messaging channels through the channel
# gateway. Wire formats belong to the gateway; this client only names the
# platform, the recipient and the text.

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = {"meta", "twilio"}


class ChannelService:
    def __init__(self, gateway_url: Optional[str], token: Optional[str]):
        self.gateway_url = gateway_url.rstrip("/") if gateway_url else None
        self.token = token
        self.http_client = httpx.AsyncClient(timeout=15.0)
        self.circuit_breaker = RedisCircuitBreaker(cache_service.redis, "channel_gateway")

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING)
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.circuit_breaker.call(func, *args, **kwargs)

    async def send_message(self, platform: str, recipient: str, text: str, business_id: str) -> Dict[str, Any]:
        """
        Delivers `text` to `recipient` on `platform`.
        Always returns {"success": bool, ...}; delivery problems never raise.
        """
        if platform not in SUPPORTED_PLATFORMS:
            logger.warning(f"send_message_unsupported_platform: {platform}")
            return {"success": False, "error": f"Unsupported platform: {platform}"}
        if not recipient:
            logger.error(f"send_message_missing_recipient for business {business_id}")
            return {"success": False, "error": "Missing recipient"}
        if not self.gateway_url:
            logger.warning("Channel gateway not configured; message not delivered.")
            return {"success": False, "error": "Channel gateway not configured"}

        url = f"{self.gateway_url}/{platform}/messages"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {"businessId": business_id, "to": recipient, "message": text}

        try:
            response = await self.resilient_api_call(self.http_client.post, url, json=payload, headers=headers)
            if response.status_code in (200, 201, 202):
                body = response.json() if response.content else {}
                message_id = body.get("messageId") or body.get("id")
                external_api_counter.labels(service=platform, status="success").inc()
                logger.info(f"Message sent via {platform} to {recipient}, id: {message_id}")
                return {"success": True, "platform": platform, "message_id": message_id}

            external_api_counter.labels(service=platform, status="error").inc()
            logger.error(f"{platform}_send_failed to {recipient}: {response.status_code}")
            return {"success": False, "platform": platform, "error": f"HTTP {response.status_code}"}
        except Exception as e:
            external_api_counter.labels(service=platform, status="error").inc()
            logger.error(f"send_message_error via {platform} to {recipient}: {e}")
            return {"success": False, "platform": platform, "error": str(e)}

    async def cleanup(self):
        await self.http_client.aclose()


# Globally accessible instance
channel_service = ChannelService(settings.channel_gateway_url, settings.channel_gateway_token)
