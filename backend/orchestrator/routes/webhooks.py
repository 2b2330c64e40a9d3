# /orchestrator/routes/webhooks.py

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from orchestrator.config.settings import settings
from orchestrator.models.api import AgentResponse, WebhookMessage
from orchestrator.models.workflow import AutonomousActionResult
from orchestrator.services.agent_service import agent_service
from orchestrator.services.channel_service import channel_service
from orchestrator.utils.dependencies import verify_api_key
from orchestrator.utils.metrics import response_time_histogram
from orchestrator.utils.rate_limiter import limiter

# Messages relayed from external channels. The channel gateway has already
# normalized the payload; {platform} names the channel (meta, twilio, email).

router = APIRouter(
    tags=["Webhooks"],
    dependencies=[Depends(verify_api_key)]
)

log = structlog.get_logger(__name__)

KNOWN_PLATFORMS = {"meta", "twilio", "email"}


def _with_platform(platform: str, payload: WebhookMessage) -> WebhookMessage:
    if platform not in KNOWN_PLATFORMS:
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")
    return payload.model_copy(update={"source": platform})


@router.post("/{platform}", response_model=AutonomousActionResult, response_model_by_alias=True)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def handle_channel_webhook(
    request: Request,
    platform: str,
    payload: WebhookMessage,
    background_tasks: BackgroundTasks
):
    """Autonomous path: run a matching workflow or escalate to the operators."""
    webhook = _with_platform(platform, payload)
    with response_time_histogram.labels(endpoint="channel_webhook").time():
        log.info("Channel webhook received", platform=platform, business_id=webhook.business_id)
        result = await agent_service.process_webhook_message(webhook)

    if result.should_respond and result.response and webhook.user_id:
        background_tasks.add_task(
            channel_service.send_message, platform, webhook.user_id, result.response, webhook.business_id
        )
    log.info("Channel webhook processed", platform=platform, success=result.success)
    return result


@router.post("/{platform}/pipeline", response_model=AgentResponse, response_model_by_alias=True)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def handle_channel_webhook_pipeline(request: Request, platform: str, payload: WebhookMessage):
    """Conversational path: answer through the customer pipeline."""
    webhook = _with_platform(platform, payload)
    with response_time_histogram.labels(endpoint="channel_webhook_pipeline").time():
        log.info("Channel message received for pipeline", platform=platform, business_id=webhook.business_id)
        return await agent_service.process_customer_message(webhook)
