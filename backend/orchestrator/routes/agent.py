# /orchestrator/routes/agent.py

import structlog
from fastapi import APIRouter, Depends, Request

from orchestrator.config.settings import settings
from orchestrator.models.api import AgentResponse, MessageRequest
from orchestrator.services.agent_service import agent_service
from orchestrator.utils.dependencies import verify_api_key
from orchestrator.utils.metrics import response_time_histogram
from orchestrator.utils.rate_limiter import limiter

# Operator console messages. Always answers 200 with a reply: pipeline
# failures are turned into a fallback message by the agent service.

router = APIRouter(
    prefix="/agent",
    tags=["Agent"],
    dependencies=[Depends(verify_api_key)]
)

log = structlog.get_logger(__name__)


@router.post("/messages", response_model=AgentResponse, response_model_by_alias=True)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def post_operator_message(request: Request, payload: MessageRequest):
    with response_time_histogram.labels(endpoint="agent_messages").time():
        structlog.contextvars.bind_contextvars(business_id=payload.business_id, session_id=payload.session_id)
        try:
            log.info("Operator message received", user_id=payload.user_id)
            response = await agent_service.process_message(payload)
            log.info("Operator message answered", actions=[a.type for a in response.actions])
            return response
        finally:
            structlog.contextvars.clear_contextvars()
