# /orchestrator/services/agent_service.py

import uuid
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from orchestrator.config import strings
from orchestrator.config.prompts import FALLBACK_REPLY_PROMPT
from orchestrator.config.settings import settings
from orchestrator.models.api import AgentResponse, MessageRequest, WebhookMessage
from orchestrator.models.context import ConversationTurn, ProcessingContext, SourceType
from orchestrator.models.workflow import AutonomousActionResult
from orchestrator.pipeline import definitions
from orchestrator.pipeline.executor import PipelineAbortedError, Stage, run_pipeline
from orchestrator.services.ai_service import ai_service, CompletionError
from orchestrator.services.autonomous_service import autonomous_service
from orchestrator.services.resource_service import resource_service
from orchestrator.services.session_service import session_service, generate_session_id
from orchestrator.utils.alerting import alerting_service
from orchestrator.utils.metrics import agent_messages_counter

# Entry point for every inbound message. Builds the processing context, runs
# the matching pipeline and guarantees a reply: an aborted or timed-out run
# still answers with a short fallback built from the business profile.

logger = logging.getLogger(__name__)


def infer_identity(business_id: str, user_id: str, session_id: Optional[str]) -> Tuple[str, str]:
    """Composite session ids ({business}:{user}:{ms}) can fill in missing identifiers."""
    parts = (session_id or "").split(":")
    if len(parts) == 3:
        business_id = business_id or parts[0]
        user_id = user_id or parts[1]
    return business_id, user_id


class AgentService:

    async def _business_info(self, business_id: str) -> Dict[str, Any]:
        try:
            return await resource_service.get_business_info(business_id) or {}
        except Exception as e:
            logger.warning(f"Business info unavailable for {business_id}: {e}")
            return {}

    async def _session(self, business_id: str, user_id: str, location_id: str, provided: Optional[str], business_type: str) -> str:
        try:
            return await session_service.resolve_session(business_id, user_id, provided, location_id, business_type)
        except Exception as e:
            logger.warning(f"Session resolution failed for {business_id}/{user_id}: {e}")
            return provided or generate_session_id(business_id, user_id)

    async def _history(self, session_id: str) -> List[ConversationTurn]:
        try:
            return await session_service.load_recent_turns(session_id, settings.session_history_limit)
        except Exception as e:
            logger.warning(f"Could not load history for session {session_id}: {e}")
            return []

    async def fallback_reply(self, business_info: Dict[str, Any], message: str) -> str:
        """Minimal reply for aborted runs; depends only on the business profile and the raw message."""
        prompt = FALLBACK_REPLY_PROMPT.format(
            business_name=business_info.get("businessName") or "our business",
            business_type=business_info.get("businessType") or "general",
            message=message,
        )
        try:
            reply = await ai_service.complete(prompt)
        except CompletionError:
            reply = None
        return reply or strings.FALLBACK_REPLY

    async def _save_turns(self, context: ProcessingContext, reply: str) -> None:
        for turn in (
            ConversationTurn(content=context.message, role="user"),
            ConversationTurn(content=reply, role="agent"),
        ):
            try:
                await session_service.append_turn(context.session_id, context.business_id, context.user_id, turn)
            except Exception as e:
                logger.warning(f"Turn not saved for session {context.session_id}: {e}")

    async def _run(
        self,
        pipeline_name: str,
        stages: List[Stage],
        *,
        business_id: str,
        location_id: str,
        user_id: str,
        message: str,
        source: SourceType,
        platform: Optional[str],
        session_id: Optional[str],
        frontend_data: Optional[Dict[str, Any]] = None
    ) -> AgentResponse:
        business_id, user_id = infer_identity(business_id, user_id, session_id)
        business_info = await self._business_info(business_id)
        session_id = await self._session(
            business_id, user_id, location_id, session_id, business_info.get("businessType") or "general"
        )

        context = ProcessingContext(
            business_id=business_id,
            location_id=location_id or "default",
            user_id=user_id,
            session_id=session_id,
            source=source,
            platform=platform,
            message=message.strip(),
            business_info=business_info,
            conversation_history=await self._history(session_id),
            frontend_data=frontend_data or {},
        )

        try:
            final = await asyncio.wait_for(
                run_pipeline(stages, context, pipeline_name),
                timeout=settings.pipeline_timeout_seconds
            )
            reply = final.response or await self.fallback_reply(business_info, context.message)
            actions = final.actions
            agent_messages_counter.labels(pipeline=pipeline_name, status="success").inc()
        except PipelineAbortedError as e:
            logger.error(f"Pipeline '{pipeline_name}' aborted at '{e.stage}' for session {session_id}: {e.cause}")
            agent_messages_counter.labels(pipeline=pipeline_name, status="aborted").inc()
            await alerting_service.alert_pipeline_aborted(pipeline_name, e.stage, business_id, e.cause)
            reply, actions = await self.fallback_reply(business_info, context.message), []
        except asyncio.TimeoutError:
            logger.error(f"Pipeline '{pipeline_name}' timed out for session {session_id}")
            agent_messages_counter.labels(pipeline=pipeline_name, status="timeout").inc()
            # Canned reply only, so the response stays within the pipeline timeout.
            reply, actions = strings.FALLBACK_REPLY, []

        await self._save_turns(context, reply)
        return AgentResponse(
            response_id=str(uuid.uuid4()),
            message=reply,
            actions=actions,
            session_id=session_id,
        )

    async def process_message(self, request: MessageRequest) -> AgentResponse:
        """Operator console message."""
        return await self._run(
            definitions.OPERATOR_PIPELINE_NAME,
            definitions.OPERATOR_PIPELINE,
            business_id=request.business_id,
            location_id=request.location_id,
            user_id=request.user_id,
            message=request.message,
            source=SourceType.WEBSOCKET,
            platform=None,
            session_id=request.session_id,
            frontend_data=request.frontend_data,
        )

    async def process_customer_message(self, webhook: WebhookMessage) -> AgentResponse:
        """External channel message answered through the customer pipeline."""
        return await self._run(
            definitions.CUSTOMER_PIPELINE_NAME,
            definitions.CUSTOMER_PIPELINE,
            business_id=webhook.business_id,
            location_id=webhook.location_id,
            user_id=webhook.user_id,
            message=webhook.message,
            source=SourceType.WEBHOOK,
            platform=webhook.source,
            session_id=webhook.session_id,
        )

    async def process_webhook_message(self, webhook: WebhookMessage) -> AutonomousActionResult:
        """External channel message on the autonomous path (workflow or escalation)."""
        try:
            result = await autonomous_service.handle_webhook(webhook)
        except Exception as e:
            logger.exception(f"Autonomous processing failed for {webhook.business_id}: {e}")
            agent_messages_counter.labels(pipeline="autonomous", status="error").inc()
            return AutonomousActionResult(
                success=False,
                notification="autonomous_processing_error",
                should_respond=True,
                response=strings.WORKFLOW_FAILURE,
            )
        agent_messages_counter.labels(pipeline="autonomous", status="success" if result.success else "failed").inc()
        return result


# Globally accessible instance
agent_service = AgentService()
