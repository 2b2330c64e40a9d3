# /orchestrator/services/autonomous_service.py

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from orchestrator.config import strings
from orchestrator.config.settings import settings
from orchestrator.models.api import WebhookMessage
from orchestrator.models.workflow import AutonomousActionResult, Intent, WorkflowContext
from orchestrator.services import intent_service
from orchestrator.services.broadcast_service import broadcast_service, ESCALATION_EVENT, COORDINATOR_NOTIFICATION_EVENT
from orchestrator.services.instruction_service import instruction_service
from orchestrator.services.resource_service import resource_service
from orchestrator.services.session_service import session_service
from orchestrator.utils.metrics import autonomous_outcomes_counter
from orchestrator.workflows.engine import execute_workflow

# Webhook path: classify the customer's message, then either run a stored
# workflow without a human in the loop or hand the request to the operators.

logger = logging.getLogger(__name__)


def can_handle_autonomously(intent: Intent) -> bool:
    return intent.can_handle_autonomously and intent.confidence > settings.autonomy_confidence_threshold


class AutonomousService:

    async def handle_webhook(self, webhook: WebhookMessage) -> AutonomousActionResult:
        business_info = await resource_service.get_business_info(webhook.business_id) or {}
        business_type = business_info.get("businessType") or "general"

        intent = await intent_service.classify(webhook.message, business_type)
        if can_handle_autonomously(intent):
            return await self.process_autonomously(webhook, intent)
        return await self.escalate_to_coordinator(webhook, intent)

    async def process_autonomously(self, webhook: WebhookMessage, intent: Optional[Intent] = None) -> AutonomousActionResult:
        business_info = await resource_service.get_business_info(webhook.business_id)
        location_info = await resource_service.get_location_info(webhook.business_id, webhook.location_id)

        if not business_info or not location_info:
            logger.warning(f"Autonomous processing skipped: business {webhook.business_id} or location {webhook.location_id} not found")
            autonomous_outcomes_counter.labels(outcome="business_not_found").inc()
            return AutonomousActionResult(
                success=False,
                notification=strings.BUSINESS_NOT_FOUND_NOTIFICATION,
                should_respond=True,
                response=strings.BUSINESS_NOT_FOUND,
            )

        business_type = business_info.get("businessType") or "general"
        if intent is None:
            intent = await intent_service.classify(webhook.message, business_type)

        instructions = await instruction_service.get_instructions_for_request(
            intent.action,
            business_type,
            {"category": intent.category, "message": webhook.message, "source": webhook.source},
        )
        if not instructions:
            autonomous_outcomes_counter.labels(outcome="no_instructions").inc()
            return AutonomousActionResult(
                success=False,
                notification=strings.NO_INSTRUCTIONS_NOTIFICATION,
                should_respond=True,
                response=strings.NO_INSTRUCTIONS,
            )

        session_id = await self._session_for(webhook)
        context = WorkflowContext(
            business_id=webhook.business_id,
            location_id=webhook.location_id,
            user_id=webhook.user_id,
            message=webhook.message,
            source=webhook.source,
            session_id=session_id,
            business_info=business_info,
            location_info=location_info,
            intent=intent,
        )
        result = await execute_workflow(instructions[0], context)

        if result.success and session_id:
            await session_service.mark_conversation_resolved(session_id)

        autonomous_outcomes_counter.labels(outcome="completed" if result.success else "failed").inc()
        self.notify_coordinator(result, webhook)
        return result

    async def _session_for(self, webhook: WebhookMessage) -> Optional[str]:
        if webhook.session_id:
            return webhook.session_id
        session = await session_service.get_active_session_for_user(webhook.business_id, webhook.user_id)
        return session.get("session_id") if session else None

    def notify_coordinator(self, result: AutonomousActionResult, webhook: WebhookMessage) -> None:
        notification: Dict[str, Any] = {
            "type": "autonomous_action_completed",
            "business_id": webhook.business_id,
            "location_id": webhook.location_id,
            "timestamp": datetime.utcnow().isoformat(),
            "action": result.workflow_results[0].action if result.workflow_results else None,
            "success": result.success,
            "details": result.notification,
            "source": "autonomous_agent",
        }
        broadcast_service.broadcast_background(webhook.business_id, COORDINATOR_NOTIFICATION_EVENT, notification)

    async def escalate_to_coordinator(self, webhook: WebhookMessage, intent: Intent) -> AutonomousActionResult:
        logger.info(
            f"Escalating message from {webhook.user_id} to operators of {webhook.business_id} "
            f"(intent '{intent.action}', confidence {intent.confidence:.2f})"
        )
        escalation = {
            "type": ESCALATION_EVENT,
            "business_id": webhook.business_id,
            "location_id": webhook.location_id,
            "user_id": webhook.user_id,
            "message": webhook.message,
            "intent": intent.model_dump(),
            "timestamp": datetime.utcnow().isoformat(),
        }
        broadcast_service.broadcast_background(webhook.business_id, ESCALATION_EVENT, escalation)
        autonomous_outcomes_counter.labels(outcome="escalated").inc()

        return AutonomousActionResult(
            success=False,
            notification=strings.ESCALATION_NOTIFICATION,
            should_respond=True,
            response=strings.ESCALATION_RESPONSE,
        )


# Globally accessible instance
autonomous_service = AutonomousService()
