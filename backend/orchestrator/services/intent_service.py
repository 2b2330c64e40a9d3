# /orchestrator/services/intent_service.py

import logging

from orchestrator.config.prompts import INTENT_PROMPT
from orchestrator.models.workflow import Intent
from orchestrator.services.ai_service import ai_service

logger = logging.getLogger(__name__)

# Returned whenever classification fails; it always routes to a human.
FALLBACK_INTENT = Intent(
    action="services",
    category="customer_service",
    confidence=0.5,
    can_handle_autonomously=False,
    requires_human_approval=True,
)


async def classify(message: str, business_category: str) -> Intent:
    """Maps free text to a structured Intent; never raises."""
    prompt = INTENT_PROMPT.format(business_type=business_category or "general", message=message)
    try:
        intent = await ai_service.get_json_or_default(prompt, FALLBACK_INTENT, model=Intent)
    except Exception:
        logger.exception("Intent classification failed. Falling back to escalation intent.")
        return FALLBACK_INTENT.model_copy()

    logger.info(
        f"Classified intent as '{intent.action}' ({intent.category}) "
        f"with confidence {intent.confidence:.2f}"
    )
    return intent
