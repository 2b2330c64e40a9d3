# /orchestrator/pipeline/stages/identification.py

import logging
from datetime import datetime
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from orchestrator.config.instructions import ROLE_CAPABILITIES, OPERATOR_ROLE
from orchestrator.config.settings import settings
from orchestrator.models.context import ProcessingContext, Role, SourceType, TimeContext

logger = logging.getLogger(__name__)


def business_name(context: ProcessingContext) -> str:
    return context.business_info.get("businessName") or context.business_info.get("name") or "our business"


def business_type(context: ProcessingContext) -> str:
    return context.business_info.get("businessType") or "general"


def build_time_context(now: datetime, hours_start: int, hours_end: int) -> TimeContext:
    """Business hours are Monday to Friday, [hours_start, hours_end) local time."""
    is_weekend = now.weekday() >= 5
    return TimeContext(
        current_timestamp=now.isoformat(),
        current_date=now.strftime("%Y-%m-%d"),
        current_time=now.strftime("%H:%M"),
        timezone=str(now.tzinfo) if now.tzinfo else "UTC",
        day_of_week=now.strftime("%A"),
        is_weekend=is_weekend,
        is_business_hours=not is_weekend and hours_start <= now.hour < hours_end,
    )


def business_now() -> datetime:
    try:
        return datetime.now(ZoneInfo(settings.business_timezone))
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone '{settings.business_timezone}', using UTC")
        return datetime.now(ZoneInfo("UTC"))


def _role_patch(context: ProcessingContext) -> Dict[str, Any]:
    if context.source == SourceType.WEBSOCKET:
        return {
            "role": Role.OPERATOR,
            "capabilities": ROLE_CAPABILITIES[OPERATOR_ROLE],
        }
    if context.source == SourceType.WEBHOOK:
        return {"role": Role.NEW_CUSTOMER if context.user_id else Role.ANONYMOUS}
    return {"role": Role.ANONYMOUS}


async def identify_sender(context: ProcessingContext) -> Dict[str, Any]:
    """Infers the sender's role from the message source and stamps the time context."""
    try:
        patch = _role_patch(context)
    except Exception as e:
        logger.warning(f"Role identification failed for session {context.session_id}: {e}")
        patch = {"role": Role.EXISTING_CUSTOMER}

    patch["time_context"] = build_time_context(
        business_now(), settings.business_hours_start, settings.business_hours_end
    )
    return patch
