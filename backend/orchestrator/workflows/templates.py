# /orchestrator/workflows/templates.py

"""
Placeholder substitution for workflow data templates and notifications.

Templates reference values with `{name}` placeholders. Known placeholders are
replaced; unknown ones are left verbatim so a half-filled template is still
visible in logs and results. Dict and list templates are resolved recursively.

Pure functions, no I/O.
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional

from orchestrator.models.workflow import WorkflowContext

PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def business_display_name(business_info: Dict[str, Any], default: str = "") -> str:
    return business_info.get("businessName") or business_info.get("name") or default


def identity_values(context: WorkflowContext) -> Dict[str, Any]:
    return {
        "businessId": context.business_id,
        "locationId": context.location_id,
        "customerId": context.user_id,
    }


def template_values(context: WorkflowContext, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Values available to templates. Slots extracted by earlier steps override
    the clock defaults, so an extracted `date` wins over today's date. Identity
    values always come from the workflow context, never from step output.
    """
    now = now or datetime.utcnow()
    values: Dict[str, Any] = {
        "date": now.date().isoformat(),
        "time": now.strftime("%H:%M"),
    }
    values.update({k: v for k, v in context.extracted.items() if v is not None})
    values.update(identity_values(context))
    return values


def substitute(text: str, values: Dict[str, Any]) -> str:
    def _replace(match: re.Match) -> str:
        key = match.group(1)
        return str(values[key]) if key in values else match.group(0)

    return PLACEHOLDER_RE.sub(_replace, text)


def render_data_template(template: Any, context: WorkflowContext, now: Optional[datetime] = None) -> Any:
    values = template_values(context, now)
    return _render(template, values)


def _render(template: Any, values: Dict[str, Any]) -> Any:
    if isinstance(template, str):
        return substitute(template, values)
    if isinstance(template, dict):
        return {key: _render(value, values) for key, value in template.items()}
    if isinstance(template, list):
        return [_render(item, values) for item in template]
    return template


def render_notification(
    template: str,
    context: WorkflowContext,
    action: str,
    now: Optional[datetime] = None
) -> str:
    """Fills a notification template: {data}/{date}, {user}/{utilizatorul}, {business}, {action}, {source}."""
    now = now or datetime.utcnow()
    business_name = business_display_name(context.business_info, context.business_id)
    values = {
        "data": now.strftime("%d.%m.%Y"),
        "date": now.strftime("%d.%m.%Y"),
        "user": context.user_id,
        "utilizatorul": context.user_id,
        "business": business_name,
        "action": action,
        "source": context.source,
    }
    return substitute(template or "", values)
