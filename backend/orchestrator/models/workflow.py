# /orchestrator/models/workflow.py

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Intent(BaseModel):
    """Structured classification of a free-text message."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: str = "services"
    category: str = "customer_service"
    confidence: float = 0.5
    can_handle_autonomously: bool = False
    requires_human_approval: bool = True

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(max(value, 0.0), 1.0)


class WorkflowStepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: int
    action: str
    success: bool
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


class AutonomousActionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    workflow_results: List[WorkflowStepResult] = Field(default_factory=list)
    notification: str = ""
    should_respond: bool = False
    response: Optional[str] = None


class WorkflowContext(BaseModel):
    """Everything a workflow run can read: the webhook, the business and extracted slots."""
    business_id: str
    location_id: str
    user_id: str
    message: str
    source: str
    session_id: Optional[str] = None
    business_info: Dict[str, Any] = Field(default_factory=dict)
    location_info: Dict[str, Any] = Field(default_factory=dict)
    intent: Optional[Intent] = None
    extracted: Dict[str, Any] = Field(default_factory=dict)
