# /orchestrator/models/context.py

from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class SourceType(str, Enum):
    """Where an inbound message came from."""
    WEBSOCKET = "websocket"  # operator console
    WEBHOOK = "webhook"      # external messaging channel
    CRON = "cron"            # scheduled job


class Role(str, Enum):
    OPERATOR = "operator"
    NEW_CUSTOMER = "new_customer"
    EXISTING_CUSTOMER = "existing_customer"
    ANONYMOUS = "anonymous"


class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class TimeContext(BaseModel):
    """Wall-clock facts derived from the arrival time of a message."""
    current_timestamp: str
    current_date: str
    current_time: str
    timezone: str
    day_of_week: str
    is_weekend: bool
    is_business_hours: bool


class ConversationTurn(BaseModel):
    content: str
    role: str = Field(description="'user' or 'agent'")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class AgentAction(BaseModel):
    type: str
    status: ActionStatus = ActionStatus.SUCCESS
    details: Dict[str, Any] = Field(default_factory=dict)


class ProcessingContext(BaseModel):
    """
    The single record threaded through one pipeline run.

    Stages never mutate it; they return a patch which the pipeline executor
    merges in. Exactly one instance chain exists per inbound message.
    """
    model_config = ConfigDict(extra="forbid")

    # Identity
    business_id: str = Field(description="Tenant the message belongs to")
    location_id: str = Field(default="default", description="Business location")
    user_id: str = Field(default="", description="Sender identifier on its channel")
    session_id: str = Field(description="Conversation session identifier")
    source: SourceType = Field(description="Origin of the message")
    role: Role = Field(default=Role.ANONYMOUS, description="Inferred role of the sender")
    platform: Optional[str] = Field(default=None, description="Channel name, e.g. meta or twilio")

    # Inputs
    message: str = Field(default="", description="Raw message text")
    time_context: Optional[TimeContext] = Field(default=None)

    # Resolved context
    business_info: Dict[str, Any] = Field(default_factory=dict, description="Business profile snapshot")
    conversation_history: List[ConversationTurn] = Field(default_factory=list)

    # Memory snapshots
    business_memory: Dict[str, Any] = Field(default_factory=dict)
    user_memory: Dict[str, Any] = Field(default_factory=dict, description="User memory for the current channel")
    channel_memories: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="User memory per channel the user has been seen on"
    )

    # Instructions
    instructions: List[Dict[str, Any]] = Field(default_factory=list)
    capabilities: Dict[str, Any] = Field(default_factory=dict)

    # Customer recognition
    customer_profile: Dict[str, Any] = Field(default_factory=dict)

    # Advisory control flags
    flags: Dict[str, bool] = Field(default_factory=dict)

    # Accumulators (append-only within a run)
    resource_operations: List[Dict[str, Any]] = Field(default_factory=list)
    external_api_results: List[Dict[str, Any]] = Field(default_factory=list)
    generated_queries: List[Dict[str, Any]] = Field(default_factory=list)
    query_results: List[Dict[str, Any]] = Field(default_factory=list)
    drafts: List[Dict[str, Any]] = Field(default_factory=list)

    # Domain data
    frontend_data: Dict[str, Any] = Field(default_factory=dict, description="Snapshot supplied by the operator console")
    app_server_data: Dict[str, Any] = Field(default_factory=dict)
    booking_guidance: Dict[str, Any] = Field(default_factory=dict)
    greeting: Optional[str] = None

    # Output
    response: Optional[str] = None
    actions: List[AgentAction] = Field(default_factory=list)
