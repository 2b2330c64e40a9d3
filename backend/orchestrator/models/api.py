# /orchestrator/models/api.py

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Optional, Any
from datetime import datetime
from pydantic.alias_generators import to_camel

from orchestrator.models.context import AgentAction

# This file contains Pydantic models that define the structure of data for
# API requests and responses, ensuring type safety and validation.


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageRequest(_CamelModel):
    """A message typed by an operator in the console."""
    business_id: str = Field(..., min_length=1)
    location_id: str = "default"
    user_id: str = Field(..., min_length=1)
    message: str = Field(..., max_length=4096)
    session_id: Optional[str] = None
    frontend_data: Dict[str, Any] = Field(default_factory=dict)


class WebhookMessage(_CamelModel):
    """A message received from an external channel (meta, twilio, email)."""
    business_id: str = Field(..., min_length=1)
    location_id: str = "default"
    user_id: str = ""
    message: str = Field(..., max_length=4096)
    source: str = "meta"
    external_id: Optional[str] = None
    session_id: Optional[str] = None


class AgentResponse(_CamelModel):
    response_id: str
    message: str
    actions: List[AgentAction] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    session_id: str


class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str
