# /orchestrator/models/instruction.py

from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from pydantic import BaseModel, Field


class InstructionCapabilities(BaseModel):
    can_access_all_data: bool = False
    can_view_personal_info: bool = False
    can_modify_reservations: bool = False
    can_list_all_resources: bool = True
    response_style: str = "friendly_guidance"


class SystemInstruction(BaseModel):
    """
    Role and business-type scoped behavioural rules.

    Identified by `{businessCategory}.{role}.{topic}.{version}`, e.g.
    `dental.operator.complete_guidance.v1`.
    """
    key: str
    business_type: str
    category: str
    role: str
    version: str = "v1"
    is_active: bool = True
    capabilities: InstructionCapabilities = Field(default_factory=InstructionCapabilities)
    instructions: Dict[str, Any] = Field(default_factory=dict)
    keywords: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class ApiCall(BaseModel):
    method: str = "GET"
    endpoint: str
    data_template: Union[Dict[str, Any], str, None] = None


class WorkflowStep(BaseModel):
    step: int
    action: str
    description: str = ""
    api_call: Optional[ApiCall] = None
    data_template: Union[Dict[str, Any], str, None] = None
    validation: Optional[str] = None
    error_handling: str = Field(default="continue", pattern="^(stop|continue)$")


class InstructionMetadata(BaseModel):
    examples: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    confidence: float = 0.0


class RagInstruction(BaseModel):
    """An autonomous workflow definition matched against classified intents."""
    instruction_id: str
    business_type: str
    category: str
    instruction: str
    workflow: List[WorkflowStep] = Field(default_factory=list)
    required_permissions: List[str] = Field(default_factory=list)
    api_endpoints: List[str] = Field(default_factory=list)
    success_criteria: List[str] = Field(default_factory=list)
    notification_template: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    metadata: Optional[InstructionMetadata] = None
