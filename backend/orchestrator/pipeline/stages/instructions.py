# /orchestrator/pipeline/stages/instructions.py

from typing import Any, Dict

from orchestrator.config.instructions import OPERATOR_ROLE, CLIENT_ROLE
from orchestrator.models.context import ProcessingContext, Role
from orchestrator.pipeline.stages.identification import business_type
from orchestrator.services.instruction_service import instruction_service


async def resolve_instructions(context: ProcessingContext) -> Dict[str, Any]:
    """Loads the role's instructions; everyone but operators gets the filtered client view."""
    resolver_role = OPERATOR_ROLE if context.role == Role.OPERATOR else CLIENT_ROLE
    instructions = await instruction_service.resolve(resolver_role, business_type(context))
    return {
        "instructions": instructions,
        "capabilities": instruction_service.capabilities_for(resolver_role, instructions),
    }
