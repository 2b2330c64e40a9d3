# /orchestrator/services/instruction_service.py

import copy
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from rapidfuzz import fuzz

from orchestrator.config import instructions as defaults
from orchestrator.models.instruction import RagInstruction
from orchestrator.services.db_service import db_service, SYSTEM_INSTRUCTIONS, RAG_INSTRUCTIONS

# Selects the behavioural rules a pipeline run should follow and the workflow
# definitions the autonomous path can execute. Nothing is cached between runs.

logger = logging.getLogger(__name__)

FUZZY_KEYWORD_THRESHOLD = 85


def instruction_key(business_category: str, role: str, topic: str, version: str = defaults.INSTRUCTION_VERSION) -> str:
    return f"{business_category}.{role}.{topic}.{version}"


def _declared_role(instruction: Dict[str, Any]) -> Optional[str]:
    if instruction.get("role"):
        return instruction["role"]
    # Keys follow {category}.{role}.{topic}.{version}
    parts = str(instruction.get("key", "")).split(".")
    return parts[1] if len(parts) >= 4 else None


def contains_sensitive_marker(instruction: Dict[str, Any]) -> bool:
    body = json.dumps(instruction, default=str).lower()
    return any(marker in body for marker in defaults.SENSITIVE_MARKERS)


def filter_visible(instructions: List[Dict[str, Any]], role: str) -> List[Dict[str, Any]]:
    """
    Removes what a non-operator role must not see: instructions declared for
    the operator role and any instruction mentioning a sensitive marker.
    Operators see everything.
    """
    if role == defaults.OPERATOR_ROLE:
        return instructions
    return [
        instruction for instruction in instructions
        if _declared_role(instruction) != defaults.OPERATOR_ROLE
        and not contains_sensitive_marker(instruction)
    ]


def _created_at_sort_key(instruction: RagInstruction) -> float:
    created_at = instruction.created_at
    if isinstance(created_at, datetime):
        return created_at.timestamp()
    return 0.0


class InstructionService:

    async def _get_active_system_instruction(self, key: str) -> Optional[Dict[str, Any]]:
        document = await db_service.get_document(SYSTEM_INSTRUCTIONS, key)
        if document and document.get("is_active", True):
            document.setdefault("key", key)
            return document
        return None

    async def resolve(self, role: str, business_category: str) -> List[Dict[str, Any]]:
        """
        Returns the instructions for `role` in `business_category`.

        Fallback chain: `{category}.{role}.{topic}.v1`, then
        `general.{role}.{topic}.v1`, then the built-in instruction for the role.
        The visibility filter is applied to whatever the chain produced.
        """
        topic = defaults.DEFAULT_TOPICS.get(role, defaults.DEFAULT_TOPICS[defaults.CLIENT_ROLE])
        candidates = [instruction_key(business_category or defaults.GENERAL_CATEGORY, role, topic)]
        general_key = instruction_key(defaults.GENERAL_CATEGORY, role, topic)
        if general_key not in candidates:
            candidates.append(general_key)

        selected: List[Dict[str, Any]] = []
        for key in candidates:
            try:
                document = await self._get_active_system_instruction(key)
            except Exception as e:
                logger.warning(f"Instruction lookup failed for {key}: {e}")
                document = None
            if document:
                logger.info(f"Resolved instruction {key} for role '{role}'")
                selected = [document]
                break

        if not selected:
            builtin = defaults.BUILTIN_INSTRUCTIONS.get(role, defaults.BUILTIN_INSTRUCTIONS[defaults.CLIENT_ROLE])
            logger.info(f"No stored instruction for role '{role}' in '{business_category}', using built-in")
            selected = [copy.deepcopy(builtin)]

        return filter_visible(selected, role)

    def capabilities_for(self, role: str, instructions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Role defaults overlaid with the capabilities declared by the first instruction."""
        capabilities = dict(defaults.ROLE_CAPABILITIES.get(role, defaults.ROLE_CAPABILITIES[defaults.CLIENT_ROLE]))
        if instructions:
            capabilities.update(instructions[0].get("capabilities") or {})
        if role != defaults.OPERATOR_ROLE:
            # Stored data must never widen a restricted role
            capabilities["can_access_all_data"] = False
            capabilities["can_view_personal_info"] = False
        return capabilities

    # ==================== Autonomous Workflows ====================

    @staticmethod
    def _is_relevant(instruction: RagInstruction, query: str) -> bool:
        if not instruction.metadata:
            return False
        query_lower = query.lower()
        query_words = query_lower.split()

        for keyword in instruction.metadata.keywords:
            keyword_lower = keyword.lower()
            if keyword_lower in query_lower:
                return True
            if any(fuzz.ratio(keyword_lower, word) >= FUZZY_KEYWORD_THRESHOLD for word in query_words):
                return True
        if any(example.lower() in query_lower for example in instruction.metadata.examples):
            return True
        return instruction.category.lower() in query_lower

    async def get_instructions_for_request(
        self,
        request: str,
        business_type: str,
        context: Optional[Dict[str, Any]] = None
    ) -> List[RagInstruction]:
        """
        Active workflow instructions of `business_type` relevant to `request`,
        ranked by confidence (highest first) then by creation date (newest first).
        """
        context = context or {}
        query = " ".join(str(part) for part in (request, context.get("category"), context.get("message")) if part)

        documents = await db_service.query_documents(
            RAG_INSTRUCTIONS,
            {"business_type": business_type, "is_active": True}
        )

        instructions: List[RagInstruction] = []
        for document in documents:
            try:
                instructions.append(RagInstruction.model_validate(document))
            except Exception as e:
                logger.warning(f"Skipping malformed workflow instruction {document.get('instruction_id')}: {e}")

        relevant = [i for i in instructions if i.is_active and self._is_relevant(i, query)]
        relevant.sort(key=lambda i: (i.metadata.confidence, _created_at_sort_key(i)), reverse=True)
        logger.info(f"Found {len(relevant)} workflow instruction(s) for '{request}' in '{business_type}'")
        return relevant


# Globally accessible instance
instruction_service = InstructionService()
