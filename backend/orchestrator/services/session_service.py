# /orchestrator/services/session_service.py

import time
import uuid
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from orchestrator.config.settings import settings
from orchestrator.models.context import ConversationTurn
from orchestrator.services.db_service import db_service, SESSIONS, MESSAGES

# Short-term conversation continuity: session ids, a bounded window of recent
# turns and an append-only turn log. Turns are never edited or deleted here.

logger = logging.getLogger(__name__)


def generate_session_id(business_id: str, user_id: str) -> str:
    """
    A fresh id per call. Callers that want continuity must keep and resend it.
    """
    if settings.session_id_format == "composite":
        return f"{business_id}:{user_id}:{int(time.time() * 1000)}"
    return str(uuid.uuid4())


class SessionService:

    async def resolve_session(
        self,
        business_id: str,
        user_id: str,
        provided_session_id: Optional[str] = None,
        location_id: str = "default",
        business_type: str = "general"
    ) -> str:
        if provided_session_id:
            return provided_session_id

        session_id = generate_session_id(business_id, user_id)
        await self.create_session(session_id, business_id, location_id, user_id, business_type)
        return session_id

    async def create_session(
        self,
        session_id: str,
        business_id: str,
        location_id: str,
        user_id: str,
        business_type: str
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        session = {
            "session_id": session_id,
            "business_id": business_id,
            "location_id": location_id,
            "user_id": user_id,
            "status": "active",
            "created_at": now,
            "updated_at": now,
            "last_message_at": now,
            "metadata": {"business_type": business_type},
        }
        if not await db_service.put_document(SESSIONS, session_id, session):
            logger.warning(f"Session {session_id} could not be persisted; continuing without it")
        return session

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return await db_service.get_document(SESSIONS, session_id)

    async def get_active_session_for_user(self, business_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Most recently updated active session of the user, if any."""
        sessions = await db_service.query_documents(
            SESSIONS,
            {"business_id": business_id, "user_id": user_id, "status": "active"},
            limit=1,
            sort=[("updated_at", -1)]
        )
        return sessions[0] if sessions else None

    async def load_recent_turns(self, session_id: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        """Most-recent-first window of at most `limit` turns."""
        limit = settings.session_history_limit if limit is None else limit
        if limit <= 0:
            return []
        documents = await db_service.query_documents(
            MESSAGES,
            {"session_id": session_id},
            limit=limit,
            sort=[("timestamp", -1)]
        )
        turns = []
        for document in documents:
            try:
                turns.append(ConversationTurn(
                    content=document.get("content", ""),
                    role=document.get("role", "user"),
                    timestamp=document.get("timestamp") or datetime.utcnow()
                ))
            except Exception as e:
                logger.warning(f"Skipping malformed turn in session {session_id}: {e}")
        return turns

    async def append_turn(self, session_id: str, business_id: str, user_id: str, turn: ConversationTurn) -> bool:
        stored = await db_service.insert_document(MESSAGES, {
            "session_id": session_id,
            "business_id": business_id,
            "user_id": user_id,
            "content": turn.content,
            "role": turn.role,
            "timestamp": turn.timestamp,
        })
        if stored:
            await db_service.update_document(SESSIONS, session_id, {
                "last_message_at": turn.timestamp,
                "updated_at": datetime.utcnow(),
            })
        else:
            logger.warning(f"Turn not saved for session {session_id}")
        return stored

    async def mark_conversation_resolved(self, session_id: str) -> bool:
        return await db_service.update_document(SESSIONS, session_id, {
            "status": "resolved",
            "updated_at": datetime.utcnow(),
        })


# Globally accessible instance
session_service = SessionService()
