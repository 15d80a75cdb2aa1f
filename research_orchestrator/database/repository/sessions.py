"""
Session Repository - Database operations for research sessions
Deleting a session removes every dependent row in the same transaction
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from research_orchestrator.database.models.schemas import (
    AgentArtifacts,
    AgentFeedback,
    AgentLogs,
    AgentMemory,
    AgentMessages,
    AgentSessions,
    Agents,
)
from research_orchestrator.database.repository.base import BaseRepository


class SessionRepository(BaseRepository):
    """Repository for agent_sessions rows"""

    UPDATABLE_FIELDS = {"research_topic", "preferences", "status", "error_message", "completed_at"}
    DEPENDENT_MODELS = (AgentArtifacts, AgentMessages, AgentLogs, AgentMemory, Agents, AgentFeedback)

    def _to_dict(self, row: AgentSessions) -> Dict[str, Any]:
        return {
            'id': row.id,
            'user_id': row.user_id,
            'research_topic': row.research_topic,
            'preferences': dict(row.preferences or {}),
            'status': row.status,
            'error_message': row.error_message,
            'created_at': self._iso(row.created_at),
            'updated_at': self._iso(row.updated_at),
            'completed_at': self._iso(row.completed_at),
        }

    async def create(
        self,
        user_id: str,
        research_topic: str,
        preferences: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        with self.session_manager.create_session() as db:
            row = AgentSessions(
                user_id=user_id,
                research_topic=research_topic,
                preferences=dict(preferences or {}),
                status="created",
            )
            db.add(row)
            db.flush()
            result = self._to_dict(row)

        self.logger.info(f"[SESSION REPO] Created session {result['id']} for user {user_id}")
        return result

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            row = db.get(AgentSessions, session_id)
            return self._to_dict(row) if row else None

    async def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            rows = db.query(AgentSessions).filter(
                AgentSessions.user_id == user_id
            ).order_by(
                AgentSessions.created_at.desc()
            ).limit(limit).offset(offset).all()
            return [self._to_dict(row) for row in rows]

    async def update(self, session_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a partial update

        Unknown fields are ignored. ``completed_at`` accepts a datetime or None.
        """
        fields = {k: v for k, v in updates.items() if k in self.UPDATABLE_FIELDS}

        with self.session_manager.create_session() as db:
            row = db.get(AgentSessions, session_id)
            if row is None:
                return None
            for key, value in fields.items():
                if key == "preferences":
                    value = dict(value or {})
                setattr(row, key, value)
            row.updated_at = datetime.utcnow()
            db.flush()
            result = self._to_dict(row)

        self.logger.debug(f"[SESSION REPO] Updated session {session_id}: {sorted(fields)}")
        return result

    async def delete(self, session_id: str) -> bool:
        with self.session_manager.create_session() as db:
            row = db.get(AgentSessions, session_id)
            if row is None:
                return False
            removed = {}
            for model in self.DEPENDENT_MODELS:
                removed[model.__tablename__] = db.query(model).filter(
                    model.session_id == session_id
                ).delete(synchronize_session=False)
            db.delete(row)

        self.logger.info(f"[SESSION REPO] Deleted session {session_id} ({removed})")
        return True
