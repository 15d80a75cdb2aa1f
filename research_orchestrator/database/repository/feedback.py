"""
Feedback Repository - user feedback tied to a session, worker or artifact
"""

from typing import Any, Dict, List, Optional

from research_orchestrator.database.models.schemas import AgentFeedback
from research_orchestrator.database.repository.base import BaseRepository


class FeedbackRepository(BaseRepository):

    def _to_dict(self, row: AgentFeedback) -> Dict[str, Any]:
        return {
            'id': row.id,
            'session_id': row.session_id,
            'user_id': row.user_id,
            'agent_id': row.agent_id,
            'artifact_id': row.artifact_id,
            'feedback': row.feedback,
            'feedback_type': row.feedback_type,
            'priority': row.priority,
            'created_at': self._iso(row.created_at),
        }

    async def create(
        self,
        session_id: str,
        user_id: str,
        feedback: str,
        agent_id: Optional[str] = None,
        artifact_id: Optional[str] = None,
        feedback_type: str = "general",
        priority: str = "medium",
    ) -> Dict[str, Any]:
        with self.session_manager.create_session() as db:
            row = AgentFeedback(
                session_id=session_id,
                user_id=user_id,
                agent_id=agent_id,
                artifact_id=artifact_id,
                feedback=feedback,
                feedback_type=feedback_type,
                priority=priority,
            )
            db.add(row)
            db.flush()
            result = self._to_dict(row)

        self.logger.info(f"[FEEDBACK REPO] Stored {feedback_type} feedback for session {session_id}")
        return result

    async def list_for_session(self, session_id: str) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            rows = db.query(AgentFeedback).filter(
                AgentFeedback.session_id == session_id
            ).order_by(AgentFeedback.created_at.asc()).all()
            return [self._to_dict(row) for row in rows]
