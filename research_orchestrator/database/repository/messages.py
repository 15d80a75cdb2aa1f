"""
Message Repository - persisted bus messages
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from research_orchestrator.database.models.schemas import AgentMessages
from research_orchestrator.database.repository.base import BaseRepository


class MessageRepository(BaseRepository):

    def _to_dict(self, row: AgentMessages) -> Dict[str, Any]:
        return {
            'id': row.id,
            'session_id': row.session_id,
            'from_agent': row.from_agent,
            'to_agent': row.to_agent,
            'message_type': row.message_type,
            'message_data': row.message_data,
            'status': row.status,
            'created_at': self._iso(row.created_at),
            'processed_at': self._iso(row.processed_at),
        }

    async def create(
        self,
        session_id: str,
        from_agent: str,
        to_agent: Optional[str],
        message_type: str,
        message_data: Any,
    ) -> Dict[str, Any]:
        with self.session_manager.create_session() as db:
            row = AgentMessages(
                session_id=session_id,
                from_agent=from_agent,
                to_agent=to_agent,
                message_type=message_type,
                message_data=message_data,
                status="sent",
            )
            db.add(row)
            db.flush()
            return self._to_dict(row)

    async def mark_delivered(self, message_id: str) -> bool:
        with self.session_manager.create_session() as db:
            row = db.get(AgentMessages, message_id)
            if row is None:
                return False
            row.status = "delivered"
            row.processed_at = datetime.utcnow()
            return True

    async def list_for_session(self, session_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            query = db.query(AgentMessages).filter(AgentMessages.session_id == session_id)
            if status:
                query = query.filter(AgentMessages.status == status)
            rows = query.order_by(AgentMessages.created_at.asc()).all()
            return [self._to_dict(row) for row in rows]
