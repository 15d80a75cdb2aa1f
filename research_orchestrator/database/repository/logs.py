"""
Log Repository - per-worker log lines shown alongside a session
"""

from typing import Any, Dict, List, Optional

from research_orchestrator.database.models.schemas import AgentLogs
from research_orchestrator.database.repository.base import BaseRepository


class LogRepository(BaseRepository):

    def _to_dict(self, row: AgentLogs) -> Dict[str, Any]:
        return {
            'id': row.id,
            'session_id': row.session_id,
            'agent_id': row.agent_id,
            'log_level': row.log_level,
            'message': row.message,
            'details': row.details,
            'created_at': self._iso(row.created_at),
        }

    async def create(
        self,
        session_id: str,
        agent_id: str,
        log_level: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        with self.session_manager.create_session() as db:
            row = AgentLogs(
                session_id=session_id,
                agent_id=agent_id,
                log_level=log_level,
                message=message,
                details=details or None,
            )
            db.add(row)
            db.flush()
            return self._to_dict(row)

    async def list(
        self,
        session_id: str,
        limit: int = 100,
        offset: int = 0,
        log_level: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            query = db.query(AgentLogs).filter(AgentLogs.session_id == session_id)
            if log_level:
                query = query.filter(AgentLogs.log_level == log_level)
            if agent_id:
                query = query.filter(AgentLogs.agent_id == agent_id)
            rows = query.order_by(
                AgentLogs.created_at.desc(), AgentLogs.id.desc()
            ).limit(limit).offset(offset).all()
            return [self._to_dict(row) for row in rows]
