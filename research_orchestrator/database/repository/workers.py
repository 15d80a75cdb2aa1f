"""
Worker Repository - durable mirror of worker registrations
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from research_orchestrator.database.models.schemas import Agents
from research_orchestrator.database.repository.base import BaseRepository


class WorkerRepository(BaseRepository):

    def _to_dict(self, row: Agents) -> Dict[str, Any]:
        return {
            'id': row.id,
            'session_id': row.session_id,
            'agent_type': row.agent_type,
            'status': row.status,
            'config': dict(row.config or {}),
            'progress': row.progress,
            'error_message': row.error_message,
            'created_at': self._iso(row.created_at),
            'updated_at': self._iso(row.updated_at),
            'started_at': self._iso(row.started_at),
            'completed_at': self._iso(row.completed_at),
        }

    async def upsert(
        self,
        worker_id: str,
        session_id: str,
        agent_type: str,
        status: str,
        config: Optional[Dict[str, Any]] = None,
        progress: int = 0,
        error_message: Optional[str] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        with self.session_manager.create_session() as db:
            row = db.get(Agents, worker_id)
            if row is None:
                row = Agents(id=worker_id)
                db.add(row)
            row.session_id = session_id
            row.agent_type = agent_type
            row.status = status
            row.config = dict(config or {})
            row.progress = progress
            row.error_message = error_message
            row.started_at = started_at
            row.completed_at = completed_at
            row.updated_at = datetime.utcnow()
            db.flush()
            return self._to_dict(row)

    async def get(self, worker_id: str) -> Optional[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            row = db.get(Agents, worker_id)
            return self._to_dict(row) if row else None

    async def list_for_session(self, session_id: str) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            rows = db.query(Agents).filter(
                Agents.session_id == session_id
            ).order_by(Agents.created_at.asc()).all()
            return [self._to_dict(row) for row in rows]
