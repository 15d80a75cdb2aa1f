"""
Memory Repository - worker-private and session-shared memory entries

Shared entries are stored under ``agent_id = shared_{session_id}`` so one
unique (agent_id, memory_key) index covers both kinds.
"""

import json
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

from research_orchestrator.database.models.schemas import AgentMemory
from research_orchestrator.database.repository.base import BaseRepository


def shared_owner_id(session_id: str) -> str:
    return f"shared_{session_id}"


class MemoryRepository(BaseRepository):

    def _to_dict(self, row: AgentMemory) -> Dict[str, Any]:
        return {
            'agent_id': row.agent_id,
            'session_id': row.session_id,
            'key': row.memory_key,
            'value': row.memory_value,
            'memory_type': row.memory_type,
            'metadata': dict(row.metadata_ or {}),
            'created_at': self._iso(row.created_at),
            'updated_at': self._iso(row.updated_at),
        }

    async def upsert(
        self,
        agent_id: str,
        session_id: str,
        key: str,
        value: Any,
        metadata: Optional[Dict[str, Any]] = None,
        memory_type: str = "private",
    ) -> Dict[str, Any]:
        """Insert or overwrite the entry for (agent_id, key); last write wins"""
        with self.session_manager.create_session() as db:
            row = db.query(AgentMemory).filter(
                AgentMemory.agent_id == agent_id,
                AgentMemory.memory_key == key,
            ).one_or_none()
            if row is None:
                row = AgentMemory(agent_id=agent_id, session_id=session_id, memory_key=key)
                db.add(row)
            row.memory_value = value
            row.memory_type = memory_type
            row.metadata_ = dict(metadata or {})
            row.updated_at = datetime.utcnow()
            db.flush()
            return self._to_dict(row)

    async def get(self, agent_id: str, key: str) -> Optional[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            row = db.query(AgentMemory).filter(
                AgentMemory.agent_id == agent_id,
                AgentMemory.memory_key == key,
            ).one_or_none()
            return self._to_dict(row) if row else None

    async def list_for_owner(self, agent_id: str) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            rows = db.query(AgentMemory).filter(
                AgentMemory.agent_id == agent_id
            ).order_by(AgentMemory.updated_at.desc()).all()
            return [self._to_dict(row) for row in rows]

    async def search(self, agent_id: str, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Case-insensitive match against keys and serialized values"""
        needle = query.lower()
        matches = []
        for entry in await self.list_for_owner(agent_id):
            haystack = f"{entry['key']} {json.dumps(entry['value'], default=str)}".lower()
            if needle in haystack:
                matches.append(entry)
            if len(matches) >= limit:
                break
        return matches

    async def delete_for_session(
        self,
        session_id: str,
        memory_type: Optional[str] = None,
        exclude_keys: Optional[Iterable[str]] = None,
    ) -> int:
        exclude = set(exclude_keys or ())
        with self.session_manager.create_session() as db:
            query = db.query(AgentMemory).filter(AgentMemory.session_id == session_id)
            if memory_type:
                query = query.filter(AgentMemory.memory_type == memory_type)
            if exclude:
                query = query.filter(AgentMemory.memory_key.notin_(exclude))
            deleted = query.delete(synchronize_session=False)

        self.logger.info(f"[MEMORY REPO] Cleared {deleted} memory entries from session {session_id}")
        return deleted
