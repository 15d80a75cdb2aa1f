"""
Artifact Repository - Database operations for worker outputs

Artifacts start as ``draft`` and may be promoted to ``final``; every
content or metadata change bumps ``version``.
"""

from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

from research_orchestrator.database.models.schemas import AgentArtifacts
from research_orchestrator.database.repository.base import BaseRepository


class ArtifactRepository(BaseRepository):

    def _to_dict(self, row: AgentArtifacts) -> Dict[str, Any]:
        return {
            'id': row.id,
            'session_id': row.session_id,
            'agent_id': row.agent_id,
            'artifact_type': row.artifact_type,
            'artifact_name': row.artifact_name,
            'content': row.content,
            'metadata': dict(row.metadata_ or {}),
            'version': row.version,
            'status': row.status,
            'created_at': self._iso(row.created_at),
            'updated_at': self._iso(row.updated_at),
        }

    async def create(
        self,
        session_id: str,
        agent_id: str,
        artifact_type: str,
        content: Any,
        metadata: Optional[Dict[str, Any]] = None,
        artifact_name: Optional[str] = None,
        status: str = "draft",
    ) -> Dict[str, Any]:
        with self.session_manager.create_session() as db:
            row = AgentArtifacts(
                session_id=session_id,
                agent_id=agent_id,
                artifact_type=artifact_type,
                artifact_name=artifact_name or f"{artifact_type}_{int(datetime.utcnow().timestamp() * 1000)}",
                content=content,
                metadata_=dict(metadata or {}),
                status=status,
            )
            db.add(row)
            db.flush()
            result = self._to_dict(row)

        self.logger.info(f"[ARTIFACT REPO] Created {artifact_type} artifact {result['id']} by {agent_id}")
        return result

    async def get(self, artifact_id: str, session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            row = db.get(AgentArtifacts, artifact_id)
            if row is None or (session_id is not None and row.session_id != session_id):
                return None
            return self._to_dict(row)

    async def update(
        self,
        artifact_id: str,
        content: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Update content/metadata/status in place

        Metadata is merged into the existing blob. Returns None when the
        artifact does not exist.
        """
        with self.session_manager.create_session() as db:
            row = db.get(AgentArtifacts, artifact_id)
            if row is None:
                return None
            if content is not None:
                row.content = content
            if metadata:
                row.metadata_ = {**(row.metadata_ or {}), **metadata}
            if status is not None:
                row.status = status
            row.version = (row.version or 1) + 1
            row.updated_at = datetime.utcnow()
            db.flush()
            return self._to_dict(row)

    async def list(
        self,
        session_id: str,
        artifact_type: Optional[str] = None,
        status: Optional[str] = None,
        agent_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        with self.session_manager.create_session() as db:
            query = db.query(AgentArtifacts).filter(AgentArtifacts.session_id == session_id)
            if artifact_type:
                query = query.filter(AgentArtifacts.artifact_type == artifact_type)
            if status:
                query = query.filter(AgentArtifacts.status == status)
            if agent_id:
                query = query.filter(AgentArtifacts.agent_id == agent_id)
            query = query.order_by(AgentArtifacts.created_at.desc()).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [self._to_dict(row) for row in query.all()]

    async def delete_for_session(self, session_id: str, exclude_ids: Optional[Iterable[str]] = None) -> int:
        exclude = set(exclude_ids or ())
        with self.session_manager.create_session() as db:
            query = db.query(AgentArtifacts).filter(AgentArtifacts.session_id == session_id)
            if exclude:
                query = query.filter(AgentArtifacts.id.notin_(exclude))
            deleted = query.delete(synchronize_session=False)

        self.logger.info(f"[ARTIFACT REPO] Cleared {deleted} artifacts from session {session_id} (kept {len(exclude)})")
        return deleted
