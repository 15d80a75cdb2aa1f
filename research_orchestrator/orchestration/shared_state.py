"""
Per-session tracking and shared memory.

One ``SessionTrackingRecord`` per live session holds the set of workers
started under it and its shared memory. Records are rebuilt from durable
storage on first access, so a process restart loses running workers but
not the session's shared memory.
"""

from typing import Any, Callable, Dict, List, Optional

from research_orchestrator.agents.models import SessionTrackingRecord, SharedMemoryEntry
from research_orchestrator.core.exceptions import NotFoundError
from research_orchestrator.database.repository import MemoryRepository, SessionRepository, shared_owner_id
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


class SharedSessionState(LoggerMixin):
    """
    Session-scoped key/value store visible to every worker in the session.

    Last write wins; no versioning or locking. Readers get ``None`` for
    keys that have not been written yet.
    """

    def __init__(self, sessions: SessionRepository, memory: MemoryRepository):
        super().__init__()
        self._session_repo = sessions
        self._memory_repo = memory
        self._records: Dict[str, SessionTrackingRecord] = {}

    # ========================================================================
    # Tracking records
    # ========================================================================

    def get(self, session_id: str) -> Optional[SessionTrackingRecord]:
        return self._records.get(session_id)

    def open(self, session: Dict[str, Any]) -> SessionTrackingRecord:
        """Start tracking a freshly created session"""
        record = SessionTrackingRecord(
            session_id=session["id"],
            user_id=session["user_id"],
            research_topic=session["research_topic"],
            preferences=dict(session.get("preferences") or {}),
        )
        self._records[record.session_id] = record
        return record

    async def ensure(self, session_id: str) -> SessionTrackingRecord:
        """Return the tracking record, rehydrating it from storage if absent"""
        record = self._records.get(session_id)
        if record is not None:
            return record

        session = await self._session_repo.get(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)

        record = self.open(session)
        for row in await self._memory_repo.list_for_owner(shared_owner_id(session_id)):
            record.shared_memory[row["key"]] = SharedMemoryEntry.from_row(row)

        self.logger.info(
            f"[SHARED STATE] Rehydrated session {session_id} "
            f"({len(record.shared_memory)} shared keys)"
        )
        return record

    def remove(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    def track_worker(self, session_id: str, worker_id: str, worker_type: str) -> None:
        record = self._records.get(session_id)
        if record is None:
            raise NotFoundError("Session", session_id)
        record.workers[worker_id] = worker_type

    def untrack_workers(self, session_id: str) -> List[str]:
        record = self._records.get(session_id)
        if record is None:
            return []
        removed = record.worker_ids()
        record.workers.clear()
        return removed

    def tracked_worker_ids(self, session_id: str) -> List[str]:
        record = self._records.get(session_id)
        return record.worker_ids() if record else []

    # ========================================================================
    # Shared memory
    # ========================================================================

    async def write(
        self,
        session_id: str,
        key: str,
        value: Any,
        writer_worker_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SharedMemoryEntry:
        record = await self.ensure(session_id)
        entry = SharedMemoryEntry(
            value=value,
            writer_worker_id=writer_worker_id,
            session_id=session_id,
            extra=dict(metadata or {}),
        )
        record.shared_memory[key] = entry

        await self._memory_repo.upsert(
            agent_id=shared_owner_id(session_id),
            session_id=session_id,
            key=key,
            value=value,
            metadata=entry.metadata,
            memory_type="shared",
        )
        self.logger.debug(f"[SHARED STATE] {writer_worker_id} wrote '{key}' in session {session_id}")
        return entry

    async def read(self, session_id: str, key: str) -> Optional[SharedMemoryEntry]:
        record = await self.ensure(session_id)
        return record.shared_memory.get(key)

    async def snapshot(self, session_id: str) -> Dict[str, Dict[str, Any]]:
        record = await self.ensure(session_id)
        return {key: entry.to_dict() for key, entry in record.shared_memory.items()}

    async def clear(
        self,
        session_id: str,
        keep: Optional[Callable[[str, SharedMemoryEntry], bool]] = None,
    ) -> int:
        """Drop shared entries, except those for which ``keep(key, entry)`` is true"""
        record = await self.ensure(session_id)
        kept = {
            key: entry for key, entry in record.shared_memory.items()
            if keep is not None and keep(key, entry)
        }
        dropped = len(record.shared_memory) - len(kept)
        record.shared_memory = kept

        await self._memory_repo.delete_for_session(
            session_id, memory_type="shared", exclude_keys=kept.keys()
        )
        self.logger.info(f"[SHARED STATE] Cleared {dropped} shared keys in session {session_id} (kept {len(kept)})")
        return dropped
