"""
Multi-Agent Sessions - Data Models

- AgentState: lifecycle of a running worker instance
- WorkerStatus: lifecycle of a registration owned by the scheduler
- SessionStatus: lifecycle of a research session
- SharedMemoryEntry, AgentTask, WorkerRegistration, SessionTrackingRecord
- RestartOptions
"""

import asyncio
import time
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type
from datetime import datetime


# ============================================================================
# STATE MACHINES
# ============================================================================

class AgentState(str, Enum):
    """State of a worker instance, as seen from inside the worker."""
    INITIALIZED = "initialized"
    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    CLEANING_UP = "cleaning_up"
    STOPPED = "stopped"


class WorkerStatus(str, Enum):
    """State of a registration, owned by the orchestrator."""
    REGISTERED = "registered"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ERROR = "error"


class SessionStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ERROR = "error"
    FAILED = "failed"  # Older records only


class ArtifactStatus(str, Enum):
    DRAFT = "draft"
    FINAL = "final"


# Worker statuses that close a session (errors count as finished)
FINISHED_WORKER_STATUSES = frozenset({WorkerStatus.COMPLETED, WorkerStatus.ERROR})

# Worker statuses in which stop/pause are allowed
ACTIVE_WORKER_STATUSES = frozenset({WorkerStatus.RUNNING, WorkerStatus.PAUSED})

RESTARTABLE_SESSION_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.FAILED,
    SessionStatus.ERROR,
    SessionStatus.STOPPED,
})


def can_restart_session(status: str) -> bool:
    """Restart is only legal once a session has come to rest."""
    try:
        return SessionStatus(status) in RESTARTABLE_SESSION_STATUSES
    except ValueError:
        return False


# ============================================================================
# SHARED STATE / TASKS
# ============================================================================

@dataclass
class SharedMemoryEntry:
    """A value in a session's shared memory plus who wrote it and when."""
    value: Any
    writer_worker_id: str
    session_id: str
    timestamp: float = field(default_factory=time.time)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "timestamp": self.timestamp,
            "writer_worker_id": self.writer_worker_id,
            "session_id": self.session_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "metadata": self.metadata}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SharedMemoryEntry":
        metadata = dict(row.get("metadata") or {})
        return cls(
            value=row.get("value"),
            writer_worker_id=metadata.pop("writer_worker_id", "unknown"),
            session_id=metadata.pop("session_id", row.get("session_id")),
            timestamp=metadata.pop("timestamp", time.time()),
            extra=metadata,
        )


@dataclass
class AgentTask:
    """An entry in a worker's private task list."""
    description: str
    payload: Dict[str, Any] = field(default_factory=dict)
    task_id: str = field(default_factory=lambda: f"task_{uuid.uuid4().hex[:12]}")
    status: str = "pending"
    result: Any = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "description": self.description,
            "payload": self.payload,
            "status": self.status,
            "result": self.result,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


# ============================================================================
# SCHEDULER RECORDS
# ============================================================================

@dataclass
class WorkerRegistration:
    """
    Scheduler-side record for one worker.

    Owns the worker instance for its whole lifetime (one instance per
    registration) and the asyncio task running ``execute()``.
    """
    worker_id: str
    worker_type: str
    worker_class: Type[Any]
    config: Dict[str, Any] = field(default_factory=dict)
    status: WorkerStatus = WorkerStatus.REGISTERED
    session_id: Optional[str] = None
    instance: Optional[Any] = None
    task: Optional["asyncio.Task[None]"] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_WORKER_STATUSES

    @property
    def progress(self) -> int:
        if self.instance is None:
            return 0
        return int(getattr(self.instance, "progress", 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "worker_type": self.worker_type,
            "session_id": self.session_id,
            "status": self.status.value,
            "progress": self.progress,
            "current_task": getattr(self.instance, "current_task", None),
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
        }


@dataclass
class SessionTrackingRecord:
    """
    In-memory view of a session: the workers started under it and its
    shared memory. Rebuilt from durable storage when missing.
    """
    session_id: str
    user_id: str
    research_topic: str
    preferences: Dict[str, Any] = field(default_factory=dict)
    workers: Dict[str, str] = field(default_factory=dict)  # worker_id -> worker_type
    shared_memory: Dict[str, SharedMemoryEntry] = field(default_factory=dict)

    def worker_ids(self) -> List[str]:
        return list(self.workers)


@dataclass
class RestartOptions:
    clear_artifacts: bool = True
    clear_memory: bool = False
    preserve_prior_phase: Optional[str] = None
    worker_types: Optional[List[str]] = None
