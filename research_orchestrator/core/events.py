"""
Typed events announced by the orchestration core.

Each lifecycle event kind is a member of ``EventType``; subscribers never
match on free-form strings. Bus messages are delivered under a
``MessageKey(message_type, worker_id)`` instead, because message types are
chosen by workers.
"""

import json
import time
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional
from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All lifecycle events emitted by the orchestration core."""

    # Worker lifecycle
    WORKER_REGISTERED = "worker_registered"
    WORKER_STARTED = "worker_started"
    AGENT_PROGRESS = "agent_progress"
    WORKER_COMPLETED = "worker_completed"
    WORKER_ERROR = "worker_error"
    WORKER_PAUSED = "worker_paused"
    WORKER_RESUMED = "worker_resumed"
    WORKER_STOPPED = "worker_stopped"

    # Session lifecycle
    SESSION_CREATED = "session_created"
    SESSION_UPDATED = "session_updated"
    SESSION_DELETED = "session_deleted"
    SESSION_STATUS_UPDATED = "session_status_updated"

    # Outputs and interaction
    ARTIFACT_CREATED = "artifact_created"
    ARTIFACT_UPDATED = "artifact_updated"
    MESSAGE_SENT = "message_sent"
    FEEDBACK_RECEIVED = "feedback_received"

    # Transport keep-alive
    HEARTBEAT = "heartbeat"


class MessageKey(NamedTuple):
    """Delivery key for a bus message: (message type, recipient worker id)."""

    message_type: str
    worker_id: str


class OrchestratorEvent(BaseModel):
    """A single lifecycle event ready for fan-out."""

    event: EventType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    @property
    def session_id(self) -> Optional[str]:
        return self.data.get("session_id")

    def to_sse(self) -> str:
        """Serialize to SSE wire format: `data: <json>\n\n`."""
        payload = {"type": self.event.value, **self.data, "timestamp": self.timestamp}
        return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


# ---- Factory helpers ----

def event_worker_registered(worker_id: str, worker_type: str) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.WORKER_REGISTERED,
        data={"worker_id": worker_id, "worker_type": worker_type},
    )

def event_worker_started(worker_id: str, session_id: str, worker_type: str) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.WORKER_STARTED,
        data={"worker_id": worker_id, "session_id": session_id, "worker_type": worker_type},
    )

def event_agent_progress(
    worker_id: str,
    session_id: str,
    progress: int,
    message: Optional[str] = None,
) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.AGENT_PROGRESS,
        data={
            "worker_id": worker_id,
            "session_id": session_id,
            "progress": progress,
            "message": message,
        },
    )

def event_worker_completed(worker_id: str, session_id: str) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.WORKER_COMPLETED,
        data={"worker_id": worker_id, "session_id": session_id},
    )

def event_worker_error(worker_id: str, session_id: str, error: str) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.WORKER_ERROR,
        data={"worker_id": worker_id, "session_id": session_id, "error": error},
    )

def event_worker_state(event: EventType, worker_id: str, session_id: Optional[str]) -> OrchestratorEvent:
    """Paused / resumed / stopped notifications share one payload shape."""
    return OrchestratorEvent(event=event, data={"worker_id": worker_id, "session_id": session_id})

def event_session_created(session: Dict[str, Any]) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.SESSION_CREATED,
        data={"session_id": session["id"], "session": session},
    )

def event_session_updated(session: Dict[str, Any]) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.SESSION_UPDATED,
        data={"session_id": session["id"], "session": session},
    )

def event_session_deleted(session_id: str) -> OrchestratorEvent:
    return OrchestratorEvent(event=EventType.SESSION_DELETED, data={"session_id": session_id})

def event_session_status_updated(
    session_id: str,
    status: str,
    completed_workers: int,
    total_workers: int,
    failed_workers: int = 0,
) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.SESSION_STATUS_UPDATED,
        data={
            "session_id": session_id,
            "status": status,
            "completed_workers": completed_workers,
            "failed_workers": failed_workers,
            "total_workers": total_workers,
        },
    )

def event_artifact(event: EventType, artifact: Dict[str, Any]) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=event,
        data={
            "session_id": artifact["session_id"],
            "worker_id": artifact["agent_id"],
            "artifact_id": artifact["id"],
            "artifact_type": artifact["artifact_type"],
            "status": artifact["status"],
            "version": artifact.get("version", 1),
        },
    )

def event_message_sent(message: Dict[str, Any]) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.MESSAGE_SENT,
        data={
            "session_id": message["session_id"],
            "message_id": message["id"],
            "from_agent": message["from_agent"],
            "to_agent": message["to_agent"],
            "message_type": message["message_type"],
        },
    )

def event_feedback_received(feedback: Dict[str, Any]) -> OrchestratorEvent:
    return OrchestratorEvent(
        event=EventType.FEEDBACK_RECEIVED,
        data={"session_id": feedback["session_id"], "feedback": feedback},
    )

def event_heartbeat(session_id: Optional[str] = None) -> OrchestratorEvent:
    return OrchestratorEvent(event=EventType.HEARTBEAT, data={"session_id": session_id})
