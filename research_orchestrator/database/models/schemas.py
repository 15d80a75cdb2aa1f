"""
Database models for multi-agent research sessions

Tables:
- agent_sessions: one row per research session
- agents: durable mirror of worker registrations
- agent_memory: worker-private and session-shared memory entries
- agent_artifacts: typed worker outputs
- agent_messages: bus messages between workers
- agent_logs: per-worker log lines
- agent_feedback: user feedback on sessions, workers or artifacts
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, Index, UniqueConstraint
)

from research_orchestrator.database.models.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class AgentSessions(Base):
    __tablename__ = "agent_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(100), nullable=False, index=True)
    research_topic = Column(Text, nullable=False)
    preferences = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="created", index=True)
    # Values: created, running, paused, stopped, completed, error (legacy: failed)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)


class Agents(Base):
    __tablename__ = "agents"

    id = Column(String(255), primary_key=True)
    session_id = Column(String(36), nullable=False, index=True)
    agent_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="registered")
    config = Column(JSON, nullable=False, default=dict)
    progress = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)


class AgentMemory(Base):
    __tablename__ = "agent_memory"
    __table_args__ = (
        UniqueConstraint("agent_id", "memory_key", name="uq_agent_memory_key"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    # Shared entries use agent_id = "shared_{session_id}"
    agent_id = Column(String(255), nullable=False, index=True)
    session_id = Column(String(36), nullable=False, index=True)
    memory_key = Column(String(255), nullable=False)
    memory_value = Column(JSON, nullable=True)
    memory_type = Column(String(20), nullable=False, default="private")
    # Values: private, shared
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AgentArtifacts(Base):
    __tablename__ = "agent_artifacts"
    __table_args__ = (
        Index("ix_agent_artifacts_session_type", "session_id", "artifact_type"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(36), nullable=False, index=True)
    agent_id = Column(String(255), nullable=False, index=True)
    artifact_type = Column(String(100), nullable=False)
    artifact_name = Column(String(255), nullable=False)
    content = Column(JSON, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="draft")
    # Values: draft, final

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AgentMessages(Base):
    __tablename__ = "agent_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(36), nullable=False, index=True)
    from_agent = Column(String(255), nullable=False)
    to_agent = Column(String(255), nullable=True)
    # NULL = broadcast to every worker tracked under the session
    message_type = Column(String(100), nullable=False)
    message_data = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="sent")
    # Values: sent, delivered

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)


class AgentLogs(Base):
    __tablename__ = "agent_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), nullable=False, index=True)
    agent_id = Column(String(255), nullable=False, index=True)
    log_level = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AgentFeedback(Base):
    __tablename__ = "agent_feedback"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(100), nullable=False)
    agent_id = Column(String(255), nullable=True)
    artifact_id = Column(String(36), nullable=True)
    feedback = Column(Text, nullable=False)
    feedback_type = Column(String(50), nullable=False, default="general")
    priority = Column(String(20), nullable=False, default="medium")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
