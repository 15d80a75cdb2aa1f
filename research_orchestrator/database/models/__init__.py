from research_orchestrator.database.models.base import Base
from research_orchestrator.database.models.schemas import (
    AgentArtifacts,
    AgentFeedback,
    AgentLogs,
    AgentMemory,
    AgentMessages,
    AgentSessions,
    Agents,
)

__all__ = [
    "Base",
    "AgentArtifacts",
    "AgentFeedback",
    "AgentLogs",
    "AgentMemory",
    "AgentMessages",
    "AgentSessions",
    "Agents",
]
