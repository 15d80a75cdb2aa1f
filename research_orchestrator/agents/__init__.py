from research_orchestrator.agents.base_agent import BaseAgent
from research_orchestrator.agents.collaborators import AgentRuntime, SearchClient, TextGenerator
from research_orchestrator.agents.models import (
    AgentState,
    ArtifactStatus,
    RestartOptions,
    SessionStatus,
    SharedMemoryEntry,
    WorkerRegistration,
    WorkerStatus,
)

__all__ = [
    "AgentRuntime",
    "AgentState",
    "ArtifactStatus",
    "BaseAgent",
    "RestartOptions",
    "SearchClient",
    "SessionStatus",
    "SharedMemoryEntry",
    "TextGenerator",
    "WorkerRegistration",
    "WorkerStatus",
]
