"""
Interfaces a worker uses to reach the rest of the system.

``AgentRuntime`` is handed to every worker instance by the orchestrator.
The domain services (text generation, search) are optional; a worker that
calls one that was not configured gets ``CollaboratorUnavailableError``.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

from research_orchestrator.database.repository import ArtifactRepository, LogRepository, MemoryRepository
from research_orchestrator.utils.config import Settings

if TYPE_CHECKING:
    from research_orchestrator.orchestration.event_emitter import EventEmitter
    from research_orchestrator.orchestration.message_bus import MessageBus
    from research_orchestrator.orchestration.shared_state import SharedSessionState


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(self, prompt: str, **kwargs: Any) -> str:
        ...


@runtime_checkable
class SearchClient(Protocol):
    async def search(self, collection_id: str, query: str, **kwargs: Any) -> List[Dict[str, Any]]:
        ...


@dataclass
class AgentRuntime:
    settings: Settings
    emitter: "EventEmitter"
    message_bus: "MessageBus"
    shared_state: "SharedSessionState"
    memory: MemoryRepository
    artifacts: ArtifactRepository
    logs: LogRepository
    text_generator: Optional[TextGenerator] = None
    search_client: Optional[SearchClient] = None
    auth_context: Optional[Dict[str, Any]] = None
