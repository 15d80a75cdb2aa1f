from research_orchestrator.database.repository.artifacts import ArtifactRepository
from research_orchestrator.database.repository.feedback import FeedbackRepository
from research_orchestrator.database.repository.logs import LogRepository
from research_orchestrator.database.repository.memory import MemoryRepository, shared_owner_id
from research_orchestrator.database.repository.messages import MessageRepository
from research_orchestrator.database.repository.sessions import SessionRepository
from research_orchestrator.database.repository.workers import WorkerRepository

__all__ = [
    "ArtifactRepository",
    "FeedbackRepository",
    "LogRepository",
    "MemoryRepository",
    "MessageRepository",
    "SessionRepository",
    "WorkerRepository",
    "shared_owner_id",
]
