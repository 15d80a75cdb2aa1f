"""
Shared fixtures

Every test gets its own in-memory SQLite database, no log files, and
poll intervals short enough to keep dependency waits in milliseconds.
"""

import os

os.environ.setdefault("ENV_STATE", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("DEPENDENCY_POLL_INTERVAL_SEC", "0.01")
os.environ.setdefault("DEPENDENCY_TIMEOUT_SEC", "2")
os.environ.setdefault("MESSAGE_DRAIN_INTERVAL_SEC", "0.01")

import pytest
import pytest_asyncio

from research_orchestrator.database import SessionManager
from research_orchestrator.database.repository import (
    ArtifactRepository,
    FeedbackRepository,
    LogRepository,
    MemoryRepository,
    MessageRepository,
    SessionRepository,
    WorkerRepository,
)
from research_orchestrator.orchestration import EventEmitter, SessionOrchestrator, SharedSessionState
from research_orchestrator.utils.config import Settings


# ============================================================================
# CONFIGURATION / STORAGE
# ============================================================================

@pytest.fixture
def settings():
    """Settings tuned for fast, isolated tests"""
    return Settings(
        ENV_STATE="test",
        DATABASE_URL="sqlite:///:memory:",
        LOG_FILE_ENABLED=False,
        DEPENDENCY_POLL_INTERVAL_SEC=0.01,
        DEPENDENCY_TIMEOUT_SEC=2.0,
        MESSAGE_DRAIN_INTERVAL_SEC=0.01,
        HEARTBEAT_INTERVAL_SEC=0.05,
    )


@pytest.fixture
def session_manager(settings):
    """Fresh in-memory database with the schema created"""
    manager = SessionManager(settings=settings)
    manager.init_schema()
    yield manager
    manager.close()


@pytest.fixture
def repositories(session_manager):
    return {
        "sessions": SessionRepository(session_manager),
        "workers": WorkerRepository(session_manager),
        "artifacts": ArtifactRepository(session_manager),
        "memory": MemoryRepository(session_manager),
        "messages": MessageRepository(session_manager),
        "logs": LogRepository(session_manager),
        "feedback": FeedbackRepository(session_manager),
    }


@pytest.fixture
def shared_state(repositories):
    return SharedSessionState(repositories["sessions"], repositories["memory"])


@pytest.fixture
def emitter(settings):
    return EventEmitter(heartbeat_interval_sec=settings.HEARTBEAT_INTERVAL_SEC)


# ============================================================================
# ORCHESTRATOR
# ============================================================================

@pytest_asyncio.fixture
async def orchestrator(session_manager, settings):
    """Started orchestrator with the default worker types"""
    orch = SessionOrchestrator(session_manager=session_manager, settings=settings)
    await orch.start()
    yield orch
    await orch.shutdown()


@pytest_asyncio.fixture
async def session(orchestrator):
    """A freshly created session owned by user-1"""
    return await orchestrator.create_session("user-1", "Solid-state batteries", {"depth": "quick"})
