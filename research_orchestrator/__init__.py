"""
Research Orchestrator
=====================

Runs multi-agent research sessions: registers worker types, starts one
worker per requested type under a session, lets workers share results
through session-scoped memory and queued messages, and closes the session
once every started worker has finished.

Usage:
------
```python
from research_orchestrator import SessionOrchestrator

orchestrator = SessionOrchestrator()
await orchestrator.start()

session = await orchestrator.create_session("user-1", "Solid-state batteries")
await orchestrator.start_workers(session["id"], "user-1", ["echo"])
session = await orchestrator.wait_for_session(session["id"])

await orchestrator.shutdown()
```
"""

from research_orchestrator.agents.base_agent import BaseAgent
from research_orchestrator.agents.models import RestartOptions, SessionStatus, WorkerStatus
from research_orchestrator.agents.registry import AgentTypeRegistry, create_default_registry
from research_orchestrator.orchestration.control import ControlResult, SessionControl
from research_orchestrator.orchestration.orchestrator import SessionOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AgentTypeRegistry",
    "BaseAgent",
    "ControlResult",
    "RestartOptions",
    "SessionControl",
    "SessionOrchestrator",
    "SessionStatus",
    "WorkerStatus",
    "create_default_registry",
]
