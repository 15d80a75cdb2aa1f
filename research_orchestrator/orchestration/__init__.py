from research_orchestrator.orchestration.control import ControlResult, SessionControl
from research_orchestrator.orchestration.event_emitter import EventEmitter, EventStream
from research_orchestrator.orchestration.message_bus import MessageBus
from research_orchestrator.orchestration.orchestrator import SessionOrchestrator, parse_preferences
from research_orchestrator.orchestration.shared_state import SharedSessionState

__all__ = [
    "ControlResult",
    "EventEmitter",
    "EventStream",
    "MessageBus",
    "SessionControl",
    "SessionOrchestrator",
    "SharedSessionState",
    "parse_preferences",
]
