from research_orchestrator.database.session_manager import SessionManager

__all__ = ["SessionManager"]
