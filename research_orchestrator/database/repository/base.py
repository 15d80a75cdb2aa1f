from datetime import datetime
from typing import Optional

from research_orchestrator.database.session_manager import SessionManager
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


class BaseRepository(LoggerMixin):
    """Shares one SessionManager between repositories."""

    def __init__(self, session_manager: SessionManager):
        super().__init__()
        self.session_manager = session_manager

    @staticmethod
    def _iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None
