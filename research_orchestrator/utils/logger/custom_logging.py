"""
Custom Logging - bridge to the logging system in ``core.logging``.

Usage:
    from research_orchestrator.utils.logger.custom_logging import LoggerMixin

    class MyService(LoggerMixin):
        def __init__(self):
            super().__init__()  # Sets up self.logger
            self.logger.info("Service ready")
"""

import logging
from typing import Optional

from research_orchestrator.core.logging import get_logger as _get_configured_logger


class LogHandler(object):
    """Hands out loggers from the configured logging system."""

    def get_logger(self, logger_name: str, category: Optional[str] = None) -> logging.Logger:
        """
        Get a logger by name.

        Args:
            logger_name: Name of the logger (usually __name__)
            category: Optional prefix used by the file router (orchestration, agents, database)
        """
        if category and category not in logger_name.lower():
            logger_name = f"{category}.{logger_name}"
        return _get_configured_logger(logger_name)


class LoggerMixin:
    """
    Mixin class that provides a ``self.logger`` attribute named
    ``{module}.{ClassName}``.
    """

    def __init__(self) -> None:
        logger_name = f"{self.__class__.__module__}.{self.__class__.__name__}"
        self.logger = LogHandler().get_logger(logger_name)


def get_logger(name: str, category: Optional[str] = None) -> logging.Logger:
    """Quick function to get a configured logger."""
    return LogHandler().get_logger(name, category)
