"""
Logging Configuration
====================

Settings come from ``research_orchestrator.utils.config.Settings``
(LOG_LEVEL, LOG_FORMAT, LOG_DIR, LOG_FILE_ENABLED, LOG_CONSOLE,
LOG_RETENTION_DAYS, ENV_STATE).

Usage:
------
```python
from research_orchestrator.core.logging import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)
logger.info("Session created")
```
"""

import sys
import logging
from typing import Dict, Optional

from research_orchestrator.core.logging.formatters import DevFormatter, JsonFormatter
from research_orchestrator.core.logging.handlers import (
    SmartRoutingHandler,
    cleanup_old_logs,
    create_error_handler,
    ensure_log_directories,
)
from research_orchestrator.utils.config import Settings, get_settings


_configured_loggers: Dict[str, logging.Logger] = {}
_logging_initialized = False

NOISY_LOGGERS = ["asyncio", "sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite"]


def setup_logging(
    level: Optional[str] = None,
    use_json: Optional[bool] = None,
    console: Optional[bool] = None,
    settings: Optional[Settings] = None,
) -> None:
    """
    Initialize the logging system. Safe to call more than once.

    Args:
        level: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Override format (True for JSON, False for text)
        console: Override console output
        settings: Settings instance, defaults to the process settings
    """
    global _logging_initialized

    if _logging_initialized:
        return

    settings = settings or get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if use_json is None:
        use_json = settings.LOG_FORMAT.lower() == "json" or settings.is_production
    if console is None:
        console = settings.LOG_CONSOLE

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers filter
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(JsonFormatter() if use_json else DevFormatter(use_colors=True))
        root_logger.addHandler(console_handler)

    if settings.LOG_FILE_ENABLED:
        ensure_log_directories(settings.LOG_DIR)
        root_logger.addHandler(
            SmartRoutingHandler(
                log_dir=settings.LOG_DIR,
                use_json=use_json,
                retention_days=settings.LOG_RETENTION_DAYS,
                level=log_level,
            )
        )
        root_logger.addHandler(
            create_error_handler(
                log_dir=settings.LOG_DIR,
                use_json=use_json,
                retention_days=settings.LOG_RETENTION_DAYS,
            )
        )
        cleanup_old_logs(settings.LOG_DIR, settings.LOG_RETENTION_DAYS)

    _configure_third_party_loggers(log_level)
    _logging_initialized = True

    root_logger.info(
        f"Logging initialized: level={level_name}, "
        f"format={'json' if use_json else 'text'}, "
        f"files={'on' if settings.LOG_FILE_ENABLED else 'off'}"
    )


def _configure_third_party_loggers(level: int) -> None:
    """Reduce noise from third-party libraries."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger, initializing logging on first use.

    Args:
        name: Logger name (usually ``__name__``). Defaults to "app".
    """
    if not _logging_initialized:
        setup_logging()

    name = name or "app"
    if name not in _configured_loggers:
        _configured_loggers[name] = logging.getLogger(name)
    return _configured_loggers[name]


def shutdown_logging() -> None:
    """Flush and close all handlers."""
    global _logging_initialized

    logging.shutdown()
    _configured_loggers.clear()
    _logging_initialized = False
