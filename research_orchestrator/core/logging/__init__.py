"""
Logging System
==============

- Coloured console output for development, JSON for production
- Category files (app, orchestration, agents, database) with daily rotation
- ERROR/CRITICAL mirrored to error/
- Session/worker tracing via contextvars

Usage:
------
```python
from research_orchestrator.core.logging import setup_logging, get_logger, LogContext

setup_logging()
logger = get_logger(__name__)

async with LogContext(session_id=session_id, worker_id=worker_id):
    logger.info("Executing")  # Includes [session/worker] in log
```
"""

from research_orchestrator.core.logging.config import setup_logging, get_logger, shutdown_logging
from research_orchestrator.core.logging.context import (
    LogContext,
    clear_log_context,
    generate_flow_id,
    get_session_id,
    get_worker_id,
    set_log_context,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "shutdown_logging",
    "LogContext",
    "clear_log_context",
    "generate_flow_id",
    "get_session_id",
    "get_worker_id",
    "set_log_context",
]
