"""
Log Context Management
======================

Carries the current session id and worker id across every log message
using contextvars. Each worker's execution task inherits the context that
was active when the task was created, so logs emitted from deep inside a
worker's domain logic are still attributed to the right session.

Usage:
------
```python
from research_orchestrator.core.logging.context import LogContext

async with LogContext(session_id="abc", worker_id="abc-echo-1f2e"):
    logger.info("Waiting for dependencies")   # [abc/abc-echo-1f2e] ...
```
"""

import uuid
from contextvars import ContextVar
from typing import Optional

_session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
_worker_id_var: ContextVar[Optional[str]] = ContextVar("worker_id", default=None)


def get_session_id() -> Optional[str]:
    """Get the current session ID from context."""
    return _session_id_var.get()


def get_worker_id() -> Optional[str]:
    """Get the current worker ID from context."""
    return _worker_id_var.get()


def set_log_context(session_id: Optional[str] = None, worker_id: Optional[str] = None) -> None:
    """Set session/worker ids in the current context."""
    _session_id_var.set(session_id)
    _worker_id_var.set(worker_id)


def clear_log_context() -> None:
    """Clear session/worker ids from context."""
    _session_id_var.set(None)
    _worker_id_var.set(None)


def format_context_tag() -> str:
    """Render the active context as ``[session/worker] `` or an empty string."""
    session_id = _session_id_var.get()
    worker_id = _worker_id_var.get()
    if not session_id and not worker_id:
        return ""
    if worker_id:
        return f"[{session_id or '-'}/{worker_id}] "
    return f"[{session_id}] "


class LogContext:
    """
    Context manager for session/worker scoping.

    Restores the previous values on exit, with proper cleanup even if
    exceptions occur.
    """

    def __init__(self, session_id: Optional[str] = None, worker_id: Optional[str] = None):
        self.session_id = session_id
        self.worker_id = worker_id
        self._session_token = None
        self._worker_token = None

    def __enter__(self):
        self._session_token = _session_id_var.set(self.session_id)
        self._worker_token = _worker_id_var.set(self.worker_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _worker_id_var.reset(self._worker_token)
        _session_id_var.reset(self._session_token)
        return False  # Don't suppress exceptions

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)


def generate_flow_id(prefix: str = "flow") -> str:
    """
    Generate a short flow ID for tracking sub-operations.

    Returns:
        Flow ID like "msg-a1b2c3d4"
    """
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
