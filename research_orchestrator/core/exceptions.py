"""
Error taxonomy for session orchestration.

Every error carries a human-readable ``message`` and a ``details`` dict.
Control results map these onto 404 / 400 / 500 style responses, see
``research_orchestrator.orchestration.control``.
"""

from typing import Any, Dict, List, Optional


class OrchestratorError(Exception):
    """Base exception for all orchestration errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ContractViolationError(OrchestratorError):
    """
    A worker type is missing a required lifecycle operation.

    Raised at registration time; the worker is never started.
    """

    def __init__(self, worker_type: str, missing: List[str]):
        self.worker_type = worker_type
        self.missing = list(missing)
        super().__init__(
            f"Worker type '{worker_type}' does not implement: {', '.join(self.missing)}",
            {"worker_type": worker_type, "missing": self.missing},
        )


class InitializationError(OrchestratorError):
    """
    A worker failed inside ``initialize()``.

    Fatal to that worker only; ``execute()`` is never called.
    """

    def __init__(self, worker_id: str, reason: str):
        self.worker_id = worker_id
        self.reason = reason
        super().__init__(
            f"Worker {worker_id} failed to initialize: {reason}",
            {"worker_id": worker_id, "reason": reason},
        )


class DependencyTimeoutError(OrchestratorError):
    """
    Shared-memory dependencies did not appear before the timeout.

    ``missing_keys`` lists the keys still unresolved when time ran out.
    """

    def __init__(self, worker_id: str, missing_keys: List[str], timeout_sec: float):
        self.worker_id = worker_id
        self.missing_keys = list(missing_keys)
        self.timeout_sec = timeout_sec
        super().__init__(
            f"Dependency timeout after {timeout_sec:g}s for worker {worker_id}; "
            f"missing: {', '.join(self.missing_keys)}",
            {"worker_id": worker_id, "missing_keys": self.missing_keys, "timeout_sec": timeout_sec},
        )


class NotRunningError(OrchestratorError):
    """An operation was requested on a worker that is not in a runnable state."""

    def __init__(self, worker_id: str, status: Optional[str] = None):
        self.worker_id = worker_id
        self.status = status
        state = f" (status: {status})" if status else ""
        super().__init__(
            f"Worker {worker_id} is not running{state}",
            {"worker_id": worker_id, "status": status},
        )


class NotFoundError(OrchestratorError):
    """
    Unknown session, worker, artifact or worker type.

    Also raised when a session is accessed by a user who does not own it,
    so callers cannot probe for other users' sessions.
    """

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource} {identifier} not found or access denied",
            {"resource": resource, "identifier": str(identifier)},
        )


class InvalidStateError(OrchestratorError):
    """The target is in a state that does not allow the requested operation."""

    def __init__(self, resource: str, identifier: Any, status: str, operation: str):
        self.resource = resource
        self.identifier = identifier
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {resource} {identifier} in status: {status}",
            {"resource": resource, "identifier": str(identifier), "status": status, "operation": operation},
        )


class InvalidRequestError(OrchestratorError):
    """Caller supplied input that cannot be processed."""


class CollaboratorUnavailableError(OrchestratorError):
    """A worker asked for a domain service that was not configured."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"No {capability} collaborator configured", {"capability": capability})
