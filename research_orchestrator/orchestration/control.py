"""
Session control surface

Thin wrapper over SessionOrchestrator for transport layers. Every call
returns a ControlResult instead of raising:

    NotFoundError                                  -> 404 NOT_FOUND
    InvalidRequestError, ContractViolationError    -> 400 BAD_REQUEST
    InvalidStateError, NotRunningError             -> 400 INVALID_STATE
    anything else                                  -> 500 INTERNAL_ERROR
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from research_orchestrator.agents.models import RestartOptions
from research_orchestrator.agents.registry import RESEARCH_TEMPLATES, apply_template
from research_orchestrator.core.exceptions import (
    ContractViolationError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    NotRunningError,
    OrchestratorError,
)
from research_orchestrator.orchestration.orchestrator import SessionOrchestrator, parse_preferences
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


class ControlError(BaseModel):
    code: str = Field(description='Machine-readable error code')
    message: str = Field(description='Human-readable error message')


class ControlResult(BaseModel):
    success: bool = Field(description='Whether the operation succeeded')
    status_code: int = Field(default=200, description='HTTP-style status code')
    data: Any = Field(default=None, description='Operation payload on success')
    error: Optional[ControlError] = Field(default=None, description='Error details on failure')

    @classmethod
    def ok(cls, data: Any = None, status_code: int = 200) -> "ControlResult":
        return cls(success=True, status_code=status_code, data=data)

    @classmethod
    def fail(cls, status_code: int, code: str, message: str) -> "ControlResult":
        return cls(success=False, status_code=status_code, error=ControlError(code=code, message=message))


def error_result(error: Exception) -> ControlResult:
    if isinstance(error, NotFoundError):
        return ControlResult.fail(404, "NOT_FOUND", error.message)
    if isinstance(error, (InvalidRequestError, ContractViolationError)):
        return ControlResult.fail(400, "BAD_REQUEST", error.message)
    if isinstance(error, (InvalidStateError, NotRunningError)):
        return ControlResult.fail(400, "INVALID_STATE", error.message)
    if isinstance(error, OrchestratorError):
        return ControlResult.fail(500, "INTERNAL_ERROR", error.message)
    return ControlResult.fail(500, "INTERNAL_ERROR", str(error) or error.__class__.__name__)


class SessionControl(LoggerMixin):
    """Result-returning facade over one SessionOrchestrator."""

    def __init__(self, orchestrator: SessionOrchestrator):
        super().__init__()
        self.orchestrator = orchestrator

    async def _call(self, operation: str, func: Callable[[], Awaitable[Any]], status_code: int = 200) -> ControlResult:
        try:
            return ControlResult.ok(await func(), status_code)
        except OrchestratorError as e:
            self.logger.warning(f"[CONTROL] {operation} failed: {e.message}")
            return error_result(e)
        except Exception as e:
            self.logger.error(f"[CONTROL] {operation} failed: {e}", exc_info=True)
            return error_result(e)

    # ========================================================================
    # Sessions
    # ========================================================================

    async def create_session(
        self,
        user_id: str,
        research_topic: str,
        preferences: Union[None, str, Dict[str, Any]] = None,
        template_id: Optional[str] = None,
    ) -> ControlResult:
        async def run():
            if not research_topic or not research_topic.strip():
                raise InvalidRequestError("Research topic is required")
            prefs = parse_preferences(preferences)
            if template_id:
                prefs = apply_template(template_id, prefs)
            return await self.orchestrator.create_session(user_id, research_topic.strip(), prefs)

        return await self._call("create_session", run, status_code=201)

    async def get_session(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call("get_session", lambda: self.orchestrator.get_session(session_id, user_id))

    async def list_sessions(self, user_id: str, limit: int = 50, offset: int = 0) -> ControlResult:
        return await self._call(
            "list_sessions", lambda: self.orchestrator.list_user_sessions(user_id, limit=limit, offset=offset)
        )

    async def update_session(self, session_id: str, user_id: str, updates: Dict[str, Any]) -> ControlResult:
        return await self._call(
            "update_session", lambda: self.orchestrator.update_session(session_id, updates, user_id)
        )

    async def delete_session(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call("delete_session", lambda: self.orchestrator.delete_session(session_id, user_id))

    # ========================================================================
    # Execution control
    # ========================================================================

    async def start_session(
        self,
        session_id: str,
        user_id: str,
        worker_types: Optional[List[str]] = None,
        auth_context: Optional[Dict[str, Any]] = None,
    ) -> ControlResult:
        async def run():
            types = worker_types
            if not types:
                session = await self.orchestrator.get_session(session_id, user_id)
                types = session["preferences"].get("agent_types") or self.orchestrator.settings.DEFAULT_WORKER_TYPES
            return await self.orchestrator.start_workers(session_id, user_id, list(types), auth_context)

        return await self._call("start_session", run)

    async def pause_session(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call("pause_session", lambda: self.orchestrator.pause_session(session_id, user_id))

    async def resume_session(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call("resume_session", lambda: self.orchestrator.resume_session(session_id, user_id))

    async def stop_session(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call("stop_session", lambda: self.orchestrator.stop_session(session_id, user_id))

    async def restart_session(
        self,
        session_id: str,
        user_id: str,
        options: Union[None, RestartOptions, Dict[str, Any]] = None,
        auth_context: Optional[Dict[str, Any]] = None,
    ) -> ControlResult:
        if isinstance(options, dict):
            options = RestartOptions(**options)
        return await self._call(
            "restart_session",
            lambda: self.orchestrator.restart_session(session_id, user_id, options, auth_context),
        )

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_progress(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call(
            "get_progress", lambda: self.orchestrator.get_session_progress(session_id, user_id)
        )

    async def list_artifacts(
        self,
        session_id: str,
        user_id: str,
        artifact_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ControlResult:
        return await self._call(
            "list_artifacts",
            lambda: self.orchestrator.list_artifacts(
                session_id, user_id, artifact_type=artifact_type, status=status, limit=limit, offset=offset
            ),
        )

    async def get_artifact(self, session_id: str, artifact_id: str, user_id: str) -> ControlResult:
        return await self._call(
            "get_artifact", lambda: self.orchestrator.get_artifact(session_id, artifact_id, user_id)
        )

    async def list_logs(
        self,
        session_id: str,
        user_id: str,
        limit: int = 100,
        offset: int = 0,
        level: Optional[str] = None,
        worker_id: Optional[str] = None,
    ) -> ControlResult:
        return await self._call(
            "list_logs",
            lambda: self.orchestrator.list_logs(
                session_id, user_id, limit=limit, offset=offset, level=level, worker_id=worker_id
            ),
        )

    async def provide_feedback(
        self,
        session_id: str,
        user_id: str,
        feedback: str,
        worker_id: Optional[str] = None,
        artifact_id: Optional[str] = None,
        feedback_type: str = "general",
        priority: str = "medium",
    ) -> ControlResult:
        return await self._call(
            "provide_feedback",
            lambda: self.orchestrator.provide_feedback(
                session_id,
                user_id,
                feedback,
                worker_id=worker_id,
                artifact_id=artifact_id,
                feedback_type=feedback_type,
                priority=priority,
            ),
            status_code=201,
        )

    async def get_stats(self, session_id: str, user_id: str) -> ControlResult:
        return await self._call("get_stats", lambda: self.orchestrator.get_session_stats(session_id, user_id))

    # ========================================================================
    # Catalog
    # ========================================================================

    async def list_agent_types(self) -> ControlResult:
        async def run():
            return {"agent_types": self.orchestrator.registry.list_types()}

        return await self._call("list_agent_types", run)

    async def list_research_templates(self) -> ControlResult:
        async def run():
            return {"templates": [dict(t) for t in RESEARCH_TEMPLATES]}

        return await self._call("list_research_templates", run)
