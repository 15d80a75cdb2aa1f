"""
Base Agent - the lifecycle contract every worker type implements

Lifecycle:
    initialize()  initialized -> initializing -> initialized
    execute()     running -> (dependency wait) -> perform_work() -> completed | error
    pause()       -> paused (checkpoint via save_state)
    resume()      -> running (restore_state)
    cleanup()     cleaning_up -> stopped, never raises

Subclasses implement ``perform_work()`` and optionally the hooks
``load_dependencies``, ``validate_configuration``, ``save_state``,
``restore_state`` and ``cleanup_resources``.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from research_orchestrator.agents.collaborators import AgentRuntime
from research_orchestrator.agents.models import AgentState, AgentTask, ArtifactStatus, SharedMemoryEntry
from research_orchestrator.core.events import EventType, MessageKey, event_agent_progress, event_artifact
from research_orchestrator.core.exceptions import (
    CollaboratorUnavailableError,
    DependencyTimeoutError,
    InitializationError,
    InvalidStateError,
    NotFoundError,
)
from research_orchestrator.core.logging import LogContext
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


MessageHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]

LIFECYCLE_METHODS = ("initialize", "execute", "pause", "resume", "cleanup")
LOGGER_LEVELS = ("debug", "info", "warning", "error")


# ============================================================================
# BASE AGENT
# ============================================================================

class BaseAgent(ABC, LoggerMixin):
    """
    Base class for all session workers.

    Attributes:
        agent_id: Unique identifier, also the registration id
        session_id: Session this worker runs under
        config: Type-specific configuration derived from session preferences
        state: Current AgentState
        progress: 0-100, only changed through update_progress()
        dependencies: Shared-memory keys that must exist before perform_work()
        memory: Local cache of this worker's private memory
        tasks: Private task list
        artifacts: Artifacts created by this worker, keyed by id
    """

    agent_type: str = "base"
    DEPENDENCIES: Tuple[str, ...] = ()

    def __init__(
        self,
        agent_id: str,
        session_id: str,
        config: Optional[Dict[str, Any]],
        runtime: AgentRuntime,
    ):
        super().__init__()
        self.agent_id = agent_id
        self.session_id = session_id
        self.config: Dict[str, Any] = dict(config or {})
        self.runtime = runtime
        self.settings = runtime.settings

        self.state = AgentState.INITIALIZED
        self.progress = 0
        self.current_task: Optional[str] = None
        self.error: Optional[str] = None

        self.dependencies: List[str] = list(self.config.get("dependencies") or self.DEPENDENCIES)
        self.dependency_results: Dict[str, SharedMemoryEntry] = {}

        self.memory: Dict[str, Any] = {}
        self.tasks: Dict[str, AgentTask] = {}
        self.artifacts: Dict[str, Dict[str, Any]] = {}

        self.stop_requested = False
        self._initialized = False
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._saved_state: Optional[Dict[str, Any]] = None
        self._subscriptions: List[Tuple[MessageKey, MessageHandler]] = []

        # Timing
        self._start_time: Optional[float] = None
        self._end_time: Optional[float] = None

        self.logger.debug(f"[{self.agent_id}] Agent constructed for session {session_id}")

    # ========================================================================
    # DOMAIN WORK (must be implemented by subclasses)
    # ========================================================================

    @abstractmethod
    async def perform_work(self) -> None:
        """
        Domain logic for this worker type.

        Called by execute() after every declared dependency is present.
        Report progress with update_progress(), publish results with
        store_shared_memory() and create_artifact(). Raise to fail.
        """
        raise NotImplementedError

    # ========================================================================
    # HOOKS (optional overrides)
    # ========================================================================

    async def load_dependencies(self) -> None:
        """Acquire whatever domain resources the worker needs."""

    def validate_configuration(self) -> None:
        if not all(isinstance(key, str) and key for key in self.dependencies):
            raise ValueError(f"dependencies must be non-empty strings, got {self.dependencies!r}")
        if self._dependency_timeout() <= 0:
            raise ValueError("dependency_timeout_sec must be positive")

    async def save_state(self) -> Dict[str, Any]:
        return {
            "progress": self.progress,
            "current_task": self.current_task,
            "pending_tasks": [t.task_id for t in self.tasks.values() if t.status == "pending"],
        }

    async def restore_state(self, state: Dict[str, Any]) -> None:
        """Counterpart of save_state(); default keeps in-memory state as is."""

    async def cleanup_resources(self) -> None:
        """Release domain resources. Exceptions are logged by cleanup()."""

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def initialize(self) -> None:
        """Idempotent setup. Raises InitializationError on any failure."""
        if self._initialized:
            return

        self.state = AgentState.INITIALIZING
        try:
            await self.load_dependencies()
            self.validate_configuration()
        except Exception as e:
            self.state = AgentState.ERROR
            self.error = str(e)
            if isinstance(e, InitializationError):
                raise
            raise InitializationError(self.agent_id, str(e)) from e

        self.state = AgentState.INITIALIZED
        self._initialized = True
        await self.log("info", "Initialized", {"dependencies": self.dependencies})

    async def execute(self) -> None:
        """
        Run the worker to completion.

        Waits for declared dependencies, then calls perform_work(). On
        failure the state becomes ERROR, the message is recorded and the
        exception is re-raised for the scheduler.
        """
        async with LogContext(session_id=self.session_id, worker_id=self.agent_id):
            self.state = AgentState.RUNNING
            self._start_time = time.time()
            await self.log("info", "Starting execution", {"status": "running"})

            try:
                if self.dependencies:
                    await self.wait_for_dependencies(self.dependencies)
                if self.stop_requested:
                    await self.log("info", "Stopped before work started")
                    return
                await self.perform_work()
            except Exception as e:
                self.state = AgentState.ERROR
                self.error = str(e)
                self._end_time = time.time()
                await self.log(
                    "error",
                    f"Execution failed: {e}",
                    {"error_type": type(e).__name__, "duration_ms": self.get_duration_ms()},
                )
                raise

            self.state = AgentState.COMPLETED
            self._end_time = time.time()
            await self.update_progress(100, "Completed")
            await self.log("info", "Execution completed", {"duration_ms": self.get_duration_ms()})

    async def pause(self) -> None:
        self.state = AgentState.PAUSED
        self._resume_event.clear()
        self._saved_state = await self.save_state()
        await self.log("info", "Paused", {"progress": self.progress})

    async def resume(self) -> None:
        if self._saved_state is not None:
            await self.restore_state(self._saved_state)
            self._saved_state = None
        self.state = AgentState.RUNNING
        self._resume_event.set()
        await self.log("info", "Resumed", {"progress": self.progress})

    async def cleanup(self) -> None:
        """Stop the worker. Never raises."""
        self.state = AgentState.CLEANING_UP
        self.stop_requested = True
        self._resume_event.set()

        try:
            await self.cleanup_resources()
        except Exception as e:
            self.logger.warning(f"[{self.agent_id}] Cleanup failed: {e}")

        for key, handler in self._subscriptions:
            self.runtime.message_bus.unsubscribe(key, handler)
        self._subscriptions.clear()

        self.state = AgentState.STOPPED
        await self.log("info", "Stopped")

    async def checkpoint(self) -> bool:
        """
        Cooperative pause/stop point for long-running perform_work().

        Blocks while the worker is paused. Returns False once a stop was
        requested, in which case perform_work() should return early.
        """
        await self._resume_event.wait()
        return not self.stop_requested

    # ========================================================================
    # PROGRESS
    # ========================================================================

    async def update_progress(self, percent: float, label: Optional[str] = None) -> None:
        self.progress = max(0, min(100, int(percent)))
        if label:
            self.current_task = label
        await self.runtime.emitter.emit(
            event_agent_progress(self.agent_id, self.session_id, self.progress, label)
        )

    # ========================================================================
    # DEPENDENCY WAIT
    # ========================================================================

    def _dependency_timeout(self) -> float:
        return float(self.config.get("dependency_timeout_sec", self.settings.DEPENDENCY_TIMEOUT_SEC))

    def _dependency_poll_interval(self) -> float:
        return float(self.config.get("dependency_poll_interval_sec", self.settings.DEPENDENCY_POLL_INTERVAL_SEC))

    async def wait_for_dependencies(
        self,
        dependencies: Iterable[str],
        timeout_sec: Optional[float] = None,
        poll_interval_sec: Optional[float] = None,
    ) -> Dict[str, SharedMemoryEntry]:
        """
        Poll shared memory until every key in ``dependencies`` is present.

        Keys are checked off as they appear, in any order. Raises
        DependencyTimeoutError naming the keys still missing when the
        timeout elapses. Once a stop is requested it returns early with
        whatever has resolved so far.
        """
        timeout = float(timeout_sec) if timeout_sec is not None else self._dependency_timeout()
        interval = float(poll_interval_sec) if poll_interval_sec is not None else self._dependency_poll_interval()
        pending = list(dict.fromkeys(dependencies))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        self.current_task = "Waiting for dependencies"
        await self.log("info", f"Waiting for dependencies: {', '.join(pending)}", {"timeout_sec": timeout})

        while True:
            for key in list(pending):
                entry = await self.runtime.shared_state.read(self.session_id, key)
                if entry is not None:
                    self.dependency_results[key] = entry
                    pending.remove(key)
                    self.logger.info(f"[{self.agent_id}] Dependency '{key}' resolved by {entry.writer_worker_id}")

            if not pending:
                return dict(self.dependency_results)
            if self.stop_requested:
                self.logger.info(f"[{self.agent_id}] Stop requested during dependency wait; still missing: {pending}")
                return dict(self.dependency_results)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise DependencyTimeoutError(self.agent_id, pending, timeout)
            await asyncio.sleep(min(interval, remaining))

    # ========================================================================
    # MEMORY
    # ========================================================================

    async def store_memory(self, key: str, value: Any, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Private memory: local cache plus durable upsert under this worker's id."""
        self.memory[key] = value
        await self.runtime.memory.upsert(
            agent_id=self.agent_id,
            session_id=self.session_id,
            key=key,
            value=value,
            metadata=metadata,
            memory_type="private",
        )

    async def retrieve_memory(self, key: str, default: Any = None) -> Any:
        if key in self.memory:
            return self.memory[key]
        row = await self.runtime.memory.get(self.agent_id, key)
        if row is None:
            return default
        self.memory[key] = row["value"]
        return row["value"]

    async def search_memory(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        needle = query.lower()
        results: Dict[str, Dict[str, Any]] = {
            key: {"key": key, "value": value}
            for key, value in self.memory.items()
            if needle in f"{key} {value}".lower()
        }
        for row in await self.runtime.memory.search(self.agent_id, query, limit):
            results.setdefault(row["key"], {"key": row["key"], "value": row["value"]})
        return list(results.values())[:limit]

    async def store_shared_memory(
        self,
        key: str,
        value: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SharedMemoryEntry:
        """Session-wide memory, readable by every worker in the session."""
        return await self.runtime.shared_state.write(self.session_id, key, value, self.agent_id, metadata)

    async def get_shared_memory(self, key: str, default: Any = None) -> Any:
        entry = await self.runtime.shared_state.read(self.session_id, key)
        return entry.value if entry is not None else default

    # ========================================================================
    # TASKS
    # ========================================================================

    def add_task(self, description: str, payload: Optional[Dict[str, Any]] = None) -> str:
        task = AgentTask(description=description, payload=dict(payload or {}))
        self.tasks[task.task_id] = task
        return task.task_id

    def complete_task(self, task_id: str, result: Any = None) -> AgentTask:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        task.status = "completed"
        task.result = result
        task.completed_at = datetime.utcnow()
        return task

    def pending_tasks(self) -> List[AgentTask]:
        return [task for task in self.tasks.values() if task.status == "pending"]

    # ========================================================================
    # ARTIFACTS
    # ========================================================================

    async def create_artifact(
        self,
        artifact_type: str,
        content: Any,
        metadata: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
        status: ArtifactStatus = ArtifactStatus.DRAFT,
    ) -> Dict[str, Any]:
        artifact = await self.runtime.artifacts.create(
            session_id=self.session_id,
            agent_id=self.agent_id,
            artifact_type=artifact_type,
            content=content,
            metadata=metadata,
            artifact_name=name,
            status=ArtifactStatus(status).value,
        )
        self.artifacts[artifact["id"]] = artifact
        await self.runtime.emitter.emit(event_artifact(EventType.ARTIFACT_CREATED, artifact))
        return artifact

    async def update_artifact(
        self,
        artifact_id: str,
        content: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: Optional[ArtifactStatus] = None,
    ) -> Dict[str, Any]:
        """
        Update one of this worker's own artifacts.

        A final artifact never goes back to draft.
        """
        current = self.artifacts.get(artifact_id)
        if current is None:
            raise NotFoundError("Artifact", artifact_id)

        new_status = ArtifactStatus(status).value if status is not None else None
        if current["status"] == ArtifactStatus.FINAL.value and new_status == ArtifactStatus.DRAFT.value:
            raise InvalidStateError("Artifact", artifact_id, current["status"], "revert to draft")

        updated = await self.runtime.artifacts.update(artifact_id, content=content, metadata=metadata, status=new_status)
        if updated is None:
            raise NotFoundError("Artifact", artifact_id)

        self.artifacts[artifact_id] = updated
        await self.runtime.emitter.emit(event_artifact(EventType.ARTIFACT_UPDATED, updated))
        return updated

    async def finalize_artifact(self, artifact_id: str, content: Any = None) -> Dict[str, Any]:
        return await self.update_artifact(artifact_id, content=content, status=ArtifactStatus.FINAL)

    # ========================================================================
    # MESSAGING
    # ========================================================================

    async def send_message(self, to_worker: Optional[str], message_type: str, data: Any = None) -> Dict[str, Any]:
        return await self.runtime.message_bus.send_message(
            self.agent_id, to_worker, message_type, data, self.session_id
        )

    async def broadcast(self, message_type: str, data: Any = None) -> Dict[str, Any]:
        return await self.send_message(None, message_type, data)

    async def delegate_task(self, target_worker: str, task: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send_message(
            target_worker,
            "task_delegation",
            {"task": task, "from_agent": self.agent_id, "target_agent": target_worker},
        )

    def subscribe(self, message_type: str, handler: MessageHandler) -> MessageKey:
        key = self.runtime.message_bus.subscribe(self.agent_id, message_type, handler)
        self._subscriptions.append((key, handler))
        return key

    # ========================================================================
    # DOMAIN SERVICES
    # ========================================================================

    async def generate(self, prompt: str, **kwargs: Any) -> str:
        if self.runtime.text_generator is None:
            raise CollaboratorUnavailableError("text generation")
        return await self.runtime.text_generator.generate(prompt, **kwargs)

    async def search(self, collection_id: str, query: str, **kwargs: Any) -> List[Dict[str, Any]]:
        if self.runtime.search_client is None:
            raise CollaboratorUnavailableError("search")
        return await self.runtime.search_client.search(collection_id, query, **kwargs)

    # ========================================================================
    # LOGGING / STATUS
    # ========================================================================

    async def log(self, level: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Log locally and persist to agent_logs. Persisting never raises."""
        log_method = getattr(self.logger, level) if level in LOGGER_LEVELS else self.logger.info
        log_method(f"[{self.agent_id}] {message}")

        try:
            await self.runtime.logs.create(
                session_id=self.session_id,
                agent_id=self.agent_id,
                log_level=level,
                message=message,
                details=details,
            )
        except Exception as e:
            self.logger.warning(f"[{self.agent_id}] Failed to persist log: {e}")

    def get_duration_ms(self) -> int:
        if self._start_time is None:
            return 0
        end = self._end_time or time.time()
        return int((end - self._start_time) * 1000)

    def get_status(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_type": self.agent_type,
            "session_id": self.session_id,
            "state": self.state.value,
            "progress": self.progress,
            "current_task": self.current_task,
            "error": self.error,
            "dependencies": self.dependencies,
            "resolved_dependencies": sorted(self.dependency_results),
            "pending_tasks": len(self.pending_tasks()),
            "artifacts": len(self.artifacts),
            "duration_ms": self.get_duration_ms(),
        }
