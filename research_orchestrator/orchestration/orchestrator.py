"""
Session Orchestrator - registry and scheduler for multi-agent research sessions

Owns two keyed collections:
- worker registrations (worker id -> WorkerRegistration)
- session tracking records (session id -> SessionTrackingRecord, via SharedSessionState)

Flow:
    create_session -> start_workers (register + start per type)
    each worker: initialize -> [dependency wait] -> perform_work -> completed | error
    on every worker_completed / worker_error: completion aggregation

Completion aggregation is a count barrier with error dominance: once every
worker started under a session is completed or error, the session becomes
``error`` if any worker failed, else ``completed``. Registered workers that
were never started do not count.
"""

import asyncio
import json
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from research_orchestrator.agents.collaborators import AgentRuntime, SearchClient, TextGenerator
from research_orchestrator.agents.models import (
    ACTIVE_WORKER_STATUSES,
    RestartOptions,
    SessionStatus,
    WorkerRegistration,
    WorkerStatus,
    can_restart_session,
)
from research_orchestrator.agents.registry import AgentTypeRegistry, check_worker_contract, create_default_registry
from research_orchestrator.core.events import (
    EventType,
    OrchestratorEvent,
    event_feedback_received,
    event_session_created,
    event_session_deleted,
    event_session_status_updated,
    event_session_updated,
    event_worker_completed,
    event_worker_error,
    event_worker_registered,
    event_worker_started,
    event_worker_state,
)
from research_orchestrator.core.exceptions import (
    InitializationError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    NotRunningError,
)
from research_orchestrator.database.repository import (
    ArtifactRepository,
    FeedbackRepository,
    LogRepository,
    MemoryRepository,
    MessageRepository,
    SessionRepository,
    WorkerRepository,
)
from research_orchestrator.database.session_manager import SessionManager
from research_orchestrator.orchestration.event_emitter import EventEmitter
from research_orchestrator.orchestration.message_bus import MessageBus
from research_orchestrator.orchestration.shared_state import SharedSessionState
from research_orchestrator.utils.config import Settings, get_settings
from research_orchestrator.utils.logger.custom_logging import LoggerMixin, get_logger


logger = get_logger(__name__)


def parse_preferences(preferences: Union[None, str, Dict[str, Any]]) -> Dict[str, Any]:
    """Accept a dict, a JSON string or None; anything unparseable becomes {}"""
    if not preferences:
        return {}
    if isinstance(preferences, dict):
        return dict(preferences)
    if isinstance(preferences, str):
        try:
            parsed = json.loads(preferences)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse preferences JSON: {e}")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SessionOrchestrator(LoggerMixin):
    """
    Runs research sessions to completion.

    One instance per process. Call ``start()`` before use and
    ``shutdown()`` on exit.
    """

    def __init__(
        self,
        session_manager: Optional[SessionManager] = None,
        registry: Optional[AgentTypeRegistry] = None,
        emitter: Optional[EventEmitter] = None,
        settings: Optional[Settings] = None,
        text_generator: Optional[TextGenerator] = None,
        search_client: Optional[SearchClient] = None,
    ):
        super().__init__()
        self.settings = settings or get_settings()
        self.session_manager = session_manager or SessionManager(settings=self.settings)
        self.registry = registry or create_default_registry(self.settings)
        self.emitter = emitter or EventEmitter(self.settings.HEARTBEAT_INTERVAL_SEC)

        # Every fallback worker type must be registered
        for worker_type in self.settings.DEFAULT_WORKER_TYPES:
            self.registry.get(worker_type)

        # Repositories
        self.sessions = SessionRepository(self.session_manager)
        self.worker_records = WorkerRepository(self.session_manager)
        self.artifacts = ArtifactRepository(self.session_manager)
        self.memory = MemoryRepository(self.session_manager)
        self.messages = MessageRepository(self.session_manager)
        self.logs = LogRepository(self.session_manager)
        self.feedback = FeedbackRepository(self.session_manager)

        self.shared_state = SharedSessionState(self.sessions, self.memory)
        self.message_bus = MessageBus(
            self.messages,
            self.emitter,
            self.shared_state,
            drain_interval_sec=self.settings.MESSAGE_DRAIN_INTERVAL_SEC,
        )
        self.runtime = AgentRuntime(
            settings=self.settings,
            emitter=self.emitter,
            message_bus=self.message_bus,
            shared_state=self.shared_state,
            memory=self.memory,
            artifacts=self.artifacts,
            logs=self.logs,
            text_generator=text_generator,
            search_client=search_client,
        )

        self._workers: Dict[str, WorkerRegistration] = {}

        self.emitter.on(EventType.WORKER_COMPLETED, self._on_worker_finished)
        self.emitter.on(EventType.WORKER_ERROR, self._on_worker_finished)

    # ========================================================================
    # PROCESS LIFECYCLE
    # ========================================================================

    async def start(self) -> None:
        self.session_manager.init_schema()
        self.message_bus.start()
        self.logger.info("[ORCHESTRATOR] Started")

    async def shutdown(self) -> None:
        """Cancel outstanding worker tasks and stop the message bus"""
        pending = [r.task for r in self._workers.values() if r.task is not None and not r.task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.message_bus.stop()
        self.logger.info(f"[ORCHESTRATOR] Shut down ({len(pending)} worker tasks cancelled)")

    # ========================================================================
    # SESSIONS
    # ========================================================================

    async def create_session(
        self,
        user_id: str,
        research_topic: str,
        preferences: Union[None, str, Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        session = await self.sessions.create(user_id, research_topic, parse_preferences(preferences))
        self.shared_state.open(session)
        await self.emitter.emit(event_session_created(session))
        self.logger.info(f"[ORCHESTRATOR] Session {session['id']} created: {research_topic!r}")
        return session

    async def get_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a session, checking ownership when ``user_id`` is given.

        Rehydrates the in-memory tracking record if this process has not
        seen the session yet.
        """
        session = await self.sessions.get(session_id)
        if session is None or (user_id is not None and session["user_id"] != user_id):
            raise NotFoundError("Session", session_id)
        await self.shared_state.ensure(session_id)
        return session

    async def list_user_sessions(self, user_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return await self.sessions.list_for_user(user_id, limit=limit, offset=offset)

    async def update_session(
        self,
        session_id: str,
        updates: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        await self.get_session(session_id, user_id)

        updates = dict(updates)
        if "preferences" in updates:
            updates["preferences"] = parse_preferences(updates["preferences"])
        if "status" in updates:
            try:
                updates["status"] = SessionStatus(updates["status"]).value
            except ValueError:
                raise InvalidRequestError(f"Unknown session status: {updates['status']}")

        session = await self.sessions.update(session_id, updates)
        if session is None:
            raise NotFoundError("Session", session_id)

        record = self.shared_state.get(session_id)
        if record is not None:
            record.research_topic = session["research_topic"]
            record.preferences = dict(session["preferences"])

        await self.emitter.emit(event_session_updated(session))
        return session

    async def delete_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Force-stop every worker, then remove the session and all its rows"""
        await self.get_session(session_id, user_id)

        stopped = await self._force_stop_workers(session_id)
        for worker_id in [w for w, r in self._workers.items() if r.session_id == session_id]:
            del self._workers[worker_id]

        await self.sessions.delete(session_id)
        self.shared_state.remove(session_id)
        await self.emitter.emit(event_session_deleted(session_id))

        self.logger.info(f"[ORCHESTRATOR] Session {session_id} deleted ({len(stopped)} workers stopped)")
        return {"success": True, "session_id": session_id, "stopped_workers": stopped}

    # ========================================================================
    # WORKERS
    # ========================================================================

    def get_worker(self, worker_id: str) -> WorkerRegistration:
        registration = self._workers.get(worker_id)
        if registration is None:
            raise NotFoundError("Worker", worker_id)
        return registration

    def list_session_workers(self, session_id: str) -> List[WorkerRegistration]:
        return [
            self._workers[worker_id]
            for worker_id in self.shared_state.tracked_worker_ids(session_id)
            if worker_id in self._workers
        ]

    async def register_worker(
        self,
        worker_id: str,
        worker_type: Union[str, Type[Any]],
        config: Optional[Dict[str, Any]] = None,
    ) -> WorkerRegistration:
        """
        Record a worker in ``registered`` status. No side effects on the
        worker itself.

        ``worker_type`` is a registry name or an implementation class.
        """
        if isinstance(worker_type, str):
            type_name = worker_type
            worker_class = self.registry.get(worker_type)
        else:
            worker_class = worker_type
            type_name = getattr(worker_class, "agent_type", None) or getattr(worker_class, "__name__", str(worker_class))
        check_worker_contract(worker_class, type_name)

        existing = self._workers.get(worker_id)
        if existing is not None and existing.instance is not None:
            raise InvalidStateError("Worker", worker_id, existing.status.value, "re-register")

        registration = WorkerRegistration(
            worker_id=worker_id,
            worker_type=type_name,
            worker_class=worker_class,
            config=dict(config or {}),
        )
        self._workers[worker_id] = registration

        self.logger.info(f"[ORCHESTRATOR] Registered worker {worker_id} ({type_name})")
        await self.emitter.emit(event_worker_registered(worker_id, type_name))
        return registration

    async def start_worker(
        self,
        worker_id: str,
        session_id: str,
        auth_context: Optional[Dict[str, Any]] = None,
        release: Optional[asyncio.Event] = None,
    ) -> Dict[str, Any]:
        """
        Instantiate and initialize a registered worker, then schedule
        ``execute()`` as a task and return without waiting for it.

        Initialization failures mark the registration ``error`` and are
        raised to the caller as InitializationError. When ``release`` is
        given, execution waits until that event is set.
        """
        registration = self.get_worker(worker_id)
        if registration.instance is not None or registration.status != WorkerStatus.REGISTERED:
            raise InvalidStateError("Worker", worker_id, registration.status.value, "start")
        await self.shared_state.ensure(session_id)

        registration.session_id = session_id
        registration.status = WorkerStatus.STARTING
        registration.started_at = datetime.utcnow()

        try:
            runtime = replace(self.runtime, auth_context=auth_context) if auth_context else self.runtime
            registration.instance = registration.worker_class(worker_id, session_id, registration.config, runtime)
            await registration.instance.initialize()
        except Exception as e:
            registration.status = WorkerStatus.ERROR
            registration.error = str(e)
            registration.completed_at = datetime.utcnow()
            await self._mirror(registration)
            self.logger.error(f"[ORCHESTRATOR] Worker {worker_id} failed to start: {e}")
            if isinstance(e, InitializationError):
                raise
            raise InitializationError(worker_id, str(e)) from e

        registration.status = WorkerStatus.RUNNING
        self.shared_state.track_worker(session_id, worker_id, registration.worker_type)
        await self._mirror(registration)

        registration.task = asyncio.create_task(self._run_worker(registration, release), name=f"worker-{worker_id}")

        self.logger.info(f"[ORCHESTRATOR] Worker {worker_id} running in session {session_id}")
        await self.emitter.emit(event_worker_started(worker_id, session_id, registration.worker_type))
        return {"success": True, "worker_id": worker_id, "status": registration.status.value}

    async def stop_worker(self, worker_id: str) -> Dict[str, Any]:
        """Run the worker's cleanup(); does not interrupt perform_work()"""
        registration = self.get_worker(worker_id)
        if registration.instance is None or registration.status not in ACTIVE_WORKER_STATUSES:
            raise NotRunningError(worker_id, registration.status.value)

        registration.status = WorkerStatus.STOPPING
        await registration.instance.cleanup()
        registration.status = WorkerStatus.STOPPED
        registration.stopped_at = datetime.utcnow()
        await self._mirror(registration)

        self.logger.info(f"[ORCHESTRATOR] Worker {worker_id} stopped")
        await self.emitter.emit(event_worker_state(EventType.WORKER_STOPPED, worker_id, registration.session_id))
        return {"success": True, "worker_id": worker_id, "status": registration.status.value}

    async def pause_worker(self, worker_id: str) -> Dict[str, Any]:
        registration = self.get_worker(worker_id)
        if registration.instance is None or registration.status != WorkerStatus.RUNNING:
            raise NotRunningError(worker_id, registration.status.value)

        await registration.instance.pause()
        registration.status = WorkerStatus.PAUSED
        await self._mirror(registration)

        await self.emitter.emit(event_worker_state(EventType.WORKER_PAUSED, worker_id, registration.session_id))
        return {"success": True, "worker_id": worker_id, "status": registration.status.value}

    async def resume_worker(self, worker_id: str) -> Dict[str, Any]:
        registration = self.get_worker(worker_id)
        if registration.instance is None or registration.status != WorkerStatus.PAUSED:
            raise InvalidStateError("Worker", worker_id, registration.status.value, "resume")

        await registration.instance.resume()
        registration.status = WorkerStatus.RUNNING
        await self._mirror(registration)

        await self.emitter.emit(event_worker_state(EventType.WORKER_RESUMED, worker_id, registration.session_id))
        return {"success": True, "worker_id": worker_id, "status": registration.status.value}

    async def _run_worker(self, registration: WorkerRegistration, release: Optional[asyncio.Event]) -> None:
        try:
            if release is not None:
                await release.wait()
            await registration.instance.execute()
        except asyncio.CancelledError:
            if registration.status not in (WorkerStatus.STOPPED, WorkerStatus.COMPLETED, WorkerStatus.ERROR):
                registration.status = WorkerStatus.STOPPED
                registration.stopped_at = datetime.utcnow()
            raise
        except Exception as e:
            await self._finish_worker(registration, WorkerStatus.ERROR, str(e))
            return
        await self._finish_worker(registration, WorkerStatus.COMPLETED)

    async def _finish_worker(
        self,
        registration: WorkerRegistration,
        status: WorkerStatus,
        error: Optional[str] = None,
    ) -> None:
        if registration.status in (WorkerStatus.STOPPING, WorkerStatus.STOPPED):
            self.logger.info(
                f"[ORCHESTRATOR] Worker {registration.worker_id} finished ({status.value}) after stop; "
                f"keeping status {registration.status.value}"
            )
            return

        registration.status = status
        registration.error = error
        registration.completed_at = datetime.utcnow()
        try:
            await self._mirror(registration)
        except Exception as e:
            self.logger.error(f"[ORCHESTRATOR] Failed to persist final status of {registration.worker_id}: {e}", exc_info=True)

        if status == WorkerStatus.COMPLETED:
            self.logger.info(f"[ORCHESTRATOR] Worker {registration.worker_id} completed")
            await self.emitter.emit(event_worker_completed(registration.worker_id, registration.session_id))
        else:
            self.logger.error(f"[ORCHESTRATOR] Worker {registration.worker_id} failed: {error}")
            await self.emitter.emit(event_worker_error(registration.worker_id, registration.session_id, error or ""))

    async def _mirror(self, registration: WorkerRegistration) -> None:
        """Write the registration to the durable agents table"""
        if registration.session_id is None:
            return
        await self.worker_records.upsert(
            worker_id=registration.worker_id,
            session_id=registration.session_id,
            agent_type=registration.worker_type,
            status=registration.status.value,
            config=registration.config,
            progress=registration.progress,
            error_message=registration.error,
            started_at=registration.started_at,
            completed_at=registration.completed_at,
        )

    # ========================================================================
    # COMPLETION AGGREGATION
    # ========================================================================

    async def _on_worker_finished(self, event: OrchestratorEvent) -> None:
        if event.session_id:
            await self.aggregate_session_status(event.session_id)

    async def aggregate_session_status(self, session_id: str) -> Optional[SessionStatus]:
        """
        Close the session once every started worker is completed or error.

        Returns:
            The new session status, or None while workers are still active
        """
        registrations = self.list_session_workers(session_id)
        if not registrations:
            return None

        finished = [r for r in registrations if r.is_finished]
        if len(finished) < len(registrations):
            self.logger.debug(
                f"[ORCHESTRATOR] Session {session_id}: {len(finished)}/{len(registrations)} workers finished"
            )
            return None

        failed = [r for r in registrations if r.status == WorkerStatus.ERROR]
        status = SessionStatus.ERROR if failed else SessionStatus.COMPLETED
        error_message = "; ".join(f"{r.worker_id}: {r.error}" for r in failed) or None

        await self._set_status(
            session_id,
            status,
            completed_at=datetime.utcnow(),
            error_message=error_message,
        )
        self.logger.info(
            f"[ORCHESTRATOR] Session {session_id} {status.value}: "
            f"{len(registrations) - len(failed)}/{len(registrations)} workers succeeded"
        )
        return status

    async def _set_status(self, session_id: str, status: SessionStatus, **fields: Any) -> Dict[str, Any]:
        session = await self.sessions.update(session_id, {"status": status.value, **fields})
        if session is None:
            raise NotFoundError("Session", session_id)

        registrations = self.list_session_workers(session_id)
        failed = sum(1 for r in registrations if r.status == WorkerStatus.ERROR)
        succeeded = sum(1 for r in registrations if r.status == WorkerStatus.COMPLETED)
        await self.emitter.emit(
            event_session_status_updated(session_id, status.value, succeeded, len(registrations), failed)
        )
        return session

    # ========================================================================
    # SESSION CONTROL
    # ========================================================================

    def _new_worker_id(self, session_id: str, worker_type: str) -> str:
        return f"{session_id}-{worker_type}-{uuid.uuid4().hex[:8]}"

    async def start_workers(
        self,
        session_id: str,
        user_id: Optional[str],
        worker_types: Sequence[str],
        auth_context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Register and start one worker per requested type.

        Unknown types are rejected before the session status changes.
        Aborts on the first failure; workers already started keep running.
        If no worker of the session is left active after a failure, the
        session is set to ``error`` so it can be restarted.
        None of the batch executes before every worker in it is tracked.
        """
        session = await self.get_session(session_id, user_id)
        if not worker_types:
            raise InvalidRequestError("At least one worker type is required")
        for worker_type in worker_types:
            self.registry.get(worker_type)

        await self._set_status(session_id, SessionStatus.RUNNING)

        release = asyncio.Event()
        started = []
        try:
            for worker_type in worker_types:
                worker_id = self._new_worker_id(session_id, worker_type)
                config = self.registry.build_config(worker_type, session["preferences"], session["research_topic"])
                await self.register_worker(worker_id, worker_type, config)
                result = await self.start_worker(worker_id, session_id, auth_context, release=release)
                started.append({"worker_id": worker_id, "worker_type": worker_type, **result})
        except Exception as e:
            if all(r.is_finished for r in self.list_session_workers(session_id)):
                self.logger.error(f"[ORCHESTRATOR] Session {session_id}: start failed with no active workers: {e}")
                await self._set_status(
                    session_id,
                    SessionStatus.ERROR,
                    error_message=f"Start failed: {e}",
                    completed_at=datetime.utcnow(),
                )
            raise
        finally:
            release.set()

        return {"success": True, "session_id": session_id, "workers": started}

    async def pause_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        await self.get_session(session_id, user_id)

        paused = []
        for registration in self.list_session_workers(session_id):
            if registration.status == WorkerStatus.RUNNING:
                await self.pause_worker(registration.worker_id)
                paused.append(registration.worker_id)

        await self._set_status(session_id, SessionStatus.PAUSED)
        return {"success": True, "session_id": session_id, "paused_workers": paused}

    async def resume_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        session = await self.get_session(session_id, user_id)
        if session["status"] != SessionStatus.PAUSED.value:
            raise InvalidStateError("Session", session_id, session["status"], "resume")

        resumed = []
        for registration in self.list_session_workers(session_id):
            if registration.status == WorkerStatus.PAUSED:
                await self.resume_worker(registration.worker_id)
                resumed.append(registration.worker_id)

        await self._set_status(session_id, SessionStatus.RUNNING)
        return {"success": True, "session_id": session_id, "resumed_workers": resumed}

    async def stop_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        await self.get_session(session_id, user_id)
        stopped = await self._force_stop_workers(session_id)
        await self._set_status(session_id, SessionStatus.STOPPED)
        return {"success": True, "session_id": session_id, "stopped_workers": stopped}

    async def _force_stop_workers(self, session_id: str) -> List[str]:
        stopped = []
        for registration in self.list_session_workers(session_id):
            if registration.status not in ACTIVE_WORKER_STATUSES:
                continue
            try:
                await self.stop_worker(registration.worker_id)
            except NotRunningError as e:
                self.logger.warning(f"[ORCHESTRATOR] {e.message}")
                continue
            stopped.append(registration.worker_id)
        return stopped

    async def restart_session(
        self,
        session_id: str,
        user_id: Optional[str],
        options: Optional[RestartOptions] = None,
        auth_context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Start a finished session again from a clean slate.

        Only allowed from completed, failed, error or stopped. Any failure
        after that check leaves the session in ``error`` with a message.
        """
        options = options or RestartOptions()
        session = await self.get_session(session_id, user_id)
        if not can_restart_session(session["status"]):
            raise InvalidStateError("Session", session_id, session["status"], "restart")

        self.logger.info(f"[ORCHESTRATOR] Restarting session {session_id} from {session['status']}")
        try:
            await self._force_stop_workers(session_id)
            previous_workers = self.shared_state.untrack_workers(session_id)
            phase = options.preserve_prior_phase

            if options.clear_artifacts:
                keep_ids: List[str] = []
                if phase:
                    keep_ids = [
                        a["id"] for a in await self.artifacts.list(session_id)
                        if self._belongs_to_phase(a["agent_id"], a["artifact_type"], phase)
                    ]
                await self.artifacts.delete_for_session(session_id, exclude_ids=keep_ids)

            if options.clear_memory:
                keep = None
                if phase:
                    keep = lambda key, entry: self._belongs_to_phase(entry.writer_worker_id, key, phase)
                await self.shared_state.clear(session_id, keep=keep)
                await self.memory.delete_for_session(session_id, memory_type="private")

            await self.sessions.update(
                session_id,
                {"status": SessionStatus.CREATED.value, "error_message": None, "completed_at": None},
            )

            worker_types = (
                options.worker_types
                or session["preferences"].get("agent_types")
                or self.settings.DEFAULT_WORKER_TYPES
            )
            result = await self.start_workers(session_id, user_id, list(worker_types), auth_context)
        except Exception as e:
            message = f"Restart failed: {e}"
            self.logger.error(f"[ORCHESTRATOR] Session {session_id}: {message}", exc_info=True)
            try:
                await self.sessions.update(
                    session_id,
                    {"status": SessionStatus.ERROR.value, "error_message": message, "completed_at": datetime.utcnow()},
                )
            except Exception as update_error:
                self.logger.error(f"[ORCHESTRATOR] Could not mark session {session_id} as error: {update_error}")
            raise

        return {**result, "restarted": True, "previous_workers": previous_workers}

    def _belongs_to_phase(self, worker_id: Optional[str], tag: Optional[str], phase: str) -> bool:
        """True when an output came from a worker of type ``phase`` or is tagged with it"""
        registration = self._workers.get(worker_id or "")
        if registration is not None and registration.worker_type == phase:
            return True
        return f"-{phase}-" in (worker_id or "") or (tag or "").startswith(phase)

    # ========================================================================
    # AWAITING
    # ========================================================================

    async def wait_for_worker(self, worker_id: str, timeout: Optional[float] = None) -> WorkerStatus:
        registration = self.get_worker(worker_id)
        if registration.task is not None:
            await asyncio.wait_for(asyncio.shield(registration.task), timeout)
        return registration.status

    async def wait_for_session(self, session_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Wait for every started worker's task, then return the stored session"""
        tasks = [r.task for r in self.list_session_workers(session_id) if r.task is not None]
        if tasks:
            await asyncio.wait_for(
                asyncio.gather(*(asyncio.shield(t) for t in tasks), return_exceptions=True),
                timeout,
            )
        return await self.get_session(session_id)

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def get_session_progress(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        session = await self.get_session(session_id, user_id)
        record = await self.shared_state.ensure(session_id)
        workers = [r.to_dict() for r in self.list_session_workers(session_id)]

        if workers:
            overall = round(sum(w["progress"] for w in workers) / len(workers))
        else:
            overall = 100 if session["status"] == SessionStatus.COMPLETED.value else 0

        return {
            "session_id": session_id,
            "status": session["status"],
            "overall_progress": overall,
            "completed_workers": sum(1 for w in workers if w["status"] == WorkerStatus.COMPLETED.value),
            "total_workers": len(workers),
            "workers": workers,
            "shared_memory_keys": sorted(record.shared_memory),
        }

    async def list_artifacts(
        self,
        session_id: str,
        user_id: Optional[str] = None,
        artifact_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        await self.get_session(session_id, user_id)
        return await self.artifacts.list(session_id, artifact_type=artifact_type, status=status, limit=limit, offset=offset)

    async def get_artifact(self, session_id: str, artifact_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        await self.get_session(session_id, user_id)
        artifact = await self.artifacts.get(artifact_id, session_id=session_id)
        if artifact is None:
            raise NotFoundError("Artifact", artifact_id)
        return artifact

    async def list_logs(
        self,
        session_id: str,
        user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
        level: Optional[str] = None,
        worker_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        await self.get_session(session_id, user_id)
        return await self.logs.list(session_id, limit=limit, offset=offset, log_level=level, agent_id=worker_id)

    async def provide_feedback(
        self,
        session_id: str,
        user_id: str,
        feedback: str,
        worker_id: Optional[str] = None,
        artifact_id: Optional[str] = None,
        feedback_type: str = "general",
        priority: str = "medium",
    ) -> Dict[str, Any]:
        """
        Store user feedback and announce it.

        Feedback addressed to a worker tracked under the session is also
        delivered to that worker as a ``feedback`` bus message.
        """
        if not feedback or not feedback.strip():
            raise InvalidRequestError("Feedback content is required")

        await self.get_session(session_id, user_id)
        if artifact_id and await self.artifacts.get(artifact_id, session_id=session_id) is None:
            raise NotFoundError("Artifact", artifact_id)

        row = await self.feedback.create(
            session_id=session_id,
            user_id=user_id,
            feedback=feedback,
            agent_id=worker_id,
            artifact_id=artifact_id,
            feedback_type=feedback_type,
            priority=priority,
        )
        await self.emitter.emit(event_feedback_received(row))

        if worker_id and worker_id in self.shared_state.tracked_worker_ids(session_id):
            await self.message_bus.send_message(f"user:{user_id}", worker_id, "feedback", row, session_id)
        return row

    async def get_session_stats(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        session = await self.get_session(session_id, user_id)
        artifacts = await self.artifacts.list(session_id)
        workers = await self.worker_records.list_for_session(session_id)

        created_at = _parse_iso(session["created_at"])
        ended_at = _parse_iso(session["completed_at"]) or datetime.utcnow()
        duration_ms = int((ended_at - created_at).total_seconds() * 1000) if created_at else 0

        by_type: Dict[str, int] = {}
        by_status: Dict[str, int] = {}
        for artifact in artifacts:
            by_type[artifact["artifact_type"]] = by_type.get(artifact["artifact_type"], 0) + 1
            by_status[artifact["status"]] = by_status.get(artifact["status"], 0) + 1

        worker_status: Dict[str, int] = {}
        for worker in workers:
            worker_status[worker["status"]] = worker_status.get(worker["status"], 0) + 1

        return {
            "session": {
                "id": session_id,
                "status": session["status"],
                "duration_ms": duration_ms,
                "created_at": session["created_at"],
                "completed_at": session["completed_at"],
            },
            "artifacts": {"total": len(artifacts), "by_type": by_type, "by_status": by_status},
            "workers": {"total": len(workers), "by_status": worker_status},
            "preferences": parse_preferences(session["preferences"]),
        }
