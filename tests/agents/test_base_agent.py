"""
Unit tests for BaseAgent

The runtime is mocked so each test exercises the worker contract alone.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from research_orchestrator.agents.base_agent import BaseAgent
from research_orchestrator.agents.collaborators import AgentRuntime
from research_orchestrator.agents.models import AgentState, ArtifactStatus, SharedMemoryEntry
from research_orchestrator.core.events import EventType
from research_orchestrator.core.exceptions import (
    CollaboratorUnavailableError,
    DependencyTimeoutError,
    InitializationError,
    InvalidStateError,
    NotFoundError,
)


# ============================================================================
# TEST FIXTURES
# ============================================================================

class RecordingAgent(BaseAgent):
    agent_type = "recording"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.loads = 0
        self.worked = False
        self.fail_with = None

    async def load_dependencies(self):
        self.loads += 1

    async def perform_work(self):
        if self.fail_with:
            raise self.fail_with
        self.worked = True


@pytest.fixture
def runtime(settings):
    emitter = MagicMock()
    emitter.emit = AsyncMock()
    artifacts = AsyncMock()
    artifacts.create.side_effect = lambda **kw: {"id": "art-1", "version": 1, **kw}
    artifacts.update.side_effect = lambda artifact_id, **kw: {
        "id": artifact_id,
        "session_id": "s1",
        "agent_id": "w1",
        "artifact_type": "report",
        "status": kw.get("status") or "draft",
        "version": 2,
    }
    return AgentRuntime(
        settings=settings,
        emitter=emitter,
        message_bus=MagicMock(),
        shared_state=AsyncMock(),
        memory=AsyncMock(),
        artifacts=artifacts,
        logs=AsyncMock(),
    )


@pytest.fixture
def agent(runtime):
    return RecordingAgent("w1", "s1", {"query": "topic"}, runtime)


def entry(value, writer="other"):
    return SharedMemoryEntry(value=value, writer_worker_id=writer, session_id="s1")


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, agent):
        await agent.initialize()
        await agent.initialize()

        assert agent.loads == 1
        assert agent.state == AgentState.INITIALIZED

    @pytest.mark.asyncio
    async def test_initialize_wraps_failures(self, runtime):
        agent = RecordingAgent("w1", "s1", {"dependencies": [""]}, runtime)

        with pytest.raises(InitializationError):
            await agent.initialize()

        assert agent.state == AgentState.ERROR

    @pytest.mark.asyncio
    async def test_execute_success(self, agent, runtime):
        await agent.initialize()
        await agent.execute()

        assert agent.worked
        assert agent.state == AgentState.COMPLETED
        assert agent.progress == 100
        last_event = runtime.emitter.emit.await_args.args[0]
        assert last_event.event == EventType.AGENT_PROGRESS
        assert last_event.data["progress"] == 100

    @pytest.mark.asyncio
    async def test_execute_failure_reraises(self, agent):
        agent.fail_with = ValueError("bad data")

        with pytest.raises(ValueError):
            await agent.execute()

        assert agent.state == AgentState.ERROR
        assert agent.error == "bad data"

    @pytest.mark.asyncio
    async def test_pause_blocks_checkpoint_until_resume(self, agent):
        await agent.pause()
        waiter = asyncio.create_task(agent.checkpoint())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        await agent.resume()

        assert await asyncio.wait_for(waiter, timeout=1) is True
        assert agent.state == AgentState.RUNNING

    @pytest.mark.asyncio
    async def test_cleanup_never_raises(self, agent, runtime):
        agent.cleanup_resources = AsyncMock(side_effect=RuntimeError("socket already closed"))
        handler = MagicMock()
        agent.subscribe("task", handler)

        await agent.cleanup()

        assert agent.state == AgentState.STOPPED
        assert await agent.checkpoint() is False
        runtime.message_bus.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_persistence_failure_is_swallowed(self, agent, runtime):
        runtime.logs.create.side_effect = RuntimeError("db down")

        await agent.log("info", "still fine")


# ============================================================================
# PROGRESS / DEPENDENCIES
# ============================================================================

class TestProgressAndDependencies:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value,expected", [(150, 100), (-5, 0), (42.7, 42)])
    async def test_progress_is_clamped(self, agent, value, expected):
        await agent.update_progress(value, "step")

        assert agent.progress == expected
        assert agent.current_task == "step"

    @pytest.mark.asyncio
    async def test_dependencies_resolve_in_any_order(self, agent, runtime):
        arrivals = {"a": [None, entry(1)], "b": [entry(2)]}

        async def read(session_id, key):
            queue = arrivals[key]
            return queue.pop(0) if len(queue) > 1 else queue[0]

        runtime.shared_state.read.side_effect = read

        results = await agent.wait_for_dependencies(["a", "b"], timeout_sec=1, poll_interval_sec=0.01)

        assert {k: v.value for k, v in results.items()} == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_dependency_timeout_names_missing_keys(self, agent, runtime):
        runtime.shared_state.read.side_effect = lambda session_id, key: entry(1) if key == "a" else None

        with pytest.raises(DependencyTimeoutError) as exc_info:
            await agent.wait_for_dependencies(["a", "b"], timeout_sec=0.05, poll_interval_sec=0.01)

        assert exc_info.value.missing_keys == ["b"]
        assert "b" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_execute_waits_for_configured_dependencies(self, runtime):
        agent = RecordingAgent("w1", "s1", {"dependencies": ["a"], "dependency_timeout_sec": 0.05}, runtime)
        runtime.shared_state.read.return_value = None

        with pytest.raises(DependencyTimeoutError):
            await agent.execute()

        assert not agent.worked

    @pytest.mark.asyncio
    async def test_stop_ends_dependency_wait(self, agent, runtime):
        """A stopped worker stops polling long before the timeout"""
        runtime.shared_state.read.return_value = None

        waiting = asyncio.create_task(
            agent.wait_for_dependencies(["a"], timeout_sec=30, poll_interval_sec=0.01)
        )
        await asyncio.sleep(0.03)
        await agent.cleanup()

        results = await asyncio.wait_for(waiting, timeout=1)

        assert results == {}

    @pytest.mark.asyncio
    async def test_execute_skips_work_when_stopped_during_wait(self, runtime):
        agent = RecordingAgent(
            "w1", "s1", {"dependencies": ["a"], "dependency_timeout_sec": 30, "dependency_poll_interval_sec": 0.01}, runtime
        )
        runtime.shared_state.read.return_value = None

        running = asyncio.create_task(agent.execute())
        await asyncio.sleep(0.03)
        await agent.cleanup()
        await asyncio.wait_for(running, timeout=1)

        assert not agent.worked
        assert agent.state == AgentState.STOPPED


# ============================================================================
# ARTIFACTS / TASKS / SERVICES
# ============================================================================

class TestHelpers:

    @pytest.mark.asyncio
    async def test_final_artifact_cannot_revert(self, agent):
        artifact = await agent.create_artifact("report", {"text": "draft"})
        await agent.finalize_artifact(artifact["id"])

        with pytest.raises(InvalidStateError):
            await agent.update_artifact(artifact["id"], status=ArtifactStatus.DRAFT)

    @pytest.mark.asyncio
    async def test_update_foreign_artifact(self, agent):
        with pytest.raises(NotFoundError):
            await agent.update_artifact("someone-elses")

    def test_tasks(self, agent):
        task_id = agent.add_task("collect sources")
        assert [t.task_id for t in agent.pending_tasks()] == [task_id]

        agent.complete_task(task_id, result=3)
        assert agent.pending_tasks() == []

        with pytest.raises(NotFoundError):
            agent.complete_task("task_unknown")

    @pytest.mark.asyncio
    async def test_memory_cache(self, agent, runtime):
        await agent.store_memory("notes", "abc")

        assert await agent.retrieve_memory("notes") == "abc"
        runtime.memory.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_services_require_collaborators(self, agent, runtime):
        with pytest.raises(CollaboratorUnavailableError):
            await agent.generate("summarize")
        with pytest.raises(CollaboratorUnavailableError):
            await agent.search("col-1", "query")

        runtime.text_generator = AsyncMock()
        runtime.text_generator.generate.return_value = "summary"
        assert await agent.generate("summarize") == "summary"

    @pytest.mark.asyncio
    async def test_delegate_task(self, agent, runtime):
        runtime.message_bus.send_message = AsyncMock(return_value={"id": "m1"})

        await agent.delegate_task("w2", {"action": "verify"})

        args = runtime.message_bus.send_message.await_args.args
        assert args[:3] == ("w1", "w2", "task_delegation")
        assert args[3]["task"] == {"action": "verify"}
