"""
Unit tests for EventEmitter and EventStream
"""

import asyncio
import json

import pytest

from research_orchestrator.core.events import (
    EventType,
    MessageKey,
    event_session_deleted,
    event_worker_completed,
    event_worker_started,
)
from research_orchestrator.orchestration import EventEmitter


class TestHandlers:
    """Registration, dispatch order and failure isolation"""

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        emitter = EventEmitter()
        calls = []

        async def async_handler(event):
            calls.append(("async", event.data["worker_id"]))

        emitter.on(EventType.WORKER_COMPLETED, lambda e: calls.append(("sync", e.data["worker_id"])))
        emitter.on(EventType.WORKER_COMPLETED, async_handler)

        count = await emitter.emit(event_worker_completed("w1", "s1"))

        assert count == 2
        assert calls == [("sync", "w1"), ("async", "w1")]

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self):
        emitter = EventEmitter()
        calls = []

        def broken(event):
            raise RuntimeError("bad handler")

        emitter.on(EventType.WORKER_COMPLETED, broken)
        emitter.on(EventType.WORKER_COMPLETED, calls.append)

        assert await emitter.emit(event_worker_completed("w1", "s1")) == 1
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_callable(self):
        emitter = EventEmitter()
        calls = []
        unsubscribe = emitter.on(EventType.WORKER_COMPLETED, calls.append)

        assert emitter.listener_count(EventType.WORKER_COMPLETED) == 1
        assert unsubscribe() is True
        assert unsubscribe() is False
        assert emitter.listener_count(EventType.WORKER_COMPLETED) == 0

        await emitter.emit(event_worker_completed("w1", "s1"))
        assert calls == []

    @pytest.mark.asyncio
    async def test_keys_do_not_collide(self):
        """Lifecycle events and bus messages live under distinct key types"""
        emitter = EventEmitter()
        lifecycle, messages = [], []
        emitter.on(EventType.WORKER_ERROR, lifecycle.append)
        emitter.on(MessageKey("worker_error", "w1"), messages.append)

        await emitter.dispatch(MessageKey("worker_error", "w1"), {"id": "m1"})

        assert lifecycle == []
        assert messages == [{"id": "m1"}]


class TestStreams:
    """Per-subscriber event streams"""

    @pytest.mark.asyncio
    async def test_stream_filters_by_session(self):
        emitter = EventEmitter(heartbeat_interval_sec=1)

        async with emitter.stream(session_id="s1") as stream:
            await emitter.emit(event_worker_started("w2", "s2", "echo"))
            await emitter.emit(event_worker_started("w1", "s1", "echo"))

            event = await stream.__anext__()

        assert event.event == EventType.WORKER_STARTED
        assert event.data["worker_id"] == "w1"

    @pytest.mark.asyncio
    async def test_heartbeat_when_idle(self):
        emitter = EventEmitter(heartbeat_interval_sec=0.01)

        async with emitter.stream(session_id="s1") as stream:
            event = await asyncio.wait_for(stream.__anext__(), timeout=1)

        assert event.event == EventType.HEARTBEAT
        assert event.session_id == "s1"

    @pytest.mark.asyncio
    async def test_closed_stream_stops_iteration(self):
        emitter = EventEmitter()
        stream = emitter.stream()
        stream.close()

        await emitter.emit(event_session_deleted("s1"))

        assert [event async for event in stream] == []

    def test_sse_format(self):
        sse = event_worker_completed("w1", "s1").to_sse()

        assert sse.startswith("data: ") and sse.endswith("\n\n")
        payload = json.loads(sse[len("data: "):])
        assert payload["type"] == "worker_completed"
        assert payload["worker_id"] == "w1"
