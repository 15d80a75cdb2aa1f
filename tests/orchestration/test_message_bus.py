"""
Unit tests for MessageBus

Delivery is FIFO, targeted or broadcast to tracked workers, at most once,
and a drain pass never re-enters itself.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from research_orchestrator.core.events import EventType, MessageKey
from research_orchestrator.orchestration import EventEmitter, MessageBus


# ============================================================================
# TEST FIXTURES
# ============================================================================

@pytest.fixture
def bus(repositories, emitter, shared_state):
    return MessageBus(repositories["messages"], emitter, shared_state, drain_interval_sec=0.01)


@pytest.fixture
def make_session(repositories, shared_state):
    async def _make(*worker_ids):
        session = await repositories["sessions"].create("user-1", "Topic")
        shared_state.open(session)
        for worker_id in worker_ids:
            shared_state.track_worker(session["id"], worker_id, "echo")
        return session["id"]

    return _make


# ============================================================================
# DELIVERY
# ============================================================================

class TestDelivery:

    @pytest.mark.asyncio
    async def test_targeted_message(self, bus, make_session, repositories):
        """Only the recipient's handler for that type is called"""
        session_id = await make_session("a", "b")
        received_b, received_a = [], []
        bus.subscribe("b", "task", received_b.append)
        bus.subscribe("a", "task", received_a.append)

        message = await bus.send_message("a", "b", "task", {"n": 1}, session_id)
        assert bus.pending_count == 1

        delivered = await bus.drain()

        assert delivered == 1
        assert [m["id"] for m in received_b] == [message["id"]]
        assert received_a == []
        rows = await repositories["messages"].list_for_session(session_id, status="delivered")
        assert [r["id"] for r in rows] == [message["id"]]

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_tracked_worker(self, bus, make_session):
        """Broadcasts go to all tracked workers, sender included"""
        session_id = await make_session("a", "b", "c")
        received = {w: [] for w in ("a", "b", "c", "outsider")}
        for worker_id, inbox in received.items():
            bus.subscribe(worker_id, "note", inbox.append)

        await bus.broadcast_message("a", "note", "hello", session_id)
        await bus.drain()

        assert {w: len(inbox) for w, inbox in received.items()} == {"a": 1, "b": 1, "c": 1, "outsider": 0}

    @pytest.mark.asyncio
    async def test_fifo_order(self, bus, make_session):
        session_id = await make_session("a")
        received = []
        bus.subscribe("a", "n", lambda m: received.append(m["message_data"]))

        for n in range(5):
            await bus.send_message("x", "a", "n", n, session_id)
        await bus.drain()

        assert received == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_async_handler(self, bus, make_session):
        session_id = await make_session("a")
        handler = AsyncMock()
        bus.subscribe("a", "task", handler)

        await bus.send_message("x", "a", "task", None, session_id)
        await bus.drain()

        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus, make_session):
        session_id = await make_session("a")
        received = []
        key = bus.subscribe("a", "task", received.append)

        assert key == MessageKey("task", "a")
        assert bus.unsubscribe(key, received.append)

        await bus.send_message("x", "a", "task", None, session_id)
        await bus.drain()

        assert received == []

    @pytest.mark.asyncio
    async def test_message_sent_event(self, bus, emitter, make_session):
        session_id = await make_session("a")
        events = []
        emitter.on(EventType.MESSAGE_SENT, events.append)

        await bus.send_message("x", "a", "task", None, session_id)

        assert events[0].data["to_agent"] == "a"
        assert events[0].session_id == session_id


# ============================================================================
# DRAIN SEMANTICS
# ============================================================================

class TestDrain:

    @pytest.mark.asyncio
    async def test_drain_does_not_reenter(self, bus, make_session):
        """A handler that drains gets 0; its own send is delivered in the same pass"""
        session_id = await make_session("a")
        nested_results, received = [], []

        async def handler(message):
            received.append(message["message_data"])
            if message["message_data"] == "first":
                await bus.send_message("a", "a", "task", "second", session_id)
                nested_results.append(await bus.drain())

        bus.subscribe("a", "task", handler)
        await bus.send_message("x", "a", "task", "first", session_id)

        assert await bus.drain() == 2
        assert nested_results == [0]
        assert received == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failed_delivery_is_dropped(self, emitter, shared_state):
        """At most once: a message whose delivery fails is logged and not retried"""
        repository = MagicMock()
        repository.create = AsyncMock(side_effect=lambda **kw: {"id": "m1", "status": "sent", **kw})
        repository.mark_delivered = AsyncMock(side_effect=RuntimeError("db down"))
        bus = MessageBus(repository, emitter, shared_state)

        await bus.send_message("x", "a", "task", None, "s1")

        assert await bus.drain() == 0
        assert bus.pending_count == 0
        assert await bus.drain() == 0

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, bus, make_session):
        session_id = await make_session("a", "b")
        received = []

        def broken(message):
            raise ValueError("handler bug")

        bus.subscribe("a", "note", broken)
        bus.subscribe("b", "note", received.append)

        await bus.broadcast_message("a", "note", None, session_id)

        assert await bus.drain() == 1
        assert len(received) == 1


# ============================================================================
# BACKGROUND CONSUMER
# ============================================================================

class TestConsumer:

    @pytest.mark.asyncio
    async def test_consumer_delivers_without_explicit_drain(self, bus, make_session):
        session_id = await make_session("a")
        delivered = asyncio.Event()
        bus.subscribe("a", "task", lambda m: delivered.set())

        bus.start()
        try:
            await bus.send_message("x", "a", "task", None, session_id)
            await asyncio.wait_for(delivered.wait(), timeout=2)
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_stop_flushes_queue(self, bus, make_session):
        session_id = await make_session("a")
        received = []
        bus.subscribe("a", "task", received.append)

        await bus.send_message("x", "a", "task", None, session_id)
        await bus.stop()

        assert len(received) == 1

    def test_bus_built_outside_a_running_loop(self, bus, make_session):
        """Construction binds to no event loop; a later loop can drive the consumer"""
        received = []
        bus.subscribe("a", "task", received.append)

        async def run():
            session_id = await make_session("a")
            bus.start()
            try:
                await bus.send_message("x", "a", "task", None, session_id)
            finally:
                await bus.stop()

        asyncio.run(run())

        assert len(received) == 1
