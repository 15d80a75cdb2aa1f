"""
Event Emitter - typed publish/subscribe for lifecycle events and bus delivery

Two kinds of keys are accepted:
- ``EventType`` members, for lifecycle events (payload: OrchestratorEvent)
- ``MessageKey(message_type, worker_id)``, for bus messages (payload: message dict)

Handlers may be plain functions or coroutines. They run in registration
order; a failing handler is logged and does not stop the others.

Transport layers consume lifecycle events through ``stream()``, which
yields a heartbeat whenever no event arrived for the heartbeat interval.
"""

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from research_orchestrator.core.events import EventType, MessageKey, OrchestratorEvent, event_heartbeat
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


EventKey = Union[EventType, MessageKey]
Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventStream:
    """
    One subscriber's view of the lifecycle events.

    Registered with the emitter on creation, so nothing emitted after
    ``EventEmitter.stream()`` returns is missed.
    """

    def __init__(self, emitter: "EventEmitter", session_id: Optional[str], heartbeat_interval_sec: float):
        self.session_id = session_id
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self._emitter = emitter
        self._queue: "asyncio.Queue[OrchestratorEvent]" = asyncio.Queue()
        self._closed = False

    def matches(self, event: OrchestratorEvent) -> bool:
        return self.session_id is None or event.session_id == self.session_id

    def push(self, event: OrchestratorEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._emitter._detach(self)

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> OrchestratorEvent:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=self.heartbeat_interval_sec)
        except asyncio.TimeoutError:
            return event_heartbeat(self.session_id)

    async def __aenter__(self) -> "EventStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


class EventEmitter(LoggerMixin):
    """Process-wide fan-out point owned by one orchestrator."""

    def __init__(self, heartbeat_interval_sec: float = 15.0):
        super().__init__()
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self._handlers: Dict[EventKey, List[Handler]] = defaultdict(list)
        self._streams: List[EventStream] = []

    # ========================================================================
    # Subscription
    # ========================================================================

    def on(self, key: EventKey, handler: Handler) -> Callable[[], bool]:
        """Register ``handler`` for ``key``; returns a callable that unregisters it."""
        self._handlers[key].append(handler)
        return lambda: self.off(key, handler)

    def off(self, key: EventKey, handler: Handler) -> bool:
        handlers = self._handlers.get(key)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[key]
        return True

    def listener_count(self, key: EventKey) -> int:
        return len(self._handlers.get(key, ()))

    def stream(self, session_id: Optional[str] = None, heartbeat_interval_sec: Optional[float] = None) -> EventStream:
        """Open a lifecycle event stream, optionally filtered to one session"""
        stream = EventStream(self, session_id, heartbeat_interval_sec or self.heartbeat_interval_sec)
        self._streams.append(stream)
        return stream

    def _detach(self, stream: EventStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    # ========================================================================
    # Publishing
    # ========================================================================

    async def emit(self, event: OrchestratorEvent) -> int:
        """Publish a lifecycle event to handlers and open streams"""
        for stream in list(self._streams):
            if stream.matches(event):
                stream.push(event)
        return await self.dispatch(event.event, event)

    async def dispatch(self, key: EventKey, payload: Any) -> int:
        """
        Invoke every handler registered for ``key``.

        Returns:
            Number of handlers that completed without raising
        """
        succeeded = 0
        for handler in list(self._handlers.get(key, ())):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
                succeeded += 1
            except Exception as e:
                self.logger.error(f"[EVENT EMITTER] Handler {getattr(handler, '__qualname__', handler)} failed for {key}: {e}", exc_info=True)
        return succeeded
