"""
Message Bus - queued notifications between workers of one session

send_message() persists the message and queues it. A single consumer
drains the queue in FIFO order; a targeted message is dispatched under
``MessageKey(type, recipient)``, a broadcast (recipient None) under the
key of every worker currently tracked under the session. Each message is
then marked delivered. Delivery is at most once.
"""

import asyncio
from collections import deque
from typing import Any, Deque, Dict, Optional

from research_orchestrator.core.events import MessageKey, event_message_sent
from research_orchestrator.database.repository import MessageRepository
from research_orchestrator.orchestration.event_emitter import EventEmitter, Handler
from research_orchestrator.orchestration.shared_state import SharedSessionState
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


class MessageBus(LoggerMixin):

    def __init__(
        self,
        repository: MessageRepository,
        emitter: EventEmitter,
        shared_state: SharedSessionState,
        drain_interval_sec: float = 1.0,
    ):
        super().__init__()
        self._repository = repository
        self._emitter = emitter
        self._shared_state = shared_state
        self.drain_interval_sec = drain_interval_sec

        self._queue: Deque[Dict[str, Any]] = deque()
        self._draining = False
        self._wakeup = asyncio.Event()
        self._consumer: Optional["asyncio.Task[None]"] = None

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    # ========================================================================
    # Subscription
    # ========================================================================

    def subscribe(self, worker_id: str, message_type: str, handler: Handler) -> MessageKey:
        key = MessageKey(message_type, worker_id)
        self._emitter.on(key, handler)
        return key

    def unsubscribe(self, key: MessageKey, handler: Handler) -> bool:
        return self._emitter.off(key, handler)

    # ========================================================================
    # Sending
    # ========================================================================

    async def send_message(
        self,
        from_worker: str,
        to_worker: Optional[str],
        message_type: str,
        data: Any,
        session_id: str,
    ) -> Dict[str, Any]:
        """Persist and enqueue; ``to_worker=None`` broadcasts to the session"""
        message = await self._repository.create(
            session_id=session_id,
            from_agent=from_worker,
            to_agent=to_worker,
            message_type=message_type,
            message_data=data,
        )
        self._queue.append(message)
        self._wakeup.set()

        self.logger.debug(
            f"[MESSAGE BUS] Queued {message_type} {from_worker} -> {to_worker or '*'} "
            f"(session {session_id}, pending={len(self._queue)})"
        )
        await self._emitter.emit(event_message_sent(message))
        return message

    async def broadcast_message(self, from_worker: str, message_type: str, data: Any, session_id: str) -> Dict[str, Any]:
        return await self.send_message(from_worker, None, message_type, data, session_id)

    # ========================================================================
    # Delivery
    # ========================================================================

    async def drain(self) -> int:
        """
        Deliver everything queued. Only one pass runs at a time; a call made
        while a pass is in progress returns 0 immediately.

        Returns:
            Number of messages delivered
        """
        if self._draining:
            return 0

        self._draining = True
        delivered = 0
        try:
            while self._queue:
                message = self._queue.popleft()
                try:
                    await self._deliver(message)
                except Exception as e:
                    self.logger.error(f"[MESSAGE BUS] Delivery of message {message['id']} failed: {e}", exc_info=True)
                    continue
                delivered += 1
        finally:
            self._draining = False

        if delivered:
            self.logger.debug(f"[MESSAGE BUS] Delivered {delivered} messages")
        return delivered

    async def _deliver(self, message: Dict[str, Any]) -> None:
        if message["to_agent"]:
            recipients = [message["to_agent"]]
        else:
            recipients = self._shared_state.tracked_worker_ids(message["session_id"])

        for worker_id in recipients:
            await self._emitter.dispatch(MessageKey(message["message_type"], worker_id), message)

        await self._repository.mark_delivered(message["id"])
        message["status"] = "delivered"

    # ========================================================================
    # Background consumer
    # ========================================================================

    def start(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._run(), name="message-bus-consumer")
            self.logger.info(f"[MESSAGE BUS] Consumer started (interval={self.drain_interval_sec}s)")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.drain_interval_sec)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
            await self.drain()

    async def stop(self) -> None:
        """Stop the consumer and deliver whatever is still queued"""
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
            self.logger.info("[MESSAGE BUS] Consumer stopped")
        await self.drain()
