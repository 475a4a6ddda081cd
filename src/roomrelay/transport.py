# src/roomrelay/transport.py
"""
Outbound collaborators of an exchange: the room transport and the audit sink.

``RoomTransport`` pushes RoomEvents to a room's subscribers; ``RoomHub`` is
the in-memory fan-out used by the API server's WebSocket endpoint.
``AuditSink`` receives one ExchangeRecord per completed exchange;
``LoggingAuditSink`` writes it to the ``roomrelay.audit`` logger.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional, Protocol, Set, runtime_checkable

from .models import ExchangeRecord, RoomEvent

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("roomrelay.audit")

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 1024


@runtime_checkable
class RoomTransport(Protocol):
    """Delivers events to the subscribers of a room."""

    async def publish(self, event: RoomEvent) -> None:
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Receives one structured record per completed exchange."""

    async def record(self, record: ExchangeRecord) -> None:
        ...


class LoggingAuditSink:
    """Audit sink that logs each exchange as a JSON line."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO):
        self._logger = log or audit_logger
        self._level = level

    async def record(self, record: ExchangeRecord) -> None:
        self._logger.log(self._level, "Ollama Request: %s", record.model_dump_json())


class RoomSubscription:
    """
    One subscriber's view of a room: a bounded queue of events.

    Iterate with ``async for event in subscription`` or call ``get()``.
    """

    def __init__(self, hub: "RoomHub", room: str, maxsize: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        self.hub = hub
        self.room = room
        self.dropped = 0
        self._queue: asyncio.Queue[RoomEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def offer(self, event: RoomEvent) -> bool:
        """Enqueue without blocking. Returns False if the queue was full."""
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> RoomEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.hub.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[RoomEvent]:
        return self

    async def __anext__(self) -> RoomEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()

    def __enter__(self) -> "RoomSubscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RoomHub:
    """
    In-memory publish/subscribe hub keyed by room.

    ``publish`` never blocks the exchange that calls it: a subscriber whose
    queue is full loses the event and a warning is logged.
    """

    def __init__(self, queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Set[RoomSubscription]] = {}

    def subscribe(self, room: str) -> RoomSubscription:
        subscription = RoomSubscription(self, room, maxsize=self.queue_size)
        self._subscribers.setdefault(room, set()).add(subscription)
        logger.debug(f"Subscriber added to room '{room}' ({self.subscriber_count(room)} total)")
        return subscription

    def unsubscribe(self, subscription: RoomSubscription) -> None:
        subscribers = self._subscribers.get(subscription.room)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.room]
        logger.debug(f"Subscriber removed from room '{subscription.room}'")

    def subscriber_count(self, room: str) -> int:
        return len(self._subscribers.get(room, ()))

    def rooms(self) -> List[str]:
        return list(self._subscribers)

    async def publish(self, event: RoomEvent) -> None:
        for subscription in list(self._subscribers.get(event.room, ())):
            if not subscription.offer(event):
                logger.warning(f"Subscriber queue full in room '{event.room}'; dropped {event.kind.value} event")
