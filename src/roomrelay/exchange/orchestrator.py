# src/roomrelay/exchange/orchestrator.py
"""
Streaming orchestrator: drives one chat exchange end-to-end.

Steps of an exchange:
    1. Resolve (and optionally reset) the room's session, append the user
       turn and build the context window.
    2. Call the shared backend under a fresh TimeoutController.
    3. Non-streaming: await the whole response. Streaming: pull fragments
       one at a time, forwarding each to the room transport.
    4. Append the (possibly truncated) reply as an assistant turn on the
       canonical session and hand an ExchangeRecord to the audit sink.

Cancellation is the only condition whose effect depends on the mode: a
non-streaming caller gets CancellationError, a streaming caller gets the
truncated text as a normal result after the room has been sent an
``aborted`` event instead of ``end``. Every other failure propagates.

Room events and audit records are handed to a per-exchange outbox and
delivered in order by a background task, so a slow subscriber never holds
up fragment consumption or stretches the exchange past its deadlines.
"""

import asyncio
import contextlib
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Set, Tuple

from ..config.models import ExchangeConfig
from ..exceptions import CancellationError
from ..models import DeadlineKind, ExchangeRecord, RoomEvent
from ..service import BackendService
from ..sessions.store import SessionStore
from ..transport import AuditSink, LoggingAuditSink, RoomTransport
from .deadline import TimeoutController

logger = logging.getLogger(__name__)

_STREAM_DONE = object()

DEFAULT_DRAIN_TIMEOUT = 5.0


async def _next_fragment(iterator: AsyncIterator[str]) -> object:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _STREAM_DONE


class _Outbox:
    """Ordered, non-blocking hand-off of one exchange's deliveries."""

    def __init__(self, room: str):
        self.room = room
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def send(self, deliver: Callable[[Any], Awaitable[None]], item: Any) -> None:
        if self._closed:
            return
        if self._task is None:
            self._task = asyncio.create_task(self._pump())
        self._queue.put_nowait((deliver, item))

    async def _pump(self) -> None:
        while True:
            entry = await self._queue.get()
            if entry is None:
                return
            deliver, item = entry
            try:
                await deliver(item)
            except Exception as e:
                logger.error(f"Delivery to room '{self.room}' failed: {e}", exc_info=True)

    def close(self) -> Optional[asyncio.Task]:
        """Queue the end-of-deliveries marker; returns the pump task, if any."""
        self._closed = True
        if self._task is None:
            return None
        self._queue.put_nowait(None)
        return self._task


class StreamingOrchestrator:
    """
    Runs chat exchanges against the shared backend.

    Many exchanges may be in flight at once, across rooms and (unless
    ``serialize_rooms`` is set) within one room.
    """

    def __init__(
        self,
        store: SessionStore,
        service: BackendService,
        transport: RoomTransport,
        audit: Optional[AuditSink] = None,
        exchange_config: Optional[ExchangeConfig] = None,
        serialize_rooms: bool = False,
    ):
        self.store = store
        self.service = service
        self.transport = transport
        self.audit = audit or LoggingAuditSink()
        self.exchange_config = exchange_config or ExchangeConfig()
        self.serialize_rooms = serialize_rooms
        self._pending_deliveries: Set[asyncio.Task] = set()

    def new_controller(self) -> TimeoutController:
        return TimeoutController(
            idle_timeout=self.exchange_config.idle_timeout,
            hard_timeout_factor=self.exchange_config.hard_timeout_factor,
        )

    async def chat(
        self,
        room: str,
        content: str,
        model: Optional[str] = None,
        reset: bool = False,
        stream: bool = True,
    ) -> str:
        """
        Run one exchange under its own idle/hard deadlines.

        Args:
            room: Target room.
            content: The user's message.
            model: Model override; the service default when None.
            reset: Clear the room's history before appending this turn.
            stream: Relay fragments to the room as they arrive.

        Returns:
            The assistant text (truncated if a streaming exchange was cancelled).

        Raises:
            NotStartedError: The backend service is not started.
            CancellationError: A deadline fired during a non-streaming exchange.
            ProviderError: The backend call failed.
        """
        lock = self.store.serialized(room) if self.serialize_rooms else contextlib.nullcontext()
        async with lock:
            async with self.new_controller() as controller:
                return await self.run(controller, room, content, model=model, reset=reset, stream=stream)

    async def run(
        self,
        controller: TimeoutController,
        room: str,
        content: str,
        model: Optional[str] = None,
        reset: bool = False,
        stream: bool = True,
    ) -> str:
        """Run one exchange under an already started controller."""
        provider = self.service.require_provider()
        model_name = model or self.service.model
        started = time.monotonic()

        session = self.store.get_or_create(room)
        if reset:
            self.store.reset(session)
        self.store.append_user(session, content)
        window = self.store.build_context_window(session)

        outbox = _Outbox(room)
        try:
            truncated = False
            if not stream:
                text = await controller.guard(
                    provider.chat_completion(window, model=model_name, stream=False),
                    streaming=False,
                )
                controller.on_activity()
            else:
                text, truncated = await self._relay_stream(controller, outbox, room, provider, window, model_name)

            # The session may have been swept or replaced while we were suspended.
            session = self.store.get_or_create(room)
            self.store.append_assistant(session, text)

            outbox.send(self.audit.record, ExchangeRecord(
                room=room,
                model=model_name,
                request=content,
                response=text,
                streamed=stream,
                truncated=truncated,
                duration=time.monotonic() - started,
            ))
            return text
        finally:
            controller.close()
            await self._settle(controller, outbox)

    async def _relay_stream(
        self,
        controller: TimeoutController,
        outbox: _Outbox,
        room: str,
        provider,
        window,
        model_name: str,
    ) -> Tuple[str, bool]:
        """Consume the fragment stream; returns ``(text, truncated)``."""
        accumulated: List[str] = []
        announced: List[DeadlineKind] = []

        def announce_abort(kind: DeadlineKind) -> None:
            announced.append(kind)
            outbox.send(self.transport.publish, RoomEvent.aborted(room))

        controller.on_cancel(announce_abort)
        fragments: Optional[AsyncIterator[str]] = None
        try:
            fragments = await controller.guard(
                provider.chat_completion(window, model=model_name, stream=True)
            )
            iterator = fragments.__aiter__()
            while True:
                controller.raise_if_cancelled()
                fragment = await controller.guard(_next_fragment(iterator))
                if fragment is _STREAM_DONE:
                    break
                controller.raise_if_cancelled()
                if not fragment:
                    continue
                controller.on_activity()
                accumulated.append(fragment)
                outbox.send(self.transport.publish, RoomEvent.content(room, fragment))
        except CancellationError as e:
            logger.warning(f"Stream for room '{room}' truncated after {len(accumulated)} fragment(s): "
                           f"{e.deadline.value} deadline elapsed")
            if not announced:
                outbox.send(self.transport.publish, RoomEvent.aborted(room))
            return "".join(accumulated), True
        finally:
            if fragments is not None:
                await self._close_stream(fragments)

        outbox.send(self.transport.publish, RoomEvent.end(room))
        return "".join(accumulated), False

    async def _close_stream(self, fragments: AsyncIterator[str]) -> None:
        aclose = getattr(fragments, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(f"Error closing backend stream: {e}")

    async def _settle(self, controller: TimeoutController, outbox: _Outbox) -> None:
        """Wait for the outbox within the exchange's remaining budget; leave the rest running."""
        task = outbox.close()
        if task is None:
            return
        done, _ = await asyncio.wait({task}, timeout=controller.remaining)
        if not done:
            logger.warning(f"Deliveries to room '{outbox.room}' still pending at the end of the exchange")
            self._pending_deliveries.add(task)
            task.add_done_callback(self._pending_deliveries.discard)

    @property
    def pending_deliveries(self) -> int:
        return len(self._pending_deliveries)

    async def drain(self, timeout: Optional[float] = DEFAULT_DRAIN_TIMEOUT) -> None:
        """Wait for deliveries that outlived their exchange; cancel what is left after ``timeout``."""
        if not self._pending_deliveries:
            return
        _, still_pending = await asyncio.wait(set(self._pending_deliveries), timeout=timeout)
        if not still_pending:
            return
        for task in still_pending:
            task.cancel()
        await asyncio.wait(still_pending)
        logger.warning(f"Dropped {len(still_pending)} undelivered outbox(es) on drain")
