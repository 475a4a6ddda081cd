# src/roomrelay/api.py
"""
Core API Facade for the RoomRelay library.

``ChatRelay`` wires the session store, the backend service handle, the
streaming orchestrator and the retention sweeper together, and exposes the
single request entry point, ``stream_chat``.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from .config.models import RelayConfig
from .exceptions import ErrorKind, MalformedRequestError, NotStartedError, RelayError
from .exchange.orchestrator import StreamingOrchestrator
from .models import ChatRequest, ExchangeResult, RoomEvent
from .service import BackendService, ProviderFactory
from .sessions.store import SessionStore
from .sessions.sweeper import RetentionSweeper
from .transport import AuditSink, LoggingAuditSink, RoomHub, RoomTransport

logger = logging.getLogger(__name__)

Envelope = Union[str, bytes, bytearray, Dict[str, Any]]


def _decode_envelope(data: Envelope) -> Dict[str, Any]:
    """Decode raw envelope data into the request dict (unwrapping ``{"message": {...}}``)."""
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequestError(f"envelope is not valid UTF-8: {e}")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise MalformedRequestError(f"envelope is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise MalformedRequestError(f"envelope must be a JSON object, got {type(data).__name__}")
    inner = data.get("message")
    if isinstance(inner, dict):
        return inner
    return data


def _routing_hint(fields: Dict[str, Any]) -> Tuple[Optional[str], bool]:
    """Best-effort (room, stream) from a request that failed validation."""
    room = fields.get("room")
    stream = fields.get("stream", True)
    return (room if isinstance(room, str) and room else None,
            stream if isinstance(stream, bool) else True)


class ChatRelay:
    """
    Mediates between many rooms and one shared language-model backend.

    Initialize asynchronously with ``ChatRelay.create()``::

        relay = await ChatRelay.create(config, transport=hub)
        await relay.start("http://localhost:11434", None, "llama3.2")
        result = await relay.stream_chat('{"room": "A", "content": "hi", "stream": false}')
        await relay.close()
    """
    config: RelayConfig
    store: SessionStore
    service: BackendService
    orchestrator: StreamingOrchestrator
    sweeper: RetentionSweeper
    transport: RoomTransport
    audit: AuditSink

    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        transport: Optional[RoomTransport] = None,
        audit: Optional[AuditSink] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ):
        """Build the components. Use ``create()`` to also start the sweeper."""
        self.config = config or RelayConfig()
        self.transport = transport or RoomHub()
        self.audit = audit or LoggingAuditSink()
        self.store = SessionStore(
            persona=self.config.sessions.persona,
            max_history=self.config.sessions.max_history,
        )
        self.service = BackendService(self.config.ollama, self.transport, provider_factory)
        self.orchestrator = StreamingOrchestrator(
            self.store,
            self.service,
            self.transport,
            audit=self.audit,
            exchange_config=self.config.exchange,
            serialize_rooms=self.config.sessions.serialize_rooms,
        )
        self.sweeper = RetentionSweeper(
            self.store,
            max_age=self.config.retention.max_message_age,
            interval=self.config.retention.sweep_interval,
        )

    @classmethod
    async def create(
        cls,
        config: Optional[RelayConfig] = None,
        transport: Optional[RoomTransport] = None,
        audit: Optional[AuditSink] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> "ChatRelay":
        """Asynchronously creates a ChatRelay and starts its retention sweeper if enabled."""
        instance = cls(config, transport=transport, audit=audit, provider_factory=provider_factory)
        if instance.config.retention.enabled:
            await instance.sweeper.start()
        logger.info("ChatRelay initialized")
        return instance

    async def __aenter__(self) -> "ChatRelay":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -- service control ---------------------------------------------------

    async def start(self, host: Optional[str] = None, api_key: Optional[str] = None,
                    model: Optional[str] = None) -> bool:
        """Start the shared backend. Never raises; returns readiness."""
        return await self.service.start(host, api_key, model)

    async def stop(self) -> None:
        """Stop the shared backend. Sessions are kept."""
        await self.service.stop()

    @property
    def is_started(self) -> bool:
        return self.service.is_started

    async def close(self) -> None:
        """Stop the sweeper, flush pending room deliveries and stop the backend service."""
        await self.sweeper.stop()
        await self.orchestrator.drain()
        await self.service.stop()
        logger.info("ChatRelay closed")

    # -- entry point ---------------------------------------------------------

    async def stream_chat(self, data: Envelope) -> ExchangeResult:
        """
        Handle one inbound request envelope.

        Accepts a JSON string/bytes or an already decoded dict, either flat
        or wrapped as ``{"message": {...}}``.

        Returns:
            ``ExchangeResult(success=True, data=None)`` for streaming success,
            ``ExchangeResult(success=True, data=<text>)`` for non-streaming
            success, or ``ExchangeResult(success=False, data=<error>)``.
            On failure of a streaming request whose room is known, an error
            event is also published to that room before returning.
        """
        room: Optional[str] = None
        stream = True
        try:
            fields = _decode_envelope(data)
            room, stream = _routing_hint(fields)
            try:
                request = ChatRequest(**fields)
            except ValidationError as e:
                raise MalformedRequestError(str(e))
            room, stream = request.room, request.stream

            if not self.service.is_started:
                raise NotStartedError()

            text = await self.orchestrator.chat(
                request.room,
                request.content,
                model=request.model,
                reset=request.reset,
                stream=request.stream,
            )
            return ExchangeResult.ok(None if stream else text)

        except RelayError as e:
            logger.warning(f"Exchange failed for room '{room}': {e}")
            await self._report_failure(room, stream, e.message)
            return ExchangeResult.failed(e.message, e.kind.value)
        except Exception as e:
            logger.error(f"Unexpected error during exchange for room '{room}': {e}", exc_info=True)
            await self._report_failure(room, stream, str(e))
            return ExchangeResult.failed(str(e), ErrorKind.INTERNAL.value)

    async def _report_failure(self, room: Optional[str], stream: bool, detail: str) -> None:
        """Push an error notice to a streaming room; the single choke point for error visibility."""
        if not room or not stream:
            return
        event = RoomEvent.error(room, detail)
        logger.error(event.message)
        try:
            await self.transport.publish(event)
        except Exception as e:
            logger.error(f"Failed to publish error notice to room '{room}': {e}")

    # -- introspection -------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self.service.is_started,
            "model": self.service.model,
            "host": self.service.host,
            "rooms": len(self.store),
            "sweeper": self.sweeper.get_status(),
        }
