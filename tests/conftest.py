# tests/conftest.py
"""
Shared fixtures for RoomRelay tests.

Provides a scriptable fake backend provider, recording transport and audit
collaborators, and a ChatRelay wired to them with short deadlines.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from roomrelay.api import ChatRelay
from roomrelay.config.models import (
    ExchangeConfig,
    RelayConfig,
    RetentionConfig,
    SessionsConfig,
)
from roomrelay.models import ExchangeRecord, RoomEvent
from roomrelay.providers.base import BaseProvider

IDLE_TIMEOUT = 0.2


class FakeProvider(BaseProvider):
    """
    Scriptable stand-in for the Ollama backend.

    Attributes:
        reply: Text returned by non-streaming calls.
        fragments: Fragments yielded by streaming calls.
        delay: Seconds to sleep before the reply / before each fragment.
        stall_after: Stop yielding (wait forever) once this many fragments were sent.
        endless: Keep yielding ``"."`` every ``delay`` seconds forever.
        error: Raised by chat_completion when set.
        stream_error: Raised from inside the stream after all fragments.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, log_raw_payloads: bool = False):
        super().__init__(config or {}, log_raw_payloads)
        self.config = config or {}
        self.reply = "Hello from the fake backend."
        self.fragments: List[str] = ["Hel", "lo ", "there"]
        self.delay = 0.0
        self.stall_after: Optional[int] = None
        self.endless = False
        self.error: Optional[Exception] = None
        self.stream_error: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self.stream_closed = False

    def get_name(self) -> str:
        return "fake"

    async def chat_completion(self, context, model=None, stream=False, **kwargs):
        self.calls.append({
            "context": [m.to_payload() for m in context],
            "model": model,
            "stream": stream,
        })
        if self.error is not None:
            raise self.error
        if not stream:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.reply
        return self._stream()

    async def _stream(self):
        try:
            if self.endless:
                while True:
                    await asyncio.sleep(self.delay)
                    yield "."
            for index, fragment in enumerate(self.fragments):
                if self.stall_after is not None and index >= self.stall_after:
                    await asyncio.Event().wait()
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield fragment
            if self.stall_after is not None and self.stall_after >= len(self.fragments):
                await asyncio.Event().wait()
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True

    async def close(self) -> None:
        self.closed = True


class RecordingTransport:
    """Transport that keeps every published event."""

    def __init__(self):
        self.events: List[RoomEvent] = []

    async def publish(self, event: RoomEvent) -> None:
        self.events.append(event)

    def for_room(self, room: str) -> List[RoomEvent]:
        return [e for e in self.events if e.room == room]


class RecordingAuditSink:
    """Audit sink that keeps every record."""

    def __init__(self):
        self.records: List[ExchangeRecord] = []

    async def record(self, record: ExchangeRecord) -> None:
        self.records.append(record)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_factory(fake_provider):
    """Factory handing out the shared fake provider and capturing its config."""
    def factory(config, log_raw_payloads):
        fake_provider.config = config
        fake_provider.log_raw_payloads_enabled = log_raw_payloads
        return fake_provider
    return factory


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(
        sessions=SessionsConfig(max_history=25),
        exchange=ExchangeConfig(idle_timeout=IDLE_TIMEOUT, hard_timeout_factor=1.5),
        retention=RetentionConfig(enabled=False),
    )


@pytest_asyncio.fixture
async def relay(relay_config, transport, audit, provider_factory):
    """A ChatRelay that is created but not started."""
    instance = await ChatRelay.create(
        relay_config, transport=transport, audit=audit, provider_factory=provider_factory
    )
    yield instance
    await instance.close()


@pytest_asyncio.fixture
async def started_relay(relay):
    """A ChatRelay whose backend service has been started with a default model."""
    assert await relay.start("http://ollama.test:11434", None, "llama3.2")
    return relay
