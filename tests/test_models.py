# tests/test_models.py
"""
Tests for the roomrelay.models module.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from roomrelay.models import (
    ABORTED_MARKER,
    END_OF_CHAT_MARKER,
    ChatMessage,
    ChatRequest,
    ConversationSession,
    EventKind,
    ExchangeResult,
    Role,
    RoomEvent,
)


class TestRole:

    def test_case_insensitive(self):
        assert Role("User") is Role.USER
        assert Role("ASSISTANT") is Role.ASSISTANT

    def test_invalid_role(self):
        with pytest.raises(ValueError):
            Role("narrator")


class TestChatMessage:

    def test_naive_timestamp_becomes_utc(self):
        msg = ChatMessage(role=Role.USER, content="hi", timestamp=datetime(2024, 1, 1, 12, 0))
        assert msg.timestamp.tzinfo == timezone.utc

    def test_is_immutable(self):
        msg = ChatMessage(role=Role.USER, content="hi")
        with pytest.raises(ValidationError):
            msg.content = "changed"

    def test_payload_has_no_timestamp(self):
        msg = ChatMessage(role=Role.ASSISTANT, content="ok")
        assert msg.to_payload() == {"role": "assistant", "content": "ok"}


class TestConversationSession:

    def test_persona_must_be_system(self):
        with pytest.raises(ValidationError):
            ConversationSession(room="A", persona=ChatMessage(role=Role.USER, content="x"))

    def test_last_timestamp(self):
        session = ConversationSession(room="A", persona=ChatMessage(role=Role.SYSTEM, content="p"))
        assert session.last_timestamp is None
        msg = ChatMessage(role=Role.USER, content="hi")
        session.messages.append(msg)
        assert session.last_timestamp == msg.timestamp


class TestChatRequest:

    def test_defaults(self):
        request = ChatRequest(room="A", content="hi")
        assert request.stream is True
        assert request.reset is False
        assert request.model is None

    def test_empty_room_rejected(self):
        with pytest.raises(ValidationError):
            ChatRequest(room="", content="hi")

    def test_content_required(self):
        with pytest.raises(ValidationError):
            ChatRequest(room="A")

    def test_nulls_fall_back_to_defaults(self):
        request = ChatRequest(room="A", content="hi", stream=None, reset=None, model="  ")
        assert request.stream is True
        assert request.reset is False
        assert request.model is None


class TestRoomEvent:

    def test_control_events_keep_legacy_payloads(self):
        assert RoomEvent.end("A").message == END_OF_CHAT_MARKER
        assert RoomEvent.aborted("A").message == ABORTED_MARKER
        assert RoomEvent.error("A", "boom").message == "Ollama Error: boom"

    def test_content_event_is_distinguishable_from_marker(self):
        """A fragment that happens to equal the marker text is still content."""
        event = RoomEvent.content("A", END_OF_CHAT_MARKER)
        assert event.kind is EventKind.CONTENT

    def test_wire_shape(self):
        assert RoomEvent.content("A", "hi").model_dump(mode="json") == {
            "room": "A", "type": "message", "kind": "content", "message": "hi",
        }


class TestExchangeResult:

    def test_ok_and_failed(self):
        assert ExchangeResult.ok().model_dump() == {"success": True, "data": None, "error_kind": None}
        failed = ExchangeResult.failed("nope", "not_started")
        assert failed.success is False
        assert failed.data == "nope"
        assert failed.error_kind == "not_started"
