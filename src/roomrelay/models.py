# src/roomrelay/models.py
"""
Core data models for the RoomRelay library.

This module defines the Pydantic models used to represent the fundamental
data structures: chat messages and roles, per-room conversation sessions,
the inbound request envelope, the outbound exchange result, room broadcast
events and audit records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

END_OF_CHAT_MARKER = "END_OF_CHAT"
ABORTED_MARKER = "Stream aborted due to timeout"
ERROR_NOTICE_PREFIX = "Ollama Error: "


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """
    Enumeration of possible roles in a conversation.
    The system role is reserved for the persona entry of a session.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def _missing_(cls, value: object): # type: ignore[misc] # Pydantic uses this signature
        """Handles case-insensitive matching, e.g. "User" maps to Role.USER."""
        if isinstance(value, str):
            lower_value = value.lower()
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class DeadlineKind(str, Enum):
    """Which of the two exchange deadlines fired."""
    IDLE = "idle"
    HARD = "hard"


class ChatMessage(BaseModel):
    """
    A single, immutable message within a conversation session.

    Attributes:
        role: The role of the entity that produced the message.
        content: The textual content of the message.
        timestamp: When the message was appended (UTC).
    """
    role: Role = Field(description="The role of the message sender (system, user, or assistant).")
    content: str = Field(description="The textual content of the message.")
    timestamp: datetime = Field(default_factory=utcnow, description="Timestamp of when the message was created (UTC).")

    class Config:
        """Pydantic model configuration."""
        frozen = True

    @field_validator('timestamp', mode='before')
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> Any:
        """Ensure the timestamp is timezone-aware and in UTC if naive."""
        if isinstance(v, datetime):
            if v.tzinfo is None:
                return v.replace(tzinfo=timezone.utc)
            return v.astimezone(timezone.utc)
        return v

    def to_payload(self) -> dict:
        """Returns the role/content pair sent to the backend (timestamps stay local)."""
        return {"role": self.role.value, "content": self.content}


class ConversationSession(BaseModel):
    """
    Conversation state of one room.

    The persona is fixed at creation and is never trimmed or counted toward
    the history bound; ``messages`` holds user and assistant turns in
    conversational order.
    """
    room: str = Field(description="Room identifier owning this session.")
    persona: ChatMessage = Field(description="Fixed system-role message prepended to every context window.")
    messages: List[ChatMessage] = Field(default_factory=list, description="User and assistant turns, oldest first.")
    created_at: datetime = Field(default_factory=utcnow, description="Timestamp of when the session was created (UTC).")

    @field_validator('persona')
    @classmethod
    def persona_is_system(cls, v: ChatMessage) -> ChatMessage:
        if v.role != Role.SYSTEM:
            raise ValueError("Persona message must use the system role.")
        return v

    @property
    def last_timestamp(self) -> Optional[datetime]:
        return self.messages[-1].timestamp if self.messages else None


class ChatRequest(BaseModel):
    """
    Inbound request envelope.

    Attributes:
        room: Target room identifier (required, non-empty).
        model: Optional model override for this exchange.
        content: The user's message text.
        reset: Clear the room's conversation history before this turn.
        stream: Relay output incrementally to the room (default) or return it whole.
    """
    room: str = Field(min_length=1, description="Target room identifier.")
    model: Optional[str] = Field(default=None, description="Optional model override.")
    content: str = Field(description="The user's message text.")
    reset: bool = Field(default=False, description="Clear conversation history before this turn.")
    stream: bool = Field(default=True, description="Stream fragments to the room's transport channel.")

    @field_validator('model', mode='before')
    @classmethod
    def blank_model_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('reset', mode='before')
    @classmethod
    def null_reset_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator('stream', mode='before')
    @classmethod
    def null_stream_is_true(cls, v: Any) -> Any:
        return True if v is None else v


class ExchangeResult(BaseModel):
    """
    Outbound result of one exchange.

    ``data`` is None on streaming success (the text went out over the
    transport), the full response text on non-streaming success, or a
    human-readable error description on failure.
    """
    success: bool
    data: Optional[str] = None
    error_kind: Optional[str] = Field(default=None, description="ErrorKind value on failure, None on success.")

    @classmethod
    def ok(cls, data: Optional[str] = None) -> "ExchangeResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, message: str, kind: str) -> "ExchangeResult":
        return cls(success=False, data=message, error_kind=kind)


class EventKind(str, Enum):
    """Discriminator for room broadcast events."""
    CONTENT = "content"
    END = "end"
    ABORTED = "aborted"
    ERROR = "error"


class RoomEvent(BaseModel):
    """
    An event pushed to a room's subscribers.

    Subscribers should branch on ``kind``. The ``message`` payload of control
    events keeps the legacy marker strings so that older clients that only
    compare ``message`` keep working.
    """
    room: str
    type: Literal["message"] = "message"
    kind: EventKind = EventKind.CONTENT
    message: str = ""

    class Config:
        """Pydantic model configuration."""
        frozen = True

    @classmethod
    def content(cls, room: str, fragment: str) -> "RoomEvent":
        return cls(room=room, kind=EventKind.CONTENT, message=fragment)

    @classmethod
    def end(cls, room: str) -> "RoomEvent":
        return cls(room=room, kind=EventKind.END, message=END_OF_CHAT_MARKER)

    @classmethod
    def aborted(cls, room: str) -> "RoomEvent":
        return cls(room=room, kind=EventKind.ABORTED, message=ABORTED_MARKER)

    @classmethod
    def error(cls, room: str, detail: str) -> "RoomEvent":
        return cls(room=room, kind=EventKind.ERROR, message=ERROR_NOTICE_PREFIX + detail)


class ExchangeRecord(BaseModel):
    """Structured audit record of one completed exchange."""
    room: str
    model: str
    request: str = Field(description="Inbound user content.")
    response: str = Field(description="Outbound assistant text (possibly truncated).")
    streamed: bool = True
    truncated: bool = False
    duration: float = Field(default=0.0, description="Wall-clock duration of the exchange in seconds.")
    completed_at: datetime = Field(default_factory=utcnow)
