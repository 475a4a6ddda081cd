"""
RoomRelay - relays chat exchanges between many rooms and one shared LLM backend.

Maintains bounded per-room conversation context, submits each turn to the
backend under an idle/hard deadline pair, streams output to room
subscribers, and sweeps abandoned rooms.
"""

from importlib.metadata import PackageNotFoundError, version

from .api import ChatRelay
from .config import RelayConfig, load_relay_config
from .exceptions import (
    CancellationError,
    ConfigError,
    ErrorKind,
    MalformedRequestError,
    NotStartedError,
    ProviderError,
    RelayError,
)
from .models import (
    ChatMessage,
    ChatRequest,
    ConversationSession,
    DeadlineKind,
    EventKind,
    ExchangeRecord,
    ExchangeResult,
    Role,
    RoomEvent,
)
from .transport import LoggingAuditSink, RoomHub

try:
    __version__ = version("roomrelay")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "CancellationError",
    "ChatMessage",
    "ChatRelay",
    "ChatRequest",
    "ConfigError",
    "ConversationSession",
    "DeadlineKind",
    "ErrorKind",
    "EventKind",
    "ExchangeRecord",
    "ExchangeResult",
    "LoggingAuditSink",
    "MalformedRequestError",
    "NotStartedError",
    "ProviderError",
    "RelayConfig",
    "RelayError",
    "Role",
    "RoomEvent",
    "RoomHub",
    "load_relay_config",
]
