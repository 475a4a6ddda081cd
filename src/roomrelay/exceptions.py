# src/roomrelay/exceptions.py
"""
Custom exceptions for the RoomRelay library.

This module defines a hierarchy of custom exception classes. Every class
carries a typed ``kind`` (an ``ErrorKind`` member) so that callers can
branch on the kind of failure instead of matching on message text.
"""

from enum import Enum
from typing import Optional

from .models import DeadlineKind


class ErrorKind(str, Enum):
    """Enumeration of the failure kinds surfaced to callers."""
    CONFIG = "config"
    NOT_STARTED = "not_started"
    CANCELLATION = "cancellation"
    BACKEND_FAILURE = "backend_failure"
    MALFORMED_REQUEST = "malformed_request"
    INTERNAL = "internal"


class RelayError(Exception):
    """Base class for all RoomRelay specific errors."""
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = "An unspecified error occurred in RoomRelay."):
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

class ConfigError(RelayError):
    """Raised for errors related to configuration loading or validation."""
    kind = ErrorKind.CONFIG

    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class NotStartedError(RelayError):
    """Raised when a chat exchange is requested before the backend service is started."""
    kind = ErrorKind.NOT_STARTED

    def __init__(self, message: str = "Ollama not started or is not enabled"):
        super().__init__(message)

class CancellationError(RelayError):
    """
    Raised when an exchange's idle or hard deadline elapses.

    Attributes:
        deadline: Which deadline fired first.
        streaming: Whether the cancelled exchange was a streaming one.
    """
    kind = ErrorKind.CANCELLATION

    def __init__(self, deadline: DeadlineKind, streaming: bool = True, message: Optional[str] = None):
        self.deadline = deadline
        self.streaming = streaming
        if message is None:
            message = "Stream aborted due to timeout" if streaming else "Request aborted due to timeout"
        super().__init__(message)

class ProviderError(RelayError):
    """Raised for errors originating from the LLM backend (e.g., API errors, connection issues)."""
    kind = ErrorKind.BACKEND_FAILURE

    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error.",
                 cause: Optional[BaseException] = None):
        self.provider_name = provider_name
        self.cause = cause
        super().__init__(f"Error with provider '{provider_name}': {message}")

class MalformedRequestError(RelayError):
    """Raised when an inbound request envelope cannot be parsed or lacks required fields."""
    kind = ErrorKind.MALFORMED_REQUEST

    def __init__(self, detail: str = "Malformed request."):
        self.detail = detail
        super().__init__(f"Malformed request: {detail}")
