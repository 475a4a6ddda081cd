"""
LLM backend providers for the RoomRelay library.

Defines the backend capability interface and the Ollama implementation
that the service handle shares across all rooms.
"""

from .base import BaseProvider, ContextPayload
from .ollama_provider import OllamaProvider

__all__ = ["BaseProvider", "ContextPayload", "OllamaProvider"]
