# src/roomrelay/providers/base.py
"""
Abstract Base Class for the language-model backend.

The relay treats the backend as a remote capability that accepts a message
list and returns either one complete response or a lazy, single-pass
sequence of text fragments.
"""

import abc
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..models import ChatMessage

# Define a type alias for the context payload that can be passed to providers.
ContextPayload = List[ChatMessage]


class BaseProvider(abc.ABC):
    """
    Abstract Base Class for LLM backend integrations.

    One instance is created per started service and shared by every room
    and every in-flight exchange.
    """
    log_raw_payloads_enabled: bool

    @abc.abstractmethod
    def __init__(self, config: Dict[str, Any], log_raw_payloads: bool = False):
        """
        Initialize the provider with its specific configuration.

        Args:
            config: Provider settings (e.g., host, headers, default_model, timeout).
            log_raw_payloads: Whether raw request/response payloads should be logged.
        """
        self.log_raw_payloads_enabled = log_raw_payloads

    @abc.abstractmethod
    def get_name(self) -> str:
        """Return the unique identifier name for this provider, e.g. "ollama"."""
        pass

    @abc.abstractmethod
    async def chat_completion(
        self,
        context: ContextPayload,
        model: Optional[str] = None,
        stream: bool = False,
        **kwargs: Any
    ) -> Union[str, AsyncIterator[str]]:
        """
        Send a chat request to the backend.

        Args:
            context: The persona followed by the conversation turns.
            model: Model identifier; the provider default when None.
            stream: If True, return an async iterator of text fragments.
            **kwargs: Provider-specific options.

        Returns:
            The full response text, or an async iterator of non-empty fragments.

        Raises:
            ProviderError: If the request fails.
        """
        pass

    async def close(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        pass
