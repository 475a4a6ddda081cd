# src/roomrelay/providers/ollama_provider.py
"""
Ollama provider implementation using the official ollama library.

Interacts with a local or remote Ollama instance through ``AsyncClient``.
Non-streaming calls return the response text; streaming calls return an
async generator of text fragments.
"""

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional, Union

from ollama import AsyncClient, ResponseError

from ..exceptions import ConfigError, ProviderError
from .base import BaseProvider, ContextPayload

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama3.2"


def _extract_content(part: Any) -> str:
    """Pull ``message.content`` out of a ChatResponse object or a plain dict."""
    if part is None:
        return ""
    message = part.get("message") if isinstance(part, dict) else getattr(part, "message", None)
    if message is None:
        return ""
    content = message.get("content") if isinstance(message, dict) else getattr(message, "content", None)
    return content or ""


class OllamaProvider(BaseProvider):
    """
    RoomRelay provider for interacting with Ollama using the official ollama library.
    """
    _client: Optional[AsyncClient] = None

    def __init__(self, config: Dict[str, Any], log_raw_payloads: bool = False):
        """
        Initializes the OllamaProvider.

        Args:
            config: Dictionary containing:
                    'host' (optional): Ollama server URL. Defaults to the library default.
                    'headers' (optional): Extra HTTP headers, e.g. Authorization.
                    'default_model' (optional): Model used when a call names none.
                    'timeout' (optional): Request timeout in seconds.
            log_raw_payloads: Whether to log raw request payloads and stream chunks.
        """
        super().__init__(config, log_raw_payloads)
        self.host = config.get("host")
        self.default_model = config.get("default_model") or DEFAULT_MODEL
        timeout_val = config.get("timeout")
        self.timeout = float(timeout_val) if timeout_val is not None else None
        headers = config.get("headers")

        try:
            client_args: Dict[str, Any] = {}
            if self.host:
                client_args['host'] = self.host
            if headers:
                client_args['headers'] = headers
            if self.timeout is not None:
                client_args['timeout'] = self.timeout

            self._client = AsyncClient(**client_args)
            logger.debug(f"Ollama AsyncClient initialized (Host: {self.host or 'default library host'}, "
                         f"Timeout: {self.timeout if self.timeout is not None else 'default library timeout'})")
        except Exception as e:
            logger.error(f"Failed to initialize Ollama AsyncClient: {e}", exc_info=True)
            raise ConfigError(f"Ollama client initialization failed: {e}")

    def get_name(self) -> str:
        """Returns the provider name: 'ollama'."""
        return "ollama"

    async def chat_completion(
        self,
        context: ContextPayload,
        model: Optional[str] = None,
        stream: bool = False,
        **kwargs: Any
    ) -> Union[str, AsyncGenerator[str, None]]:
        """
        Sends a chat request to the Ollama API.

        Args:
            context: Persona plus conversation turns.
            model: Ollama model to use. Defaults to the provider's default.
            stream: If True, returns an async generator of text fragments.
            **kwargs: Passed as ``options`` to the ollama SDK's ``chat`` method.

        Returns:
            The response text, or an async generator of non-empty fragments.

        Raises:
            ProviderError: If the API call fails or the client is not initialized.
        """
        if not self._client:
            raise ProviderError(self.get_name(), "Ollama client not initialized.")

        model_name = model or self.default_model
        messages_payload: List[Dict[str, str]] = [msg.to_payload() for msg in context]
        if not messages_payload:
            raise ProviderError(self.get_name(), "No messages to send.")

        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            request_log_data = {
                "model": model_name,
                "messages": messages_payload,
                "stream": stream,
                "options": kwargs,
            }
            logger.debug(f"RAW LLM REQUEST ({self.get_name()} @ {model_name}): {json.dumps(request_log_data, indent=2)}")

        logger.debug(f"Sending request to Ollama: model='{model_name}', stream={stream}, num_messages={len(messages_payload)}")

        try:
            response_or_stream = await self._client.chat(
                model=model_name,
                messages=messages_payload,
                stream=stream,
                options=kwargs or None,
            )
        except Exception as e:
            raise self._wrap_error(e, model_name)

        if not stream:
            return _extract_content(response_or_stream)

        async def fragment_stream() -> AsyncGenerator[str, None]:
            try:
                async for part in response_or_stream:
                    if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
                        logger.debug(f"RAW LLM STREAM CHUNK ({self.get_name()} @ {model_name}): {part!r}")
                    content = _extract_content(part)
                    if content:
                        yield content
            except Exception as e:
                raise self._wrap_error(e, model_name)

        return fragment_stream()

    def _wrap_error(self, e: Exception, model_name: str) -> ProviderError:
        """Translate an ollama/httpx failure into a ProviderError."""
        if isinstance(e, ResponseError):
            error_detail = e.error if getattr(e, 'error', None) else str(e)
            logger.error(f"Ollama API error: HTTP {e.status_code} - {error_detail}")
            if e.status_code == 404 and "not found" in error_detail.lower():
                return ProviderError(self.get_name(), f"Model '{model_name}' not found by Ollama. "
                                     f"Ensure it is pulled: `ollama pull {model_name}`. Details: {error_detail}", cause=e)
            return ProviderError(self.get_name(), f"Ollama API Error (HTTP {e.status_code}): {error_detail}", cause=e)
        if isinstance(e, (asyncio.TimeoutError, TimeoutError)):
            logger.error(f"Request to Ollama API timed out (configured timeout: {self.timeout or 'ollama library default'}).")
            return ProviderError(self.get_name(), "Request to Ollama API timed out.", cause=e)
        logger.error(f"Unexpected error during Ollama chat: {e}", exc_info=True)
        if "connect" in str(e).lower():
            return ProviderError(self.get_name(), f"Could not connect to Ollama server at {self.host or 'default address'}. "
                                 f"Is Ollama running? Details: {e}", cause=e)
        return ProviderError(self.get_name(), f"An unexpected error occurred with Ollama: {e}", cause=e)

    async def close(self) -> None:
        """Closes the underlying Ollama client session if applicable."""
        if self._client:
            logger.debug("Closing OllamaProvider client (AsyncClient)...")
            inner = getattr(self._client, '_client', None)
            closer = getattr(self._client, 'aclose', None) or getattr(inner, 'aclose', None)
            if closer is not None and asyncio.iscoroutinefunction(closer):
                try:
                    await closer()
                    logger.info("OllamaProvider client (AsyncClient) closed successfully.")
                except Exception as e:
                    logger.error(f"Error closing OllamaProvider client (AsyncClient): {e}", exc_info=True)
            else:
                logger.debug("Ollama AsyncClient exposes no async close; leaving cleanup to garbage collection.")
            self._client = None
