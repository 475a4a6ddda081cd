# src/roomrelay/service.py
"""
Service handle for the shared language-model backend.

``BackendService`` owns the single backend connection reused by every room
and exchange, together with the selected default model and the ready flag.
It is created once and passed by reference to the components that need it.
"""

import logging
from typing import Callable, Dict, Optional

from .config.models import OllamaConfig
from .exceptions import NotStartedError
from .models import RoomEvent
from .providers.base import BaseProvider
from .providers.ollama_provider import OllamaProvider
from .transport import RoomTransport

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Dict[str, object], bool], BaseProvider]


def _default_provider_factory(config: Dict[str, object], log_raw_payloads: bool) -> BaseProvider:
    return OllamaProvider(config, log_raw_payloads=log_raw_payloads)


class BackendService:
    """
    Lifecycle wrapper around the shared backend provider.

    ``start`` and ``stop`` are idempotent and never raise: a failed start
    leaves the service not ready, logs the failure, and publishes an error
    notice to the transport's anonymous room ``""``.
    """

    def __init__(
        self,
        config: Optional[OllamaConfig] = None,
        transport: Optional[RoomTransport] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ):
        self.config = config or OllamaConfig()
        self._transport = transport
        self._provider_factory = provider_factory or _default_provider_factory
        self._provider: Optional[BaseProvider] = None
        self._started = False
        self.model: str = self.config.default_model
        self.host: Optional[str] = self.config.host

    @property
    def is_started(self) -> bool:
        return self._started and self._provider is not None

    @property
    def provider(self) -> Optional[BaseProvider]:
        return self._provider

    def require_provider(self) -> BaseProvider:
        """Returns the live provider or raises NotStartedError."""
        if not self.is_started:
            raise NotStartedError()
        return self._provider

    async def start(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> bool:
        """
        Initialize the backend handle and mark the service ready.

        Args:
            host: Backend endpoint; the configured host when None.
            api_key: Bearer credential; the configured key when None.
            model: Default model; the configured default when None or empty.

        Returns:
            True if the service is ready afterwards.
        """
        self.model = model or self.config.default_model
        if self.is_started:
            logger.debug("Backend service already started")
            return True

        host = host or self.config.host
        api_key = api_key or self.config.api_key
        provider_config: Dict[str, object] = {
            "host": host,
            "default_model": self.model,
            "timeout": self.config.request_timeout,
        }
        if api_key:
            provider_config["headers"] = {"Authorization": "Bearer " + api_key}

        try:
            self._provider = self._provider_factory(provider_config, self.config.log_raw_payloads)
            self.host = host
            self._started = True
            logger.info(f"Backend service started (host: {host or 'default'}, model: {self.model})")
        except Exception as e:
            self._provider = None
            self._started = False
            logger.error(f"Backend service failed to start: {e}", exc_info=True)
            await self._notify_error(str(e))
        return self.is_started

    async def stop(self) -> None:
        """Tear down the backend handle and mark the service not ready. Idempotent."""
        self._started = False
        provider, self._provider = self._provider, None
        if provider is None:
            return
        try:
            await provider.close()
        except Exception as e:
            logger.warning(f"Ignoring error while closing backend provider: {e}")
        logger.info("Backend service stopped")

    async def _notify_error(self, detail: str) -> None:
        if self._transport is None:
            return
        try:
            await self._transport.publish(RoomEvent.error("", detail))
        except Exception as e:
            logger.error(f"Failed to publish service error notice: {e}")
