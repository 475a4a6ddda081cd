# src/roomrelay/api_server/main.py
"""
Main FastAPI application for the RoomRelay API server.

``create_app`` builds the application with a lifespan that loads
configuration, configures logging, creates the ChatRelay with an in-memory
RoomHub transport, and optionally autostarts the backend.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..api import ChatRelay
from ..config.models import RelayConfig, load_relay_config
from ..exceptions import ConfigError, RelayError
from ..logging_config import configure_logging
from ..service import ProviderFactory
from ..transport import RoomHub
from .routes import chat_router, core_router, rooms_router

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "ROOMRELAY_CONFIG_FILE"


def create_app(
    config: Optional[RelayConfig] = None,
    provider_factory: Optional[ProviderFactory] = None,
    configure_logs: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Explicit configuration; loaded from defaults plus
            ``$ROOMRELAY_CONFIG_FILE`` when None.
        provider_factory: Override for backend construction (tests).
        configure_logs: Install logging handlers during startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API Server starting up...")
        app.state.hub = RoomHub()
        app.state.relay = None

        try:
            relay_config = config or load_relay_config(config_path=os.environ.get(CONFIG_FILE_ENV))
            if configure_logs:
                configure_logging(relay_config.logging)
            relay = await ChatRelay.create(
                relay_config, transport=app.state.hub, provider_factory=provider_factory
            )
            app.state.relay = relay
            logger.info("ChatRelay instance successfully created and attached to app state")
            if relay_config.ollama.autostart:
                await relay.start()
        except (ConfigError, RelayError) as e:
            logger.critical(f"Fatal error during ChatRelay initialization: {e}", exc_info=True)
            logger.warning("API server will start but the relay service will be unavailable")

        logger.info("API Server startup complete")

        yield

        logger.info("API Server shutting down...")
        if app.state.relay is not None:
            try:
                await app.state.relay.close()
                logger.info("ChatRelay instance successfully closed")
            except Exception as e:
                logger.error(f"Error during ChatRelay cleanup: {e}", exc_info=True)
        logger.info("API Server shutdown complete")

    app = FastAPI(
        title="RoomRelay API",
        description="Relays chat exchanges between rooms and a shared LLM backend",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    app.include_router(core_router, tags=["core"])
    app.include_router(chat_router, tags=["chat"])
    app.include_router(rooms_router, tags=["rooms"])
    return app
