# src/roomrelay/api_server/routes/deps.py
"""Shared dependencies for API routes."""

import logging
from typing import Union

from fastapi import HTTPException, Request, WebSocket

from ...api import ChatRelay
from ...transport import RoomHub

logger = logging.getLogger(__name__)


def get_relay(request: Request) -> ChatRelay:
    """Returns the ChatRelay attached to app state, or 503 if initialization failed."""
    relay = getattr(request.app.state, 'relay', None)
    if relay is None:
        logger.error("ChatRelay instance not found in app state")
        raise HTTPException(
            status_code=503,
            detail="RoomRelay service is not available. The service may be starting up or experiencing issues."
        )
    return relay


def get_hub(connection: Union[Request, WebSocket]) -> RoomHub:
    return connection.app.state.hub
