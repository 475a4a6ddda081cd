# src/roomrelay/api_server/routes/chat.py
"""
Chat route for the RoomRelay API server.

``POST /chat`` takes the inbound request envelope as its body and returns
the outbound ``{success, data, error_kind}`` result. Failures are reported
in the result body (HTTP 200), exactly as the library entry point returns
them; streaming output goes to the room's WebSocket subscribers.
"""

import logging

from fastapi import APIRouter, Depends, Request

from ...api import ChatRelay
from ...models import ExchangeResult
from .deps import get_relay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ExchangeResult)
async def handle_chat(request: Request, relay: ChatRelay = Depends(get_relay)) -> ExchangeResult:
    """
    Handles one chat exchange.

    The raw body is handed to the relay unparsed so malformed envelopes are
    reported through the same result shape as every other failure.
    """
    body = await request.body()
    result = await relay.stream_chat(body)
    if not result.success:
        logger.debug(f"Chat request failed ({result.error_kind}): {result.data}")
    return result
