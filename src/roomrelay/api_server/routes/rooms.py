# src/roomrelay/api_server/routes/rooms.py
"""
WebSocket route streaming a room's events to a subscriber.

Each connected client receives every RoomEvent published to the room as a
JSON object ``{room, type, kind, message}`` until it disconnects.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .deps import get_hub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/rooms/{room}")
async def room_events(websocket: WebSocket, room: str) -> None:
    hub = get_hub(websocket)
    # Subscribe before accepting so no event published after the handshake is missed.
    subscription = hub.subscribe(room)

    async def pump() -> None:
        async for event in subscription:
            await websocket.send_json(event.model_dump(mode="json"))

    await websocket.accept()
    pump_task = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Subscriber disconnected from room '{room}' with {subscription.pending()} undelivered event(s)")
    finally:
        subscription.close()
        pump_task.cancel()
        try:
            await pump_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Room pump for '{room}' ended with error: {e}")
