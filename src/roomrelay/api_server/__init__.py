"""
HTTP and WebSocket surface for RoomRelay.

Exposes the chat entry point, service control, health, and a per-room
WebSocket stream of RoomEvents.
"""

from .main import create_app

__all__ = ["create_app"]
