# src/roomrelay/api_server/routes/__init__.py
"""
API routes package initialization.

Exports the routers registered by the main FastAPI application.
"""

from .chat import router as chat_router
from .core import router as core_router
from .rooms import router as rooms_router

__all__ = [
    "chat_router",
    "core_router",
    "rooms_router",
]
