# src/roomrelay/api_server/models.py
"""
Pydantic models for the RoomRelay API server.

The chat endpoint itself reuses ``roomrelay.models.ChatRequest`` /
``ExchangeResult`` so the HTTP body is the same envelope the library
accepts.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ServiceStartRequest(BaseModel):
    """Request model for starting the shared backend."""
    host: Optional[str] = Field(default=None, description="Backend endpoint (configured host when omitted)")
    api_key: Optional[str] = Field(default=None, description="Bearer credential (configured key when omitted)")
    model: Optional[str] = Field(default=None, description="Default model (configured default when omitted)")

    class Config:
        extra = 'forbid'


class ServiceStatusResponse(BaseModel):
    """Readiness of the shared backend."""
    started: bool
    model: str
    host: Optional[str] = None


class HealthResponse(BaseModel):
    """Health summary of the relay."""
    status: str = Field(description="'ok' when the backend is started, otherwise 'degraded'")
    started: bool
    model: str
    rooms: int
    sweeper: Dict[str, Any] = Field(default_factory=dict)
