# src/roomrelay/api_server/routes/core.py
"""
Service control and introspection routes for the RoomRelay API server.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ...api import ChatRelay
from ..models import HealthResponse, ServiceStartRequest, ServiceStatusResponse
from .deps import get_relay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(relay: ChatRelay = Depends(get_relay)) -> HealthResponse:
    """Reports backend readiness, room count and sweeper state."""
    status = relay.get_status()
    return HealthResponse(
        status="ok" if status["started"] else "degraded",
        started=status["started"],
        model=status["model"],
        rooms=status["rooms"],
        sweeper=status["sweeper"],
    )


@router.post("/service/start", response_model=ServiceStatusResponse)
async def start_service(
    start_request: Optional[ServiceStartRequest] = None,
    relay: ChatRelay = Depends(get_relay),
) -> ServiceStatusResponse:
    """
    Starts the shared backend. Idempotent; a failed start is reported as
    ``started: false`` rather than an HTTP error.
    """
    start_request = start_request or ServiceStartRequest()
    started = await relay.start(start_request.host, start_request.api_key, start_request.model)
    if not started:
        logger.warning("Backend service start requested but the service is not ready")
    return ServiceStatusResponse(started=started, model=relay.service.model, host=relay.service.host)


@router.post("/service/stop", response_model=ServiceStatusResponse)
async def stop_service(relay: ChatRelay = Depends(get_relay)) -> ServiceStatusResponse:
    """Stops the shared backend. Idempotent."""
    await relay.stop()
    return ServiceStatusResponse(started=False, model=relay.service.model, host=relay.service.host)
