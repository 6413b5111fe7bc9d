"""Health check router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.database import utcnow
from ..core.locks import slot_locks
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """
    Liveness check for the slot service.

    Also reports how many slots are inside a critical section right now.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utcnow(),
        version="1.0.0",
        held_slot_locks=len(slot_locks.held_keys())
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status.value,
            "held_slot_locks": response_data.held_slot_locks
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
