"""Health and readiness Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"


class CheckStatus(str, Enum):
    """Outcome of a single readiness check."""
    OK = "ok"
    FAILED = "failed"


class HealthResponse(BaseModel):
    """Liveness response for the slot service."""

    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field("1.0.0", description="API version")
    held_slot_locks: int = Field(0, ge=0, description="Slots currently inside a critical section")


class ReadinessResponse(BaseModel):
    """Readiness response listing dependency checks."""

    status: str = Field(..., description="'ready' when every check passed, else 'not_ready'")
    service: str = Field(..., description="Service name")
    checks: dict[str, CheckStatus] = Field(..., description="Per-dependency check results")
