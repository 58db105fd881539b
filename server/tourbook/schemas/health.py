"""Health and readiness schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class HealthResponse(BaseModel):
    """Liveness ping response."""

    status: HealthStatus = Field(..., description="Service status")
    service: str = Field(..., description="Service name reported to tracing and metrics")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601, UTC)")
    version: str = Field("1.0.0", description="API version")


class ReadinessResponse(BaseModel):
    """Readiness response; ``checks`` maps a dependency to ``ok`` or an error string."""

    status: HealthStatus
    service: str
    checks: Dict[str, str] = Field(default_factory=dict)
