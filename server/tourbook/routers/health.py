"""Health check router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.database import utcnow
from ..core.observability import SERVICE_NAME
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])

API_VERSION = "1.0.0"


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """Liveness ping with the current server time."""
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        service=SERVICE_NAME,
        timestamp=utcnow(),
        version=API_VERSION
    )

    logger.debug("Health ping", extra={"status": response_data.status.value})

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
