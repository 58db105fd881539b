"""Prometheus scrape endpoint."""

from fastapi import APIRouter, Response

from ..core.observability import get_prometheus_metrics

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Booking, payment, webhook and notification counters plus HTTP request metrics",
    response_class=Response,
    tags=["Observability"]
)
async def metrics():
    return Response(
        content=get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
