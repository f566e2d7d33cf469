"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Depends, Response

from app.api.deps import get_presence_table
from app.monitoring.metrics import realtime_connections
from app.monitoring.registry import registry
from lionsphere.realtime import PresenceTable


router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response)
def export_metrics(presence: PresenceTable = Depends(get_presence_table)) -> Response:
    """Expose relay and API metrics; the connection gauge is resampled per scrape."""

    realtime_connections.labels("chat").set(len(presence))
    return Response(content=registry.render(), media_type="text/plain; version=0.0.4")
