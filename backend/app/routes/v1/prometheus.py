# backend/app/routes/v1/prometheus.py
"""Scrape endpoint for HTTP and search pipeline metrics (no business data)."""

from fastapi import APIRouter, Query, Response
from prometheus_client import Counter

from app.monitoring.prometheus_metrics import REGISTRY, prometheus_metrics

router = APIRouter()

scrapes_total = Counter(
    "eventa_prometheus_scrapes_total",
    "Prometheus scrapes served",
    registry=REGISTRY,
)


@router.get("/prometheus", include_in_schema=False, response_class=Response, response_model=None)
async def get_prometheus_metrics(
    refresh: bool = Query(False, description="Bypass the one-second render cache"),
) -> Response:
    scrapes_total.inc()
    return Response(
        content=prometheus_metrics.render(fresh=refresh),
        media_type=prometheus_metrics.content_type(),
        headers={"Cache-Control": "no-store"},
    )
