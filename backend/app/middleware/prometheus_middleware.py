"""
HTTP request metrics middleware.

Requests are labelled by their route template (``/api/v1/search/dual``)
so query strings and path parameters never explode label cardinality;
unmatched paths share the ``unmatched`` label.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from ..monitoring.prometheus_metrics import prometheus_metrics

SCRAPE_PATH = "/metrics/prometheus"


def route_template(request: Request) -> str:
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == SCRAPE_PATH:
            return await call_next(request)

        with prometheus_metrics.track_request(request.method, route_template(request)) as timer:
            response = await call_next(request)
            timer.status_code = response.status_code
            return response
