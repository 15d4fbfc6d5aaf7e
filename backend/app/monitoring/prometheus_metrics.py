"""
Prometheus registry for the Eventa API.

HTTP request metrics are defined here; the search pipeline registers its own
collectors (``app.services.search.metrics``) on the same ``REGISTRY`` so a
single scrape of /metrics/prometheus covers both.
"""

from contextlib import contextmanager
from threading import Lock
import time
from typing import Iterator, Optional, Tuple, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

# Search requests fan out to providers with a 1.5s budget, so the upper
# buckets matter more than sub-millisecond resolution.
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 1.5, 2.0, 3.0, 5.0)

http_request_duration_seconds = Histogram(
    "eventa_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=LATENCY_BUCKETS,
)

http_requests_total = Counter(
    "eventa_http_requests_total",
    "HTTP requests served",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

http_requests_in_progress = Gauge(
    "eventa_http_requests_in_progress",
    "HTTP requests currently being served",
    ["method", "endpoint"],
    registry=REGISTRY,
)

RENDER_CACHE_SECONDS = 1.0


class RequestTimer:
    """Mutable holder so the caller can set the status code after the handler ran."""

    def __init__(self) -> None:
        self.status_code = 500


class PrometheusMetrics:
    def __init__(self) -> None:
        self._lock = Lock()
        self._rendered: Optional[Tuple[float, bytes]] = None

    @contextmanager
    def track_request(self, method: str, endpoint: str) -> Iterator[RequestTimer]:
        """Count an in-flight request; record duration and status on exit."""
        timer = RequestTimer()
        in_progress = http_requests_in_progress.labels(method=method, endpoint=endpoint)
        in_progress.inc()
        started = time.perf_counter()
        try:
            yield timer
        finally:
            labels = {"method": method, "endpoint": endpoint, "status_code": str(timer.status_code)}
            http_request_duration_seconds.labels(**labels).observe(time.perf_counter() - started)
            http_requests_total.labels(**labels).inc()
            in_progress.dec()

    def render(self, *, fresh: bool = False) -> bytes:
        """Exposition-format payload; repeated scrapes within a second share one render."""
        now = time.monotonic()
        with self._lock:
            if fresh or self._rendered is None or now - self._rendered[0] > RENDER_CACHE_SECONDS:
                self._rendered = (now, cast(bytes, generate_latest(REGISTRY)))
            return self._rendered[1]

    @staticmethod
    def content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
