# backend/app/services/search/metrics.py
"""
Prometheus metrics for Eventa search.

Provides observability for:
- Search latency by stage (intent, internal, external, merge, total)
- External provider call outcomes and dropped items
- Circuit breaker state per provider / dependency
- Degradation events and result counts
- Background moderation decisions
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from prometheus_client import Counter, Gauge, Histogram

from app.monitoring.prometheus_metrics import REGISTRY

SEARCH_LATENCY = Histogram(
    "eventa_search_latency_ms",
    "Search latency in milliseconds",
    ["stage"],
    registry=REGISTRY,
    buckets=[10, 25, 50, 100, 200, 500, 1000, 1500, 2000, 5000],
)

OPENAI_LATENCY = Histogram(
    "eventa_search_openai_latency_ms",
    "OpenAI API latency in milliseconds",
    ["endpoint"],
    registry=REGISTRY,
    buckets=[25, 50, 100, 200, 500, 1000, 2500],
)

SEARCH_RESULT_COUNT = Histogram(
    "eventa_search_result_count",
    "Number of results returned per search",
    ["source"],
    registry=REGISTRY,
    buckets=[0, 1, 5, 10, 20, 50],
)

SEARCH_REQUESTS = Counter(
    "eventa_search_requests_total",
    "Total search requests",
    ["status"],
    registry=REGISTRY,
)

PROVIDER_CALLS = Counter(
    "eventa_search_provider_calls_total",
    "External provider calls by outcome",
    ["provider", "outcome"],
    registry=REGISTRY,
)

PROVIDER_DROPPED_ITEMS = Counter(
    "eventa_search_provider_dropped_items_total",
    "External items dropped during validation",
    ["provider", "reason"],
    registry=REGISTRY,
)

DEDUP_DROPPED = Counter(
    "eventa_search_dedup_dropped_total",
    "External results dropped as duplicates of internal events",
    registry=REGISTRY,
)

CIRCUIT_BREAKER_STATE = Gauge(
    "eventa_search_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half-open, 2=open)",
    ["component"],
    registry=REGISTRY,
)

DEGRADATION_EVENTS = Counter(
    "eventa_search_degradation_total",
    "Count of degradation events",
    ["component", "reason"],
    registry=REGISTRY,
)

MODERATION_DECISIONS = Counter(
    "eventa_moderation_decisions_total",
    "AI moderation outcomes",
    ["decision"],
    registry=REGISTRY,
)


def record_search_metrics(
    total_latency_ms: int,
    stage_latencies: Dict[str, int],
    internal_count: int,
    external_count: int,
    error_code: Optional[str],
) -> None:
    """Record all metrics for one dual search request."""
    SEARCH_LATENCY.labels(stage="total").observe(total_latency_ms)
    for stage, latency in stage_latencies.items():
        SEARCH_LATENCY.labels(stage=stage).observe(latency)

    SEARCH_RESULT_COUNT.labels(source="internal").observe(internal_count)
    SEARCH_RESULT_COUNT.labels(source="external").observe(external_count)

    if error_code:
        status = "failed"
    elif internal_count + external_count == 0:
        status = "zero_results"
    else:
        status = "success"
    SEARCH_REQUESTS.labels(status=status).inc()


def record_provider_call(
    provider: str,
    error: Optional[str],
    dropped_schema: int = 0,
    dropped_safety: int = 0,
) -> None:
    """Record one provider call outcome ("ok" or its error code) and its dropped items."""
    PROVIDER_CALLS.labels(provider=provider, outcome=error or "ok").inc()
    if dropped_schema:
        PROVIDER_DROPPED_ITEMS.labels(provider=provider, reason="schema").inc(dropped_schema)
    if dropped_safety:
        PROVIDER_DROPPED_ITEMS.labels(provider=provider, reason="safety").inc(dropped_safety)


def record_dedup_dropped(count: int) -> None:
    if count:
        DEDUP_DROPPED.inc(count)


def record_degradation(component: str, reasons: Iterable[str]) -> None:
    for reason in reasons:
        DEGRADATION_EVENTS.labels(component=component, reason=reason).inc()


def record_openai_latency(endpoint: str, latency_ms: int) -> None:
    OPENAI_LATENCY.labels(endpoint=endpoint).observe(latency_ms)


def update_circuit_breaker_state(component: str, state: str) -> None:
    """Update circuit breaker state gauge."""
    state_value = {"closed": 0, "half_open": 1, "open": 2}.get(state, 0)
    CIRCUIT_BREAKER_STATE.labels(component=component).set(state_value)


def record_moderation_decision(decision: str) -> None:
    MODERATION_DECISIONS.labels(decision=decision).inc()


__all__ = [
    "SEARCH_LATENCY",
    "OPENAI_LATENCY",
    "SEARCH_RESULT_COUNT",
    "SEARCH_REQUESTS",
    "PROVIDER_CALLS",
    "PROVIDER_DROPPED_ITEMS",
    "DEDUP_DROPPED",
    "CIRCUIT_BREAKER_STATE",
    "DEGRADATION_EVENTS",
    "MODERATION_DECISIONS",
    "record_search_metrics",
    "record_provider_call",
    "record_dedup_dropped",
    "record_degradation",
    "record_openai_latency",
    "update_circuit_breaker_state",
    "record_moderation_decision",
]
