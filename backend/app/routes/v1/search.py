# backend/app/routes/v1/search.py
"""
Search routes - API v1

Versioned search endpoints under /api/v1/search.

Endpoints:
    GET  /dual      → Eventa events first, then related web results
    GET  /internal  → Eventa database search only
    GET  /external  → Web providers only (whitelisted names)
    POST /intent    → Intent classification + entity extraction
    GET  /health    → Provider rate-limit / circuit-breaker state
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies.search import (
    get_dual_search_service,
    get_embedding_breaker,
    get_external_gateway,
    get_intent_extractor,
    get_internal_search_engine,
    get_llm_breaker,
    get_provider_health_registry,
)
from ...core.constants import DEFAULT_SEARCH_LIMIT, MAX_QUERY_LENGTH, MAX_SEARCH_LIMIT
from ...core.exceptions import (
    CoordinatesException,
    DomainException,
    EmptyQueryException,
    ProviderNotAllowedException,
)
from ...schemas.search import (
    DualSearchResponse,
    ExternalSearchResponse,
    IntentRequest,
    IntentResponse,
    InternalSearchResponse,
    SearchHealthResponse,
)
from ...services.search.dual_search_service import DualSearchService
from ...services.search.external_gateway import ExternalProviderGateway
from ...services.search.intent_extractor import IntentExtractor
from ...services.search.internal_search import InternalSearchEngine
from ...services.search.providers import ProviderHealthRegistry, is_whitelisted
from ...services.search.query_mapper import build_search_plan

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["search-v1"])


def _require_query(q: str) -> str:
    if not q or not q.strip():
        raise EmptyQueryException().to_http_exception()
    return q.strip()


def _require_coordinates(lat: Optional[float], lng: Optional[float]) -> None:
    if (lat is None) != (lng is None):
        raise CoordinatesException().to_http_exception()


def _parse_providers(providers: Optional[str]) -> Optional[List[str]]:
    if providers is None:
        return None
    names = [p.strip().lower() for p in providers.split(",") if p.strip()]
    for name in names:
        if not is_whitelisted(name):
            raise ProviderNotAllowedException(name).to_http_exception()
    return names


@router.get("/dual", response_model=DualSearchResponse)
async def dual_search(
    q: str = Query(..., max_length=MAX_QUERY_LENGTH, description="Free-text search query"),
    city: Optional[str] = Query(None, max_length=120, description="Target city (overrides extracted city)"),
    country: Optional[str] = Query(None, max_length=120, description="Target country"),
    lat: Optional[float] = Query(None, ge=-90, le=90, description="Caller latitude"),
    lng: Optional[float] = Query(None, ge=-180, le=180, description="Caller longitude"),
    radius_km: Optional[float] = Query(None, gt=0, le=500, description="Geo radius in km"),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    providers: Optional[str] = Query(None, description="Comma-separated provider names"),
    ui_lang: str = Query("en", description="UI language (en, el, it, es, fr)"),
    service: DualSearchService = Depends(get_dual_search_service),
) -> DualSearchResponse:
    """
    Search Eventa events and the web in parallel.

    Eventa events are listed first; web results follow, deduplicated against
    them and ranked event-first. Partial failures are reported in
    ``errors``/``message`` rather than as HTTP errors.
    """
    query = _require_query(q)
    _require_coordinates(lat, lng)
    provider_names = _parse_providers(providers)

    try:
        envelope = await service.search(
            query,
            city=city,
            country=country,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            limit=limit,
            providers=provider_names,
            ui_lang=ui_lang,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return DualSearchResponse(**envelope)


@router.get("/internal", response_model=InternalSearchResponse)
async def internal_search(
    q: str = Query(..., max_length=MAX_QUERY_LENGTH, description="Free-text search query"),
    city: Optional[str] = Query(None, max_length=120),
    country: Optional[str] = Query(None, max_length=120),
    category: Optional[str] = Query(None, description="Category keyword, e.g. jazz, market"),
    date: Optional[str] = Query(None, description="Date phrase or YYYY-MM-DD"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0, le=500),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    engine: InternalSearchEngine = Depends(get_internal_search_engine),
    extractor: IntentExtractor = Depends(get_intent_extractor),
) -> InternalSearchResponse:
    """Search public, approved Eventa events (deterministic parsing, no LLM)."""
    query = _require_query(q)
    _require_coordinates(lat, lng)

    plan = build_search_plan(
        query,
        extractor.extract_regex(query),
        city=city,
        country=country,
        lat=lat,
        lng=lng,
        radius_km=radius_km,
        date=date,
        category=category,
    )
    outcome = await engine.search(query, plan.entities, limit=limit)
    return InternalSearchResponse(
        results=[r.to_dict() for r in outcome.results],
        count=len(outcome.results),
        latency_ms=outcome.latency_ms,
        fallback_stage=outcome.fallback_stage,
        error=outcome.error,
    )


@router.get("/external", response_model=ExternalSearchResponse)
async def external_search(
    q: str = Query(..., max_length=MAX_QUERY_LENGTH, description="Free-text search query"),
    city: Optional[str] = Query(None, max_length=120),
    country: Optional[str] = Query(None, max_length=120),
    date: Optional[str] = Query(None, description="Date phrase or YYYY-MM-DD"),
    providers: Optional[str] = Query(None, description="Comma-separated provider names"),
    gateway: ExternalProviderGateway = Depends(get_external_gateway),
) -> ExternalSearchResponse:
    """Query whitelisted web providers; unknown provider names are rejected with 400."""
    query = _require_query(q)
    provider_names = _parse_providers(providers)

    plan = build_search_plan(query, city=city, country=country, date=date)
    outcome = await gateway.fetch_all(plan.provider_params, provider_names)
    return ExternalSearchResponse(
        results=[r.to_dict() for r in outcome.results],
        count=len(outcome.results),
        stats=outcome.stats(),
        errors=outcome.errors,
    )


@router.post("/intent", response_model=IntentResponse)
async def extract_intent(
    request: IntentRequest,
    extractor: IntentExtractor = Depends(get_intent_extractor),
) -> IntentResponse:
    """Classify free text as search/create/unclear and extract entities (English-normalized)."""
    try:
        result = await extractor.extract(request.text, ui_lang=request.ui_lang)
    except DomainException as e:
        raise e.to_http_exception()
    return IntentResponse(**result.to_dict())


@router.get("/health", response_model=SearchHealthResponse)
async def search_health(
    registry: ProviderHealthRegistry = Depends(get_provider_health_registry),
    gateway: ExternalProviderGateway = Depends(get_external_gateway),
) -> SearchHealthResponse:
    """
    Health check for search components.

    Returns per-provider rate-limit and circuit-breaker state plus the
    OpenAI intent/embedding breakers. Status is "degraded" when any circuit
    is not closed.
    """
    providers = registry.snapshot()
    llm = get_llm_breaker().snapshot()
    embedding = get_embedding_breaker().snapshot()

    states = [p["circuit"]["state"] for p in providers.values()] + [llm["state"], embedding["state"]]
    status = "healthy" if all(s == "closed" for s in states) else "degraded"

    return SearchHealthResponse(
        status=status,
        providers=providers,
        configured_providers=gateway.provider_names,
        llm=llm,
        embedding=embedding,
    )
