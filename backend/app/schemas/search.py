# backend/app/schemas/search.py
"""
Pydantic schemas for the Eventa search API.

Results are returned internal-first; web results carry ``is_web_result``
and a ``source_label`` so the UI can show them as related information.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ._strict_base import StrictRequestModel

# =============================================================================
# Result Schemas
# =============================================================================


class SearchResultItem(BaseModel):
    """One internal event or web result."""

    id: Optional[str] = Field(None, description="Event ID (internal results only)")
    source: Literal["internal", "external"] = Field(..., description="Where the result came from")
    title: str
    start_at: Optional[str] = Field(None, description="ISO-8601 start, timezone-aware")
    end_at: Optional[str] = None
    venue: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    url: Optional[str] = None
    snippet: Optional[str] = None
    distance_km: Optional[float] = Field(None, description="Distance from the caller's lat/lng")
    categories: List[str] = Field(default_factory=list)
    price_free: Optional[bool] = None
    image_url: Optional[str] = None
    score: float = 0.0
    is_web_result: Optional[bool] = None
    source_label: Optional[str] = Field(None, description='e.g. "From Google events"')
    provider: Optional[str] = None


class SearchErrors(BaseModel):
    internal: Optional[str] = Field(None, description="e.g. ERR_DB_CONNECT")
    external: Optional[str] = Field(None, description="e.g. ERR_EXT_TIMEOUT, RATE_LIMITED")


class ProviderStats(BaseModel):
    provider: str
    accepted: int = 0
    dropped_schema: int = 0
    dropped_safety: int = 0
    latency_ms: int = 0
    error: Optional[str] = None


class ExternalStats(BaseModel):
    providers: List[ProviderStats] = Field(default_factory=list)
    total_accepted: int = 0
    total_dropped_schema: int = 0
    total_dropped_safety: int = 0


class DualSearchStats(BaseModel):
    deduped: int = Field(0, description="Web results dropped as duplicates of Eventa events")
    external_stats: ExternalStats


class ResolvedQuery(BaseModel):
    """How the query was understood."""

    normalized: str
    language: str
    category: Optional[str] = None
    city: Optional[str] = None
    date_range: Optional[Dict[str, str]] = None


# =============================================================================
# Responses
# =============================================================================


class DualSearchResponse(BaseModel):
    results: List[SearchResultItem]
    count: int
    internal_count: int
    external_count: int
    latency_ms: int
    message: Optional[str] = Field(None, description="User-facing degradation notice")
    error_code: Optional[str] = Field(None, description="ERR_BOTH_DOWN when both sides failed")
    errors: SearchErrors
    stats: DualSearchStats
    query: ResolvedQuery


class InternalSearchResponse(BaseModel):
    results: List[SearchResultItem]
    count: int
    latency_ms: int = 0
    fallback_stage: Optional[str] = Field(
        None, description='"without_date" or "entities_only" when filters were relaxed'
    )
    error: Optional[str] = None


class ExternalSearchResponse(BaseModel):
    results: List[SearchResultItem]
    count: int
    stats: ExternalStats
    errors: Dict[str, str] = Field(default_factory=dict, description="provider -> error code")


# =============================================================================
# Intent
# =============================================================================


class IntentRequest(StrictRequestModel):
    text: str = Field(..., max_length=500, description="Free text typed or spoken by the user")
    ui_lang: Literal["en", "el", "it", "es", "fr"] = Field("en", description="UI language for the paraphrase")


class IntentEntities(BaseModel):
    title: Optional[str] = None
    type: Optional[str] = None
    city: Optional[str] = None
    venue: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    description: Optional[str] = None
    date_iso: Optional[str] = Field(None, description="YYYY-MM-DD")
    time_24h: Optional[str] = Field(None, description="HH:MM")


class IntentValidation(BaseModel):
    past_date: bool = False
    invalid_date: bool = False
    time_conflicts: Optional[List[str]] = None


class IntentResponse(BaseModel):
    intent: Literal["search", "create", "unclear"]
    confidence: float = Field(..., ge=0, le=1)
    display_lang: str
    extracted: IntentEntities
    paraphrase: str
    missing_fields: List[str] = Field(default_factory=list)
    validation: IntentValidation
    parsing_mode: Literal["llm", "regex"]
    error_code: Optional[str] = None
    latency_ms: int = 0


# =============================================================================
# Health
# =============================================================================


class SearchHealthResponse(BaseModel):
    status: str
    providers: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="provider -> {rate_limit, circuit}"
    )
    configured_providers: List[str] = Field(default_factory=list)
    llm: Dict[str, Any] = Field(default_factory=dict)
    embedding: Dict[str, Any] = Field(default_factory=dict)
