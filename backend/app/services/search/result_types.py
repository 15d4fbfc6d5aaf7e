# backend/app/services/search/result_types.py
"""
Shared result shapes for internal search, external providers and the merge step.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.enums import ResultSource
from app.services.search.date_parser import home_timezone


@dataclass
class SearchResult:
    """One event-like hit, internal or external, in the common response shape."""

    source: ResultSource
    title: str
    id: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    venue: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    url: Optional[str] = None
    snippet: Optional[str] = None
    distance_km: Optional[float] = None
    categories: List[str] = field(default_factory=list)
    price_free: Optional[bool] = None
    image_url: Optional[str] = None
    score: float = 0.0
    source_label: Optional[str] = None
    provider: Optional[str] = None
    is_online: bool = False

    @property
    def is_web_result(self) -> bool:
        return self.source == ResultSource.EXTERNAL

    @property
    def event_date(self) -> Optional[str]:
        """Calendar date of the start in the home timezone (ISO)."""
        if self.start_at is None:
            return None
        start = self.start_at
        if start.tzinfo is None:
            return start.date().isoformat()
        return start.astimezone(home_timezone()).date().isoformat()

    @property
    def location_text(self) -> str:
        return " ".join(p for p in (self.venue, self.address, self.city, self.country) if p)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "source": self.source.value,
            "title": self.title,
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "venue": self.venue,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "lat": self.lat,
            "lng": self.lng,
            "url": self.url,
            "snippet": self.snippet,
            "distance_km": self.distance_km,
            "categories": list(self.categories),
            "price_free": self.price_free,
            "image_url": self.image_url,
            "score": round(self.score, 4),
            "is_web_result": self.is_web_result,
        }
        if self.is_web_result:
            payload["source_label"] = self.source_label
            payload["provider"] = self.provider
        return payload


@dataclass
class ProviderCallResult:
    """Outcome of one external provider call."""

    provider: str
    results: List[SearchResult] = field(default_factory=list)
    accepted: int = 0
    dropped_schema: int = 0
    dropped_safety: int = 0
    latency_ms: int = 0
    error: Optional[str] = None

    def stats(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "accepted": self.accepted,
            "dropped_schema": self.dropped_schema,
            "dropped_safety": self.dropped_safety,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }
