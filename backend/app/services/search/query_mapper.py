# backend/app/services/search/query_mapper.py
"""
Maps a raw query (+ extracted intent + explicit request params) to the
parameter sets the internal engine and the external providers consume.

This is the only place that decides which city, date window, category and
free-text terms a search uses.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import TYPE_CHECKING, List, Optional

from app.core.enums import EventCategory
from app.services.search.date_parser import DateRange, resolve_date_range
from app.services.search.location_guard import city_names
from app.services.search.providers import ProviderParams
from app.services.search.text_normalizer import NormalizedQuery, map_to_event_category, normalize_query

if TYPE_CHECKING:
    from app.services.search.intent_extractor import IntentResult

logger = logging.getLogger(__name__)

# Words that carry no topical meaning for free-text matching
TEXT_STOP_WORDS = frozenset(
    {
        "a", "an", "and", "at", "events", "event", "for", "find", "in", "me", "near",
        "next", "of", "on", "or", "show", "the", "this", "to", "today", "tomorrow",
        "tonight", "week", "weekend", "month", "what's", "whats", "happening",
    }
)

PROVIDER_RESULT_LIMIT = 10


@dataclass
class SearchEntities:
    """Structured constraints extracted from a query."""

    keywords: List[str] = field(default_factory=list)
    category: Optional[EventCategory] = None
    category_keywords: List[str] = field(default_factory=list)
    city: Optional[str] = None
    country: Optional[str] = None
    venue: Optional[str] = None
    date_iso: Optional[str] = None
    date_phrase: Optional[str] = None
    duration_days: int = 1
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_km: Optional[float] = None

    @property
    def has_explicit_entities(self) -> bool:
        return bool(self.city or self.venue or self.category or self.category_keywords)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


@dataclass
class SearchPlan:
    query: str
    normalized: NormalizedQuery
    entities: SearchEntities
    provider_params: ProviderParams
    window: Optional[DateRange] = None

    def describe(self) -> dict:
        return {
            "normalized": self.normalized.normalized,
            "language": self.normalized.language,
            "category": self.entities.category.value if self.entities.category else None,
            "city": self.entities.city,
            "date_range": self.window.to_dict() if self.window else None,
        }


def topical_terms(query: str, entities: SearchEntities) -> List[str]:
    """Query tokens minus stop words, the city, venue, country and date phrase."""
    excluded = set(TEXT_STOP_WORDS)
    for value in (entities.city, entities.country, entities.venue, entities.date_phrase):
        if value:
            excluded.update(value.lower().split())
    if entities.city:
        excluded.update(part for name in city_names(entities.city) for part in name.split())

    terms: List[str] = []
    for token in normalize_query(query).keywords + [k.lower() for k in entities.keywords]:
        if token and token not in excluded and token not in terms and not token.isdigit():
            terms.append(token)
    return terms


def build_search_plan(
    query: str,
    intent: Optional["IntentResult"] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_km: Optional[float] = None,
    date: Optional[str] = None,
    category: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SearchPlan:
    """
    Combine explicit request params with what the intent extractor found.

    Explicit ``city``/``country`` always win over extracted ones. A relative
    date phrase that resolves to a window ("this weekend") is kept as a
    phrase so the whole window is searched; otherwise the ISO date is used.
    """
    extracted = intent.extracted if intent is not None else None
    language = intent.display_lang if intent is not None else "en"
    normalized = normalize_query(query, lang=language)

    category_keyword = category or (extracted.type if extracted is not None else None)
    resolved_category = map_to_event_category(category_keyword) if category_keyword else None
    if resolved_category is None and normalized.categories:
        resolved_category = normalized.categories[0]

    date_phrase = date or (extracted.date if extracted is not None else None)
    window = resolve_date_range(date_phrase, now=now) if date_phrase else None
    date_iso = None
    if window is None:
        date_phrase = None
        date_iso = extracted.date_iso if extracted is not None else None

    entities = SearchEntities(
        category=resolved_category,
        category_keywords=[category_keyword.lower()] if category_keyword else [],
        city=(city or (extracted.city if extracted is not None else None) or None),
        country=country or None,
        venue=extracted.venue if extracted is not None else None,
        date_iso=date_iso,
        date_phrase=date_phrase,
        lat=lat,
        lng=lng,
        radius_km=radius_km,
    )
    if window is None and date_iso:
        window = resolve_date_range(date_iso, now=now)

    terms = topical_terms(query, entities)
    entities.keywords = terms

    provider_params = ProviderParams(
        keywords=terms or list(entities.category_keywords),
        category=resolved_category.value if resolved_category else None,
        city=entities.city,
        country=entities.country,
        date=window.start_date.isoformat() if window else None,
        limit=PROVIDER_RESULT_LIMIT,
    )
    logger.debug(
        f"Search plan for '{query}': city={entities.city} category={resolved_category} "
        f"window={window.to_dict() if window else None} terms={terms}"
    )
    return SearchPlan(
        query=query,
        normalized=normalized,
        entities=entities,
        provider_params=provider_params,
        window=window,
    )
