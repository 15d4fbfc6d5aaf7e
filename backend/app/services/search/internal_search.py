# backend/app/services/search/internal_search.py
"""
Internal (Eventa database) search.

Flow:
1. Build typed filters from the extracted entities (visibility, date window
   expanded by a tolerance, category, city, venue, free text, geo)
2. Fetch candidates; walk the fallback ladder when nothing matches:
   no date filter (future-only floor) -> entity filters only.
   On Postgres the query itself is ordered by hybrid lexical/semantic rank,
   then distance, then start time; elsewhere the whole matching pool (up to
   unranked_candidate_pool) is fetched so nothing relevant is cut off early
3. Drop wrong-country hits for ambiguous city names
4. In-process relevance re-score, truncated to the limit

Datastore errors never escape: they become ``error="ERR_DB_CONNECT"``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta, timezone
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from openai import OpenAIError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.enums import ResultSource
from app.core.exceptions import RepositoryException
from app.database import SessionLocal, with_db_retry
from app.models.event import Event
from app.repositories.event_search_repository import EventSearchRepository, RankingInputs, ScoredEvent
from app.services.search.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError
from app.services.search.config import SearchConfig, get_search_config
from app.services.search.date_parser import DateRange, home_now, localize_home, resolve_date_range
from app.services.search.embedding_provider import EmbeddingProvider, create_embedding_provider
from app.services.search.errors import SearchErrorCode
from app.services.search.filters import (
    CategoryFilter,
    CityFilter,
    DateRangeFilter,
    FutureOnlyFilter,
    GeoFilter,
    SearchFilter,
    TextFilter,
    VenueFilter,
    VisibilityFilter,
    describe,
    entity_filters,
    haversine_km,
    without,
)
from app.services.search.location_guard import (
    AMBIGUOUS_CITIES,
    CITY_VARIATIONS,
    canonical_country,
    city_names,
    countries_match,
    detect_country,
)
from app.services.search.metrics import record_openai_latency
from app.services.search.query_mapper import SearchEntities, topical_terms
from app.services.search.ranking_service import RelevanceContext, RelevanceScorer, describe_scores
from app.services.search.result_types import SearchResult
from app.services.search.text_normalizer import fold_accents, get_category_synonyms

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 25.0


@dataclass
class InternalSearchOutcome:
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[str] = None
    fallback_stage: Optional[str] = None
    degraded_reasons: List[str] = field(default_factory=list)
    window: Optional[DateRange] = None
    latency_ms: int = 0


def resolve_window(entities: SearchEntities, now: Optional[datetime] = None) -> Optional[DateRange]:
    """Requested window: explicit ISO date (+ duration) wins over the relative phrase."""
    if entities.date_iso:
        try:
            day = date.fromisoformat(entities.date_iso)
        except ValueError:
            day = None
        if day is not None:
            last = day + timedelta(days=max(1, entities.duration_days) - 1)
            return DateRange(
                localize_home(datetime.combine(day, dt_time.min)),
                localize_home(datetime.combine(last, dt_time(23, 59, 59))),
                entities.date_iso,
            )
    if entities.date_phrase:
        return resolve_date_range(entities.date_phrase, now=now)
    return None


def _city_variations(city: str) -> Tuple[str, ...]:
    canonical = city_names(city)[0]
    spellings = [canonical, *CITY_VARIATIONS.get(canonical, [])]
    # Two-letter aliases ("la", "sf") would match almost any address
    return tuple(s for s in spellings if len(s) > 2 and fold_accents(s) != fold_accents(city))


def _rounded(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive UTC values
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def event_to_result(event: Event, distance_km: Optional[float] = None) -> SearchResult:
    categories = list(event.categories or [])
    if event.category is not None and event.category.value not in categories:
        categories.append(event.category.value)
    description = event.description or ""
    return SearchResult(
        source=ResultSource.INTERNAL,
        id=event.id,
        title=event.title,
        start_at=_aware(event.start_at),
        end_at=_aware(event.end_at),
        venue=event.venue_name,
        address=event.address,
        city=event.city,
        country=event.country,
        lat=event.lat,
        lng=event.lng,
        url=event.external_url,
        snippet=(description[:277] + "...") if len(description) > 280 else (description or None),
        distance_km=distance_km,
        categories=categories,
        price_free=bool(event.price_free),
        image_url=event.image_url,
    )


def _in_country(event: Event, expected: str) -> bool:
    if event.country:
        return countries_match(event.country, expected)
    # No country column: keep unless the address names a different one
    mentioned = detect_country(event.address)
    return mentioned is None or mentioned == expected


class InternalSearchEngine:
    """
    Hybrid search over the events table.

    Usage:
        engine = InternalSearchEngine()
        outcome = await engine.search("jazz", SearchEntities(city="Melbourne"))
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        embedding_breaker: Optional[CircuitBreaker] = None,
        config: Optional[SearchConfig] = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self.config = config or get_search_config()
        self.embedding_provider = embedding_provider or create_embedding_provider()
        self.embedding_breaker = embedding_breaker or CircuitBreaker(
            name="embedding", config=CircuitBreakerConfig()
        )
        self.scorer = RelevanceScorer(self.config)

    def build_filters(
        self,
        query: str,
        entities: SearchEntities,
        window: Optional[DateRange],
        now: Optional[datetime] = None,
    ) -> List[SearchFilter]:
        reference = home_now(now)
        filters: List[SearchFilter] = [VisibilityFilter()]

        if window is not None:
            tolerance = timedelta(hours=self.config.date_tolerance_hours)
            filters.append(DateRangeFilter(start=window.start - tolerance, end=window.end + tolerance))
        else:
            filters.append(FutureOnlyFilter(now=reference))

        if entities.category is not None or entities.category_keywords:
            filters.append(
                CategoryFilter(category=entities.category, keywords=tuple(entities.category_keywords))
            )
        if entities.city:
            filters.append(
                CityFilter(
                    city=entities.city,
                    country=entities.country,
                    variations=_city_variations(entities.city),
                )
            )
        if entities.venue:
            filters.append(VenueFilter(text=entities.venue))

        terms = topical_terms(query, entities)
        if terms:
            folded = tuple(dict.fromkeys(fold_accents(t) for t in terms))
            filters.append(TextFilter(terms=tuple(terms), folded_terms=folded))

        if entities.lat is not None and entities.lng is not None:
            filters.append(
                GeoFilter(
                    lat=entities.lat,
                    lng=entities.lng,
                    radius_km=entities.radius_km or DEFAULT_RADIUS_KM,
                )
            )
        return filters

    async def search(
        self,
        query: str,
        entities: Optional[SearchEntities] = None,
        filters: Optional[Sequence[SearchFilter]] = None,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> InternalSearchOutcome:
        """
        Search public events.

        Args:
            query: Raw user query (used for free-text terms and ranking)
            entities: Extracted constraints; an empty set means text-only search
            filters: Explicit filters; built from ``entities`` when omitted
            now: Reference time (tests inject it)
            limit: Maximum results (defaults to config.internal_result_limit)

        Returns:
            InternalSearchOutcome; ``error`` is ERR_DB_CONNECT on datastore failure
        """
        start = time.perf_counter()
        entities = entities or SearchEntities()
        limit = limit or self.config.internal_result_limit
        window = resolve_window(entities, now)
        active = list(filters) if filters is not None else self.build_filters(query, entities, window, now)
        if not any(isinstance(f, VisibilityFilter) for f in active):
            active.insert(0, VisibilityFilter())

        outcome = InternalSearchOutcome(window=window)
        session = self._session_factory()
        try:
            repo = EventSearchRepository(session)
            ranking: Optional[RankingInputs] = None
            if repo.supports_hybrid_rank and query.strip():
                ranking = RankingInputs(
                    query_text=query,
                    embedding=await self._query_embedding(query, outcome.degraded_reasons),
                    lexical_weight=self.config.lexical_weight,
                    semantic_weight=self.config.semantic_weight,
                    origin=(entities.lat, entities.lng) if entities.has_coordinates else None,
                )
                candidate_limit = limit * self.config.ranked_candidate_multiplier
            else:
                candidate_limit = max(limit, self.config.unranked_candidate_pool)

            rows, stage = await asyncio.to_thread(
                self._fetch_with_fallback, repo, active, entities, home_now(now), candidate_limit, ranking
            )
            outcome.fallback_stage = stage

            rows = self._disambiguate(rows, entities)

            results: List[SearchResult] = []
            hybrid: Dict[str, float] = {}
            for row in rows:
                result = event_to_result(row.event, distance_km=_rounded(row.distance_km))
                if result.distance_km is None and entities.has_coordinates and None not in (result.lat, result.lng):
                    result.distance_km = _rounded(haversine_km(entities.lat, entities.lng, result.lat, result.lng))
                if result.id:
                    hybrid[result.id] = row.hybrid_score
                results.append(result)

            context = RelevanceContext(
                query=query,
                terms=topical_terms(query, entities),
                category_labels=self._category_labels(entities),
                city=entities.city,
                window_start=window.start if window else None,
                window_end=window.end if window else None,
                radius_km=(entities.radius_km or DEFAULT_RADIUS_KM) if entities.has_coordinates else None,
            )
            outcome.results = self.scorer.rank(results, context, hybrid)[:limit]
        except (RepositoryException, SQLAlchemyError) as e:
            logger.error(f"Internal search failed: {str(e)}")
            outcome.results = []
            outcome.error = SearchErrorCode.DB_CONNECT.value
        finally:
            await asyncio.to_thread(session.close)

        outcome.latency_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(
            f"Internal search: {len(outcome.results)} results in {outcome.latency_ms}ms "
            f"(fallback={outcome.fallback_stage}, degraded={outcome.degraded_reasons}, "
            f"scores={describe_scores(outcome.results)})"
        )
        return outcome

    def _fetch_with_fallback(
        self,
        repo: EventSearchRepository,
        filters: List[SearchFilter],
        entities: SearchEntities,
        now: datetime,
        limit: int,
        ranking: Optional[RankingInputs] = None,
    ) -> Tuple[List[ScoredEvent], Optional[str]]:
        def fetch(active: List[SearchFilter]) -> List[ScoredEvent]:
            return with_db_retry("find_events", lambda: repo.find_events(active, limit, ranking))

        rows = fetch(filters)
        if rows:
            return rows, None

        if any(isinstance(f, DateRangeFilter) for f in filters):
            relaxed = without(filters, DateRangeFilter, FutureOnlyFilter) + [FutureOnlyFilter(now=now)]
            logger.info(f"No results, retrying without date filter: {describe(relaxed)}")
            rows = fetch(relaxed)
            if rows:
                return rows, "without_date"

        if entities.has_explicit_entities:
            entity_only: List[SearchFilter] = [VisibilityFilter(), FutureOnlyFilter(now=now)]
            entity_only.extend(entity_filters(filters))
            logger.info(f"No results, retrying with entity filters only: {describe(entity_only)}")
            rows = fetch(entity_only)
            if rows:
                return rows, "entities_only"

        return [], None

    def _disambiguate(self, rows: List[ScoredEvent], entities: SearchEntities) -> List[ScoredEvent]:
        """Drop wrong-country events when the city name is ambiguous or a country was given."""
        if not entities.city:
            return rows
        expected = canonical_country(entities.country) or AMBIGUOUS_CITIES.get(fold_accents(entities.city))
        if expected is None:
            return rows

        kept = [row for row in rows if _in_country(row.event, expected)]
        if len(kept) != len(rows):
            logger.info(f"City disambiguation ({entities.city} -> {expected}): {len(rows)} -> {len(kept)}")
        return kept

    async def _query_embedding(self, query: str, degraded: List[str]) -> Optional[List[float]]:
        """Query embedding, or None (lexical-only) when unavailable."""
        timeout_s = self.config.embedding_timeout_ms / 1000.0
        start = time.perf_counter()
        try:
            embedding = await asyncio.wait_for(
                self.embedding_breaker.call(self.embedding_provider.embed, query),
                timeout=timeout_s,
            )
            record_openai_latency("embeddings", int((time.perf_counter() - start) * 1000))
            return embedding
        except asyncio.TimeoutError:
            logger.warning(f"Query embedding timed out after {timeout_s:.1f}s; lexical only")
        except CircuitOpenError:
            logger.info("Embedding circuit is OPEN; lexical only")
        except OpenAIError as e:
            logger.warning(f"Embedding API error: {e}; lexical only")
        except Exception as e:
            logger.error(f"Unexpected embedding error: {e}", exc_info=True)
        degraded.append("embedding_unavailable")
        return None

    @staticmethod
    def _category_labels(entities: SearchEntities) -> List[str]:
        labels: List[str] = []
        for keyword in entities.category_keywords:
            for label in [keyword, *get_category_synonyms(keyword)]:
                if label not in labels:
                    labels.append(label)
        if entities.category is not None:
            labels.append(entities.category.value)
        return labels
