# backend/app/services/search/dual_search_service.py
"""
Dual search: Eventa events first, then related results from the web.

Pipeline:
1. Intent extraction (LLM, regex fallback) -> one SearchPlan
2. Internal search and external fan-out, concurrently
3. External tail: time relevance -> location guard -> dedup against internal
4. Internal-first merge; event-first ranking of the web tail
5. Degradation messages + metrics

Partial failure never fails the request: each side's failure becomes a code
in ``errors`` and a user-facing ``message``.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from app.core.constants import DEFAULT_LANGUAGE, DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT
from app.core.exceptions import EmptyQueryException
from app.services.search.deduplication import deduplicate, filter_by_time_relevance, merge_results
from app.services.search.errors import SearchErrorCode, SearchMessages
from app.services.search.event_ranking import has_time_intent, is_event_intent_query, rank_event_results
from app.services.search.external_gateway import ExternalProviderGateway, ExternalSearchOutcome
from app.services.search.intent_extractor import IntentExtractor, IntentResult
from app.services.search.internal_search import InternalSearchEngine, InternalSearchOutcome
from app.services.search.location_guard import apply_location_guard
from app.services.search.metrics import record_dedup_dropped, record_degradation, record_search_metrics
from app.services.search.query_mapper import SearchPlan, build_search_plan

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def build_message(
    internal_error: Optional[str], external_error: Optional[str], external_load_shed: bool
) -> Optional[str]:
    """User-facing advisory for partial or total degradation."""
    if internal_error and external_error:
        return SearchMessages.BOTH_DOWN
    if internal_error:
        return SearchMessages.INTERNAL_DOWN
    if external_error or external_load_shed:
        return SearchMessages.EXTERNAL_DEGRADED
    return None


def combined_error_code(internal_error: Optional[str], external_error: Optional[str]) -> Optional[str]:
    if internal_error and external_error:
        return SearchErrorCode.BOTH_DOWN.value
    return internal_error or external_error


class DualSearchService:
    """
    Orchestrates internal + external search for one query.

    Usage:
        service = DualSearchService(engine, gateway, extractor)
        envelope = await service.search("Melbourne this weekend jazz")
    """

    def __init__(
        self,
        internal_engine: InternalSearchEngine,
        gateway: ExternalProviderGateway,
        intent_extractor: Optional[IntentExtractor] = None,
    ) -> None:
        self.internal_engine = internal_engine
        self.gateway = gateway
        self.intent_extractor = intent_extractor or IntentExtractor()

    async def search(
        self,
        query: str,
        *,
        city: Optional[str] = None,
        country: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius_km: Optional[float] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        providers: Optional[Sequence[str]] = None,
        ui_lang: str = DEFAULT_LANGUAGE,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Run a dual search and build the response envelope.

        Raises:
            EmptyQueryException: If query is empty or whitespace
        """
        if not query or not query.strip():
            raise EmptyQueryException()
        query = query.strip()
        limit = max(1, min(limit, MAX_SEARCH_LIMIT))
        start_time = time.perf_counter()
        stage_latencies: Dict[str, int] = {}

        stage_start = time.perf_counter()
        intent = await self.intent_extractor.extract(query, ui_lang=ui_lang, now=now)
        plan = build_search_plan(
            query,
            intent,
            city=city,
            country=country,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            now=now,
        )
        stage_latencies["intent"] = _elapsed_ms(stage_start)

        stage_start = time.perf_counter()
        internal_raw, external_raw = await asyncio.gather(
            self.internal_engine.search(query, plan.entities, now=now, limit=limit),
            self.gateway.fetch_all(plan.provider_params, providers),
            return_exceptions=True,
        )
        stage_latencies["retrieve"] = _elapsed_ms(stage_start)

        internal = self._settle_internal(internal_raw)
        external = self._settle_external(external_raw)
        internal_error = internal.error
        external_error = self._external_error(external, external_raw)

        stage_start = time.perf_counter()
        merged, internal_count, external_count, deduped = self._merge(query, plan, intent, internal, external, now)
        results = merged[:limit]
        internal_count = min(internal_count, len(results))
        external_count = len(results) - internal_count
        stage_latencies["merge"] = _elapsed_ms(stage_start)

        error_code = combined_error_code(internal_error, external_error)
        message = build_message(internal_error, external_error, external.load_shed)
        latency_ms = _elapsed_ms(start_time)

        record_search_metrics(latency_ms, stage_latencies, internal_count, external_count, error_code)
        record_dedup_dropped(deduped)
        record_degradation("internal", internal.degraded_reasons)
        if internal.fallback_stage:
            record_degradation("internal", [f"fallback_{internal.fallback_stage}"])

        logger.info(
            f"Dual search '{query}': {internal_count} internal + {external_count} web in {latency_ms}ms "
            f"(intent={intent.intent}/{intent.parsing_mode}, deduped={deduped}, error_code={error_code})"
        )

        return {
            "results": [r.to_dict() for r in results],
            "count": len(results),
            "internal_count": internal_count,
            "external_count": external_count,
            "latency_ms": latency_ms,
            "message": message,
            "error_code": error_code,
            "errors": {"internal": internal_error, "external": external_error},
            "stats": {"deduped": deduped, "external_stats": external.stats()},
            "query": plan.describe(),
        }

    def _merge(
        self,
        query: str,
        plan: SearchPlan,
        intent: IntentResult,
        internal: InternalSearchOutcome,
        external: ExternalSearchOutcome,
        now: Optional[datetime],
    ):
        internal_results = internal.results
        external_results = list(external.results)

        time_intent = plan.window is not None or bool(intent.extracted.time) or has_time_intent(query)
        if time_intent and plan.window is not None:
            external_results = filter_by_time_relevance(external_results, plan.window.start)

        city = plan.entities.city
        if city:
            internal_results = apply_location_guard(internal_results, city, plan.entities.country)
            external_results = apply_location_guard(external_results, city, plan.entities.country)

        dedup = deduplicate(internal_results, external_results)
        web_tail: List = dedup.external
        if is_event_intent_query(query):
            web_tail = rank_event_results(web_tail, query, city, plan.entities.country, now=now)

        merged, internal_count, external_count = merge_results(dedup.internal, web_tail)
        return merged, internal_count, external_count, dedup.dropped_count

    @staticmethod
    def _settle_internal(raw: Any) -> InternalSearchOutcome:
        if isinstance(raw, BaseException):
            logger.error(f"Internal search raised: {raw!r}", exc_info=raw)
            return InternalSearchOutcome(error=SearchErrorCode.DB_CONNECT.value)
        return raw

    @staticmethod
    def _settle_external(raw: Any) -> ExternalSearchOutcome:
        if isinstance(raw, BaseException):
            logger.error(f"External search raised: {raw!r}", exc_info=raw)
            return ExternalSearchOutcome()
        return raw

    @staticmethod
    def _external_error(outcome: ExternalSearchOutcome, raw: Any) -> Optional[str]:
        """Error code for the external side as a whole: set only when no provider delivered."""
        if isinstance(raw, BaseException):
            return SearchErrorCode.EXT_CONNECT.value
        if outcome.all_failed:
            return outcome.provider_results[0].error
        return None
