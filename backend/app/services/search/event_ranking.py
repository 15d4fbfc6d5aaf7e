# backend/app/services/search/event_ranking.py
"""
Event-first ranking for event-intent queries.

Specific, dated, located events are pushed up; aggregator/directory pages,
wrong-country hits and bare venue homepages are pushed down. Magnitudes live
in SearchConfig.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
import logging
from typing import List, Optional, Sequence, Tuple

from app.services.search.config import SearchConfig, get_search_config
from app.services.search.date_parser import home_now
from app.services.search.location_guard import countries_match
from app.services.search.patterns import (
    ACTIVITY_INTENT_PATTERNS,
    AGGREGATOR_PHRASES,
    AGGREGATOR_URL_FRAGMENTS,
    SPECIFIC_DATE_TEXT,
    TIME_INTENT_PATTERNS,
    TRAVEL_INTENT_PATTERNS,
    VENUE_HOMEPAGE_PHRASES,
)
from app.services.search.result_types import SearchResult

logger = logging.getLogger(__name__)

# Sorts undated results after every dated one
_FAR_FUTURE = float("inf")


def has_time_intent(query: Optional[str]) -> bool:
    return bool(query) and any(p.search(query) for p in TIME_INTENT_PATTERNS)


def is_event_intent_query(query: Optional[str]) -> bool:
    """
    Whether a query asks about dated/located happenings.

    True when it carries a time phrase ("this weekend", "march 5"), an
    activity phrase ("live music", "markets") or travel phrasing ("near me").
    """
    if not query or not query.strip():
        return False
    text = query.strip()
    return (
        has_time_intent(text)
        or any(p.search(text) for p in ACTIVITY_INTENT_PATTERNS)
        or any(p.search(text) for p in TRAVEL_INTENT_PATTERNS)
    )


def _full_text(result: SearchResult) -> str:
    return f"{result.title} {result.snippet or ''}".lower()


def _mentions_specific_date(text: str) -> bool:
    return any(p.search(text) for p in SPECIFIC_DATE_TEXT)


def is_aggregator(result: SearchResult) -> bool:
    text = _full_text(result)
    url = (result.url or "").lower()
    if any(p.search(text) for p in AGGREGATOR_PHRASES):
        return True
    if any(fragment in url for fragment in AGGREGATOR_URL_FRAGMENTS):
        return True
    return "timeout.com" in url and "best" in text


def is_venue_homepage(result: SearchResult) -> bool:
    text = _full_text(result)
    if result.start_at is not None or _mentions_specific_date(text):
        return False
    return any(p.search(text) for p in VENUE_HOMEPAGE_PHRASES)


def _city_matches(result_city: Optional[str], target_city: Optional[str]) -> bool:
    if not result_city or not target_city:
        return False
    a, b = result_city.lower().strip(), target_city.lower().strip()
    return a in b or b in a


def score_event_result(
    result: SearchResult,
    query: str,
    target_city: Optional[str] = None,
    target_country: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[SearchConfig] = None,
) -> float:
    """Additive event-specificity score (penalties first, then boosts)."""
    cfg = config or get_search_config()
    score = 0.0

    if is_aggregator(result):
        score += cfg.aggregator_penalty

    if target_country and result.country and not countries_match(result.country, target_country):
        score += cfg.country_mismatch_penalty

    if is_venue_homepage(result):
        score += cfg.venue_homepage_penalty

    has_place = bool(result.venue or result.address)
    has_date = result.start_at is not None or _mentions_specific_date(_full_text(result))
    if has_place and has_date:
        score += cfg.venue_date_boost

    if _city_matches(result.city, target_city):
        score += cfg.city_match_boost

    if has_time_intent(query) and result.start_at is not None:
        reference = home_now(now)
        start = result.start_at if result.start_at.tzinfo else result.start_at.replace(tzinfo=reference.tzinfo)
        if reference < start <= reference + timedelta(days=cfg.upcoming_window_days):
            score += cfg.upcoming_boost

    return score


def _start_key(result: SearchResult) -> float:
    return result.start_at.timestamp() if result.start_at is not None else _FAR_FUTURE


def sort_by_start(results: Sequence[SearchResult]) -> List[SearchResult]:
    """Ascending start; undated results last, original order among equals."""
    return sorted(results, key=_start_key)


def rank_event_results(
    results: Sequence[SearchResult],
    query: str,
    target_city: Optional[str] = None,
    target_country: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[SearchResult]:
    """
    Rank results event-first.

    Non-event-intent queries are only sorted by start. Otherwise results are
    scored and sorted by descending score, then ascending start.
    """
    if not is_event_intent_query(query):
        return sort_by_start(results)

    config = get_search_config()
    scored: List[Tuple[float, SearchResult]] = [
        (score_event_result(r, query, target_city, target_country, now, config), r) for r in results
    ]
    scored.sort(key=lambda item: (-item[0], _start_key(item[1])))
    return [replace(result, score=score) for score, result in scored]
