# backend/app/services/search/deduplication.py
"""
Cross-source deduplication and merge.

Internal (Eventa) events are authoritative: they are never dropped or
reordered. External results that fuzzy-match an internal event on the same
date are removed before merging.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from app.core.enums import ResultSource
from app.services.search.config import get_search_config
from app.services.search.fuzzy import normalize_for_dedup, within_distance
from app.services.search.result_types import SearchResult

logger = logging.getLogger(__name__)


@dataclass
class DedupResult:
    internal: List[SearchResult] = field(default_factory=list)
    external: List[SearchResult] = field(default_factory=list)
    dropped_count: int = 0


@dataclass(frozen=True)
class _Key:
    title: str
    date: Optional[str]
    place: str


def _key(result: SearchResult) -> _Key:
    return _Key(
        title=normalize_for_dedup(result.title),
        date=result.event_date,
        place=normalize_for_dedup(result.venue or result.city or ""),
    )


def _is_duplicate(candidate: _Key, internal_keys: Sequence[_Key], title_distance: int, venue_distance: int) -> bool:
    for existing in internal_keys:
        if candidate.date is None or candidate.date != existing.date:
            continue
        if within_distance(candidate.title, existing.title, title_distance):
            return True
        if candidate.place == existing.place and within_distance(
            candidate.title, existing.title, venue_distance
        ):
            return True
    return False


def deduplicate(
    internal: Sequence[SearchResult],
    external: Sequence[SearchResult],
    title_distance: Optional[int] = None,
    venue_title_distance: Optional[int] = None,
) -> DedupResult:
    """
    Drop external results that duplicate an internal event.

    An external item is a duplicate when it falls on the same date as an
    internal event and either its normalized title is within 2 edits, or the
    venue/city strings are equal and the title is within 5 edits.
    """
    config = get_search_config()
    max_title = config.dedup_title_distance if title_distance is None else title_distance
    max_venue = config.dedup_venue_title_distance if venue_title_distance is None else venue_title_distance

    internal_keys = [_key(r) for r in internal]
    survivors: List[SearchResult] = []
    dropped = 0
    for item in external:
        if _is_duplicate(_key(item), internal_keys, max_title, max_venue):
            dropped += 1
            logger.debug(f"Dropped duplicate web result: {item.title}")
            continue
        survivors.append(item)

    return DedupResult(internal=list(internal), external=survivors, dropped_count=dropped)


def filter_by_time_relevance(
    external: Iterable[SearchResult],
    target_start: Optional[datetime],
    days: Optional[int] = None,
) -> List[SearchResult]:
    """Keep undated results and results within ``days`` of the target start."""
    items = list(external)
    if target_start is None:
        return items
    window = timedelta(days=get_search_config().time_relevance_days if days is None else days)

    kept: List[SearchResult] = []
    for item in items:
        if item.start_at is None:
            kept.append(item)
            continue
        start = item.start_at
        if start.tzinfo is None or target_start.tzinfo is None:
            start = start.replace(tzinfo=None)
            delta = abs(start - target_start.replace(tzinfo=None))
        else:
            delta = abs(start - target_start)
        if delta <= window:
            kept.append(item)

    if len(kept) != len(items):
        logger.info(f"Filtered stale web results by time: {len(items)} -> {len(kept)}")
    return kept


def merge_results(
    internal: Sequence[SearchResult], external: Sequence[SearchResult]
) -> Tuple[List[SearchResult], int, int]:
    """
    Internal first, then external, each tagged with its source.

    Returns:
        (merged, internal_count, external_count)
    """
    merged = [replace(r, source=ResultSource.INTERNAL) for r in internal]
    merged.extend(replace(r, source=ResultSource.EXTERNAL) for r in external)
    return merged, len(internal), len(external)
