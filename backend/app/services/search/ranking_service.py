# backend/app/services/search/ranking_service.py
"""
Secondary relevance scoring for internal search candidates.

Candidates arrive already filtered by the datastore; this pass only orders
them. Scoring formula (weights from SearchConfig):

    score = title + category + description + city + date_proximity
            + hybrid_rank_weight × hybrid_rank + proximity

    title:          exact phrase 10 | all terms 6 | partial_ratio × 4
    category:       exact 4 | partial 2
    description:    matched-term ratio × 3
    city:           exact 3 | partial 1.5
    date_proximity: +5 inside the window, else -0.25/day outside (cap -4)
    proximity:      proximity_weight × (1 - distance / radius), when a
                    distance is known

Tie-breaking: nearest first, then ascending start time, undated last.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from app.services.search.config import SearchConfig, get_search_config
from app.services.search.fuzzy import partial_ratio
from app.services.search.result_types import SearchResult
from app.services.search.text_normalizer import fold_accents

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass
class ScoreBreakdown:
    """Component scores for one candidate (kept for debugging/transparency)."""

    title: float = 0.0
    category: float = 0.0
    description: float = 0.0
    city: float = 0.0
    date: float = 0.0
    hybrid: float = 0.0
    proximity: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.title + self.category + self.description + self.city + self.date + self.hybrid + self.proximity
        )


@dataclass
class RelevanceContext:
    """What the user asked for, as seen by the scorer."""

    query: str = ""
    terms: List[str] = field(default_factory=list)
    category_labels: List[str] = field(default_factory=list)
    city: Optional[str] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    radius_km: Optional[float] = None


class RelevanceScorer:
    """
    Re-scores internal candidates.

    Usage:
        scorer = RelevanceScorer()
        ranked = scorer.rank(candidates, context, hybrid_ranks={"evt_1": 0.42})
    """

    def __init__(self, config: Optional[SearchConfig] = None) -> None:
        self.config = config or get_search_config()

    def rank(
        self,
        candidates: Sequence[SearchResult],
        context: RelevanceContext,
        hybrid_ranks: Optional[Mapping[str, float]] = None,
    ) -> List[SearchResult]:
        ranks = hybrid_ranks or {}
        scored = []
        for candidate in candidates:
            breakdown = self.score(candidate, context, ranks.get(candidate.id or "", 0.0))
            scored.append(replace(candidate, score=breakdown.total))

        scored.sort(
            key=lambda r: (
                -r.score,
                r.distance_km if r.distance_km is not None else float("inf"),
                r.start_at.timestamp() if r.start_at is not None else float("inf"),
            )
        )
        return scored

    def score(self, candidate: SearchResult, context: RelevanceContext, hybrid_rank: float = 0.0) -> ScoreBreakdown:
        return ScoreBreakdown(
            title=self._title_score(candidate.title, context),
            category=self._category_score(candidate.categories, context.category_labels),
            description=self._description_score(candidate.snippet, context.terms),
            city=self._city_score(candidate.city, context.city),
            date=self._date_score(candidate, context.window_start, context.window_end),
            hybrid=self.config.hybrid_rank_weight * max(0.0, hybrid_rank),
            proximity=self._proximity_score(candidate.distance_km, context.radius_km),
        )

    def _title_score(self, title: str, context: RelevanceContext) -> float:
        folded_title = fold_accents(title)
        phrase = fold_accents(context.query)
        if phrase and phrase in folded_title:
            return self.config.title_exact_weight
        terms = [fold_accents(t) for t in context.terms if t]
        if terms and all(t in folded_title for t in terms):
            return self.config.title_all_terms_weight
        if not phrase:
            return 0.0
        return partial_ratio(phrase, folded_title) * self.config.title_partial_weight

    def _category_score(self, categories: Sequence[str], requested: Sequence[str]) -> float:
        if not categories or not requested:
            return 0.0
        have = [fold_accents(c) for c in categories]
        want = [fold_accents(c) for c in requested]
        if any(c in want for c in have):
            return self.config.category_exact_weight
        if any(w in c or c in w for c in have for w in want):
            return self.config.category_partial_weight
        return 0.0

    def _description_score(self, description: Optional[str], terms: Sequence[str]) -> float:
        if not description or not terms:
            return 0.0
        folded = fold_accents(description)
        matched = sum(1 for t in terms if t and fold_accents(t) in folded)
        return matched / len(terms) * self.config.description_weight

    def _city_score(self, city: Optional[str], target: Optional[str]) -> float:
        if not city or not target:
            return 0.0
        a, b = fold_accents(city), fold_accents(target)
        if a == b:
            return self.config.city_exact_weight
        if a in b or b in a:
            return self.config.city_partial_weight
        return 0.0

    def _proximity_score(self, distance_km: Optional[float], radius_km: Optional[float]) -> float:
        if distance_km is None or not radius_km:
            return 0.0
        return self.config.proximity_weight * max(0.0, 1.0 - distance_km / radius_km)

    def _date_score(
        self, candidate: SearchResult, window_start: Optional[datetime], window_end: Optional[datetime]
    ) -> float:
        if candidate.start_at is None or (window_start is None and window_end is None):
            return 0.0
        start = candidate.start_at
        end = candidate.end_at or start

        if window_end is not None and start > window_end:
            days_outside = (start - window_end).total_seconds() / SECONDS_PER_DAY
        elif window_start is not None and end < window_start:
            days_outside = (window_start - end).total_seconds() / SECONDS_PER_DAY
        else:
            return self.config.date_in_window_bonus

        penalty = self.config.date_penalty_per_day * days_outside
        return -min(penalty, self.config.date_penalty_cap)


def describe_scores(results: Sequence[SearchResult]) -> Dict[str, float]:
    """id -> score, for debug logging."""
    return {r.id or r.title: round(r.score, 3) for r in results}
