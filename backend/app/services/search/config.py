# backend/app/services/search/config.py
"""
Configuration for the Eventa search pipeline.

Provides runtime-configurable settings for:
- LLM intent parsing and embedding models/timeouts
- Hybrid lexical/semantic weighting
- External provider timeout, rate limit and circuit breaker thresholds
- Dedup distances and ranking weights/penalties

The weighting constants were tuned empirically; they live here so they can be
adjusted per deployment (env vars) or temporarily overridden at runtime.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
import os
from threading import Lock
from typing import Any, Dict, Optional


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class SearchConfig:
    """Configuration for Eventa search."""

    # Intent parsing model
    parsing_model: str = "gpt-4o-mini"
    parsing_timeout_ms: int = 2500

    # Embedding model (for vector search)
    embedding_model: str = "text-embedding-3-small"
    embedding_timeout_ms: int = 1500
    embedding_dimensions: int = 1536

    max_retries: int = 1

    # Hybrid rank fusion
    lexical_weight: float = 0.4
    semantic_weight: float = 0.6

    # Internal search
    internal_result_limit: int = 20
    # Ranked (Postgres) fetch over-selects this many times the limit; without
    # in-query ranking every match up to the pool size is re-scored in process
    ranked_candidate_multiplier: int = 3
    unranked_candidate_pool: int = 500
    date_tolerance_hours: int = 12

    # External gateway
    provider_timeout_ms: int = 1500
    rate_limit_max_calls: int = 3
    rate_limit_window_seconds: float = 10.0
    breaker_failure_threshold: int = 5
    breaker_cooldown_seconds: float = 120.0

    # Merge / dedup
    dedup_title_distance: int = 2
    dedup_venue_title_distance: int = 5
    time_relevance_days: int = 30

    # Event-intent ranking
    aggregator_penalty: float = -5.0
    country_mismatch_penalty: float = -6.0
    venue_homepage_penalty: float = -3.0
    venue_date_boost: float = 5.0
    city_match_boost: float = 4.0
    upcoming_boost: float = 3.0
    upcoming_window_days: int = 30

    # Internal relevance re-scoring
    title_exact_weight: float = 10.0
    title_all_terms_weight: float = 6.0
    title_partial_weight: float = 4.0
    category_exact_weight: float = 4.0
    category_partial_weight: float = 2.0
    description_weight: float = 3.0
    city_exact_weight: float = 3.0
    city_partial_weight: float = 1.5
    date_in_window_bonus: float = 5.0
    date_penalty_per_day: float = 0.25
    date_penalty_cap: float = 4.0
    hybrid_rank_weight: float = 5.0
    proximity_weight: float = 2.0

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """Load configuration from environment variables."""
        return cls(
            parsing_model=os.getenv("OPENAI_PARSING_MODEL", "gpt-4o-mini"),
            parsing_timeout_ms=_env_int("OPENAI_PARSING_TIMEOUT_MS", 2500),
            embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_timeout_ms=_env_int("OPENAI_EMBEDDING_TIMEOUT_MS", 1500),
            embedding_dimensions=_env_int("EMBEDDING_DIMENSIONS", 1536),
            max_retries=_env_int("OPENAI_MAX_RETRIES", 1),
            lexical_weight=_env_float("SEARCH_LEXICAL_WEIGHT", 0.4),
            semantic_weight=_env_float("SEARCH_SEMANTIC_WEIGHT", 0.6),
            internal_result_limit=_env_int("SEARCH_INTERNAL_LIMIT", 20),
            unranked_candidate_pool=_env_int("SEARCH_UNRANKED_CANDIDATE_POOL", 500),
            date_tolerance_hours=_env_int("SEARCH_DATE_TOLERANCE_HOURS", 12),
            provider_timeout_ms=_env_int("EXTERNAL_PROVIDER_TIMEOUT_MS", 1500),
            rate_limit_max_calls=_env_int("EXTERNAL_RATE_LIMIT_MAX_CALLS", 3),
            rate_limit_window_seconds=_env_float("EXTERNAL_RATE_LIMIT_WINDOW_S", 10.0),
            breaker_failure_threshold=_env_int("EXTERNAL_BREAKER_THRESHOLD", 5),
            breaker_cooldown_seconds=_env_float("EXTERNAL_BREAKER_COOLDOWN_S", 120.0),
            time_relevance_days=_env_int("SEARCH_TIME_RELEVANCE_DAYS", 30),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return asdict(self)


# Thread-safe singleton pattern for config
_config: Optional[SearchConfig] = None
_config_lock = Lock()


def get_search_config() -> SearchConfig:
    """
    Get the search configuration singleton.

    Loads from environment on first access.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = SearchConfig.from_env()
    return _config


def update_search_config(**overrides: Any) -> SearchConfig:
    """
    Update search configuration at runtime.

    Changes are NOT persisted to environment - they reset on server restart.
    Unknown keys raise ValueError; None values are ignored.

    Returns:
        Updated SearchConfig
    """
    global _config
    known = {f.name for f in fields(SearchConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown search config field(s): {', '.join(unknown)}")

    with _config_lock:
        if _config is None:
            _config = SearchConfig.from_env()
        for key, value in overrides.items():
            if value is not None:
                setattr(_config, key, value)
        return _config


def reset_search_config() -> SearchConfig:
    """Reset configuration to environment defaults."""
    global _config
    with _config_lock:
        _config = SearchConfig.from_env()
        return _config
