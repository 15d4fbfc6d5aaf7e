# backend/app/api/dependencies/search.py
"""
Search dependencies.

Rate-limit and circuit-breaker state must outlive a single request, so the
registry, gateway and breakers are process-wide singletons built once and
injected into the services. Tests override these with fresh instances.
"""

from functools import lru_cache
import logging

from ...services.search.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from ...services.search.config import get_search_config
from ...services.search.dual_search_service import DualSearchService
from ...services.search.embedding_provider import create_embedding_provider
from ...services.search.external_gateway import ExternalProviderGateway
from ...services.search.intent_extractor import IntentExtractor
from ...services.search.internal_search import InternalSearchEngine
from ...services.search.providers import (
    ProviderHealthRegistry,
    create_providers,
    publish_breaker_state,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_provider_health_registry() -> ProviderHealthRegistry:
    """Per-provider limiter/breaker state shared by every request."""
    return ProviderHealthRegistry(config=get_search_config())


@lru_cache(maxsize=1)
def get_external_gateway() -> ExternalProviderGateway:
    providers = create_providers()
    logger.info(f"External providers enabled: {sorted(providers) or 'none'}")
    return ExternalProviderGateway(get_provider_health_registry(), providers, config=get_search_config())


@lru_cache(maxsize=1)
def get_llm_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        name="openai_intent",
        config=CircuitBreakerConfig(failure_threshold=5, cooldown_seconds=60.0),
        on_state_change=publish_breaker_state,
    )


@lru_cache(maxsize=1)
def get_embedding_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        name="openai_embedding",
        config=CircuitBreakerConfig(failure_threshold=5, cooldown_seconds=60.0),
        on_state_change=publish_breaker_state,
    )


@lru_cache(maxsize=1)
def get_intent_extractor() -> IntentExtractor:
    return IntentExtractor(config=get_search_config(), breaker=get_llm_breaker())


@lru_cache(maxsize=1)
def get_internal_search_engine() -> InternalSearchEngine:
    return InternalSearchEngine(
        embedding_provider=create_embedding_provider(),
        embedding_breaker=get_embedding_breaker(),
        config=get_search_config(),
    )


def get_dual_search_service() -> DualSearchService:
    """Get DualSearchService wired to the shared engine, gateway and extractor."""
    return DualSearchService(
        internal_engine=get_internal_search_engine(),
        gateway=get_external_gateway(),
        intent_extractor=get_intent_extractor(),
    )


def reset_search_dependencies() -> None:
    """Drop cached singletons (config changes, tests)."""
    for factory in (
        get_provider_health_registry,
        get_external_gateway,
        get_llm_breaker,
        get_embedding_breaker,
        get_intent_extractor,
        get_internal_search_engine,
    ):
        factory.cache_clear()
