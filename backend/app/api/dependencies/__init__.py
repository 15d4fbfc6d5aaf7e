# backend/app/api/dependencies/__init__.py
"""FastAPI dependencies; search singletons live in ``search``."""

from .search import (
    get_dual_search_service,
    get_embedding_breaker,
    get_external_gateway,
    get_intent_extractor,
    get_internal_search_engine,
    get_llm_breaker,
    get_provider_health_registry,
    reset_search_dependencies,
)

__all__ = [
    "get_dual_search_service",
    "get_embedding_breaker",
    "get_external_gateway",
    "get_intent_extractor",
    "get_internal_search_engine",
    "get_llm_breaker",
    "get_provider_health_registry",
    "reset_search_dependencies",
]
