# backend/app/services/search/embedding_provider.py
"""
Query embedding providers for the semantic half of hybrid event search.

OpenAI in production, a deterministic hash-seeded mock for tests and local
development. Calls are single-shot with a short client timeout; the search
engine wraps them in its own deadline and circuit breaker.
"""
from __future__ import annotations

import hashlib
import logging
import os
import random
from typing import TYPE_CHECKING, List, Optional, Protocol

from openai import AsyncOpenAI

from app.core.config import settings
from app.services.search.config import get_search_config

if TYPE_CHECKING:
    from app.models.event import Event

logger = logging.getLogger(__name__)

OPENAI_TIMEOUT_S = float(os.getenv("OPENAI_TIMEOUT_S", "2.0"))


class EmbeddingProvider(Protocol):
    """Anything that can turn text into a fixed-size vector."""

    async def embed(self, text: str) -> List[float]:
        ...

    def get_model_name(self) -> str:
        ...


class OpenAIEmbeddingProvider:
    """OpenAI embeddings over the async client (lazy, rebuilt when retry config changes)."""

    def __init__(self, model: str, dimensions: int) -> None:
        self.model = model
        self.dimensions = dimensions
        self._client: Optional[AsyncOpenAI] = None
        self._client_max_retries: Optional[int] = None

    @property
    def client(self) -> AsyncOpenAI:
        max_retries = int(get_search_config().max_retries)
        if self._client is None or self._client_max_retries != max_retries:
            api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
            self._client = AsyncOpenAI(
                api_key=api_key,
                timeout=OPENAI_TIMEOUT_S,
                max_retries=max_retries,
            )
            self._client_max_retries = max_retries
        return self._client

    async def embed(self, text: str) -> List[float]:
        response = await self.client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self.dimensions,
        )
        return list(response.data[0].embedding)

    def get_model_name(self) -> str:
        return self.model


class MockEmbeddingProvider:
    """
    Deterministic unit vectors seeded from a SHA-256 of the lowercased text.

    Same text -> same vector; different text -> (almost surely) different vector.
    """

    def __init__(self, dimensions: int = 1536) -> None:
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        seed = int(hashlib.sha256(text.lower().encode()).hexdigest()[:8], 16)
        rng = random.Random(seed)
        vector = [rng.gauss(0, 1) for _ in range(self.dimensions)]
        magnitude = sum(x**2 for x in vector) ** 0.5
        return [x / magnitude for x in vector]

    def get_model_name(self) -> str:
        return "mock-embedding-v1"


def event_embedding_text(event: "Event") -> str:
    """Text embedded for a stored event: title, categories, place, then description."""
    parts = [
        event.title,
        ", ".join(event.categories or []),
        event.venue_name,
        event.city,
        (event.description or "")[:500],
    ]
    return ". ".join(p for p in parts if p)


def create_embedding_provider(provider: Optional[str] = None) -> EmbeddingProvider:
    """
    Build the configured embedding provider.

    ``settings.embedding_provider`` selects "openai" or "mock". OpenAI without
    an API key falls back to the mock so local runs never hit the network.
    """
    config = get_search_config()
    choice = (provider or settings.embedding_provider or "openai").lower()

    if choice == "mock" or settings.openai_api_key is None:
        logger.info("Using mock embedding provider")
        return MockEmbeddingProvider(dimensions=config.embedding_dimensions)

    logger.info(f"Using OpenAI embedding provider: {config.embedding_model}")
    return OpenAIEmbeddingProvider(model=config.embedding_model, dimensions=config.embedding_dimensions)
