# backend/app/services/search/providers.py
"""
External event providers and their per-provider health state.

Providers return raw, unvalidated event-like dicts; the gateway owns rate
limiting, circuit breaking, timeouts and validation. Provider identity is an
opaque whitelisted name used for keying health state and tagging results.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import httpx

from app.core.config import settings
from app.services.search.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from app.services.search.config import SearchConfig, get_search_config
from app.services.search.date_parser import home_now
from app.services.search.metrics import update_circuit_breaker_state
from app.services.search.patterns import SNIPPET_DATE
from app.services.search.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

PROVIDER_WHITELIST = ("eventbrite", "meetup", "facebook_events", "google_events", "stub_web")

RawItem = Dict[str, Any]


def is_whitelisted(name: str) -> bool:
    return name in PROVIDER_WHITELIST


@dataclass(frozen=True)
class ProviderParams:
    """Normalized parameter set every provider receives."""

    keywords: List[str] = field(default_factory=list)
    category: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    date: Optional[str] = None
    limit: int = 10

    @property
    def query_text(self) -> str:
        parts = list(self.keywords)
        if self.city and self.city.lower() not in " ".join(parts).lower():
            parts.append(self.city)
        return " ".join(p for p in parts if p).strip()


class ProviderError(Exception):
    """A provider answered, but not with something usable."""


class EventProvider(ABC):
    name: str = ""

    @abstractmethod
    async def search(self, params: ProviderParams) -> List[RawItem]:
        pass


class GooglePSEProvider(EventProvider):
    """Google Programmable Search; returns nothing when unconfigured."""

    name = "google_events"

    def __init__(
        self,
        api_key: Optional[str] = None,
        engine_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.google_api_key
        self.engine_id = engine_id if engine_id is not None else settings.google_pse_id
        self.base_url = "https://www.googleapis.com/customsearch/v1"
        self._client = client

    async def search(self, params: ProviderParams) -> List[RawItem]:
        if not self.api_key or not self.engine_id:
            logger.info(
                f"Skipping {self.name}: missing configuration "
                f"(api_key={bool(self.api_key)}, engine_id={bool(self.engine_id)})"
            )
            return []

        query = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": f"{params.query_text} events",
            "num": str(min(params.limit, 10)),
        }
        if self._client is not None:
            resp = await self._client.get(self.base_url, params=query)
        else:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(self.base_url, params=query)
        resp.raise_for_status()
        data = resp.json()
        return [self._parse_item(item) for item in data.get("items") or []]

    def _parse_item(self, item: Mapping[str, Any]) -> RawItem:
        pagemap = item.get("pagemap") or {}
        event = (pagemap.get("event") or [{}])[0]
        metatags = (pagemap.get("metatags") or [{}])[0]

        start = event.get("startdate") or metatags.get("event:start_time")
        if not start:
            match = SNIPPET_DATE.search(item.get("snippet") or "")
            # Undated pages are listed as today
            start = match.group(0) if match else home_now().date().isoformat()

        return {
            "title": item.get("title"),
            "startAt": start,
            "url": item.get("link"),
            "description": item.get("snippet"),
            "venue": event.get("location") or None,
            "imageUrl": metatags.get("og:image"),
        }


class EventbriteProvider(EventProvider):
    name = "eventbrite"

    def __init__(self, token: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.token = token if token is not None else settings.eventbrite_token
        self.base_url = "https://www.eventbriteapi.com/v3"
        self._client = client

    async def search(self, params: ProviderParams) -> List[RawItem]:
        if not self.token:
            logger.info(f"Skipping {self.name}: no API token configured")
            return []

        query: Dict[str, str] = {"q": " ".join(params.keywords), "expand": "venue"}
        if params.city:
            query["location.address"] = params.city
        if params.date:
            query["start_date.range_start"] = f"{params.date}T00:00:00"
        headers = {"Authorization": f"Bearer {self.token}"}

        url = f"{self.base_url}/events/search/"
        if self._client is not None:
            resp = await self._client.get(url, params=query, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(url, params=query, headers=headers)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ProviderError("Eventbrite returned a non-object payload")
        return [self._parse_event(e) for e in (data.get("events") or [])[: params.limit]]

    def _parse_event(self, event: Mapping[str, Any]) -> RawItem:
        venue = event.get("venue") or {}
        address = venue.get("address") or {}
        return {
            "title": (event.get("name") or {}).get("text"),
            "description": (event.get("description") or {}).get("text"),
            "startAt": (event.get("start") or {}).get("utc") or (event.get("start") or {}).get("local"),
            "endAt": (event.get("end") or {}).get("utc"),
            "url": event.get("url"),
            "venue": venue.get("name"),
            "address": address.get("localized_address_display") or address.get("address_1"),
            "city": address.get("city"),
            "country": address.get("country"),
            "lat": address.get("latitude"),
            "lng": address.get("longitude"),
            "imageUrl": (event.get("logo") or {}).get("url"),
            "priceFree": event.get("is_free"),
            "isOnline": event.get("online_event", False),
        }


class StubWebProvider(EventProvider):
    """Deterministic sample events for development and tests."""

    name = "stub_web"

    def __init__(self, items: Optional[Sequence[RawItem]] = None) -> None:
        self._items = list(items) if items is not None else None

    def _sample_items(self) -> List[RawItem]:
        today = home_now().date()
        return [
            {
                "title": "Summer Music Festival",
                "description": "Outdoor live music across three stages.",
                "date": (today + timedelta(days=14)).isoformat(),
                "time": "18:00",
                "city": "Athens",
                "country": "Greece",
                "venue": "Olympic Stadium",
                "url": "https://example.com/summer-festival",
                "categories": ["Music"],
            },
            {
                "title": "Tech Innovation Summit",
                "description": "Talks and demos from local startups.",
                "date": (today + timedelta(days=21)).isoformat(),
                "time": "09:00",
                "city": "Melbourne",
                "country": "Australia",
                "venue": "Convention Centre",
                "url": "https://example.com/tech-summit",
                "categories": ["Learning"],
            },
        ]

    async def search(self, params: ProviderParams) -> List[RawItem]:
        items = self._items if self._items is not None else self._sample_items()
        return [dict(item) for item in items[: params.limit]]


def create_provider(name: str) -> Optional[EventProvider]:
    """Instantiate a provider by whitelisted name (None when not implemented)."""
    if name == "google_events":
        return GooglePSEProvider()
    if name == "eventbrite":
        return EventbriteProvider()
    if name == "stub_web":
        return StubWebProvider()
    return None


def create_providers(names: Optional[Sequence[str]] = None) -> Dict[str, EventProvider]:
    """Instantiate the enabled providers, skipping unknown or unimplemented names."""
    providers: Dict[str, EventProvider] = {}
    for name in names if names is not None else settings.external_providers:
        if not is_whitelisted(name):
            logger.warning(f"Ignoring non-whitelisted provider '{name}'")
            continue
        provider = create_provider(name)
        if provider is None:
            logger.warning(f"Provider '{name}' is whitelisted but has no implementation")
            continue
        providers[name] = provider
    return providers


@dataclass
class ProviderHealth:
    limiter: SlidingWindowRateLimiter
    breaker: CircuitBreaker

    def snapshot(self) -> Dict[str, Any]:
        return {"rate_limit": self.limiter.snapshot(), "circuit": self.breaker.snapshot()}


def publish_breaker_state(name: str, state: CircuitState) -> None:
    update_circuit_breaker_state(name, state.value)


class ProviderHealthRegistry:
    """
    Per-provider rate-limit and circuit-breaker state.

    One instance is shared by every request in the process; tests build
    their own with an injected clock.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[Callable[[str, CircuitState], None]] = publish_breaker_state,
    ) -> None:
        self.config = config or get_search_config()
        self._clock = clock
        self._on_state_change = on_state_change
        self._health: Dict[str, ProviderHealth] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> ProviderHealth:
        with self._lock:
            health = self._health.get(name)
            if health is None:
                health = ProviderHealth(
                    limiter=SlidingWindowRateLimiter(
                        max_calls=self.config.rate_limit_max_calls,
                        window_seconds=self.config.rate_limit_window_seconds,
                        clock=self._clock,
                    ),
                    breaker=CircuitBreaker(
                        name=name,
                        config=CircuitBreakerConfig(
                            failure_threshold=self.config.breaker_failure_threshold,
                            cooldown_seconds=self.config.breaker_cooldown_seconds,
                        ),
                        clock=self._clock,
                        on_state_change=self._on_state_change,
                    ),
                )
                self._health[name] = health
            return health

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            items = list(self._health.items())
        return {name: health.snapshot() for name, health in items}

    def reset(self) -> None:
        with self._lock:
            self._health.clear()
