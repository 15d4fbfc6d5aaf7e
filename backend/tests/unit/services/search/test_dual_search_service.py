"""Tests for the dual (internal + web) search orchestration."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.core.exceptions import EmptyQueryException
from app.services.search import intent_extractor as intent_module
from app.services.search.dual_search_service import DualSearchService, build_message, combined_error_code
from app.services.search.errors import SearchMessages
from app.services.search.external_gateway import ExternalProviderGateway
from app.services.search.intent_extractor import IntentExtractor
from app.services.search.internal_search import InternalSearchOutcome
from app.services.search.query_mapper import SearchEntities
from app.services.search.result_types import SearchResult
from tests.unit.services.search._helpers import RecordingProvider, make_result, melbourne

SATURDAY = datetime(2026, 10, 17, 10, 0)

WEB_ITEMS = [
    {
        "title": "Jazz on the Yarra",
        "date": "2026-10-17",
        "time": "8pm",
        "venue": "Riverside Stage",
        "city": "Melbourne",
        "url": "https://example.com/jazz-on-the-yarra",
    },
    {
        "title": "Late Night Jazz Session",
        "date": "2026-10-18",
        "time": "9pm",
        "venue": "Paris Cat Jazz Club",
        "city": "Melbourne",
        "url": "https://pariscat.example.com/events/late-night",
    },
    {
        "title": "Harbour Jazz Night",
        "date": "2026-10-17",
        "city": "Sydney",
        "url": "https://example.com/harbour-jazz",
    },
]


class StubInternalEngine:
    """Internal engine double returning a fixed outcome and recording its inputs."""

    def __init__(
        self,
        results: Optional[List[SearchResult]] = None,
        error: Optional[str] = None,
        raises: Optional[BaseException] = None,
    ) -> None:
        self.outcome = InternalSearchOutcome(results=list(results or []), error=error)
        self.raises = raises
        self.calls: List[SearchEntities] = []

    async def search(self, query, entities=None, filters=None, now=None, limit=None):
        self.calls.append(entities)
        if self.raises is not None:
            raise self.raises
        return self.outcome


@pytest.fixture(autouse=True)
def regex_only(monkeypatch):
    monkeypatch.setattr(intent_module.settings, "openai_api_key", None)


@pytest.fixture
def yarra():
    return make_result(
        "Jazz on the Yarra",
        id="evt_yarra",
        venue="Riverside Stage",
        city="Melbourne",
        country="Australia",
        start_at=melbourne(2026, 10, 17, 20, 0),
    )


def _service(health_registry, internal, provider) -> DualSearchService:
    gateway = ExternalProviderGateway(
        health_registry, {provider.name: provider}, config=health_registry.config
    )
    return DualSearchService(internal, gateway, IntentExtractor(config=health_registry.config))


class TestDualSearch:
    @pytest.mark.asyncio
    async def test_weekend_jazz_internal_first_deduped_and_guarded(self, health_registry, yarra):
        internal = StubInternalEngine(results=[yarra])
        provider = RecordingProvider("google_events", items=WEB_ITEMS)
        service = _service(health_registry, internal, provider)

        envelope = await service.search("Melbourne this weekend jazz", now=SATURDAY)

        titles = [r["title"] for r in envelope["results"]]
        assert titles == ["Jazz on the Yarra", "Late Night Jazz Session"]
        assert envelope["results"][0]["is_web_result"] is False
        assert envelope["results"][1]["is_web_result"] is True
        assert envelope["internal_count"] == 1
        assert envelope["external_count"] == 1
        assert envelope["stats"]["deduped"] == 1
        assert envelope["errors"] == {"internal": None, "external": None}
        assert envelope["message"] is None
        assert envelope["error_code"] is None
        assert envelope["query"]["city"] == "Melbourne"
        assert envelope["query"]["category"] == "MUSIC_NIGHTLIFE"

        entities = internal.calls[0]
        assert entities.city == "Melbourne"
        assert entities.date_phrase == "this weekend"

    @pytest.mark.asyncio
    async def test_both_down(self, health_registry):
        internal = StubInternalEngine(error="ERR_DB_CONNECT")
        provider = RecordingProvider("google_events", error=httpx.ConnectError("refused"))
        service = _service(health_registry, internal, provider)

        envelope = await service.search("jazz tonight", now=SATURDAY)

        assert envelope["results"] == []
        assert envelope["count"] == 0
        assert envelope["error_code"] == "ERR_BOTH_DOWN"
        assert envelope["errors"] == {"internal": "ERR_DB_CONNECT", "external": "ERR_EXT_CONNECT"}
        assert envelope["message"] == SearchMessages.BOTH_DOWN

    @pytest.mark.asyncio
    async def test_internal_down_still_serves_web(self, health_registry):
        internal = StubInternalEngine(raises=RuntimeError("pool exhausted"))
        provider = RecordingProvider("google_events", items=WEB_ITEMS[1:2])
        service = _service(health_registry, internal, provider)

        envelope = await service.search("jazz this weekend", now=SATURDAY)

        assert envelope["error_code"] == "ERR_DB_CONNECT"
        assert envelope["message"] == SearchMessages.INTERNAL_DOWN
        assert [r["title"] for r in envelope["results"]] == ["Late Night Jazz Session"]

    @pytest.mark.asyncio
    async def test_gateway_crash_reported_as_external_error(self, health_registry, yarra):
        gateway = MagicMock()
        gateway.fetch_all = AsyncMock(side_effect=RuntimeError("boom"))
        service = DualSearchService(
            StubInternalEngine(results=[yarra]), gateway, IntentExtractor(config=health_registry.config)
        )

        envelope = await service.search("jazz", now=SATURDAY)

        assert envelope["errors"]["external"] == "ERR_EXT_CONNECT"
        assert envelope["message"] == SearchMessages.EXTERNAL_DEGRADED
        assert envelope["internal_count"] == 1

    @pytest.mark.asyncio
    async def test_limit_applies_to_merged_list(self, health_registry, yarra):
        internal = StubInternalEngine(results=[yarra])
        provider = RecordingProvider("google_events", items=WEB_ITEMS[1:2])
        service = _service(health_registry, internal, provider)

        envelope = await service.search("jazz", limit=1, now=SATURDAY)

        assert envelope["count"] == 1
        assert envelope["internal_count"] == 1
        assert envelope["external_count"] == 0

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, health_registry):
        service = _service(health_registry, StubInternalEngine(), RecordingProvider("google_events"))

        with pytest.raises(EmptyQueryException):
            await service.search("   ")


class TestEnvelopeHelpers:
    def test_messages(self):
        assert build_message("ERR_DB_CONNECT", "ERR_EXT_TIMEOUT", False) == SearchMessages.BOTH_DOWN
        assert build_message("ERR_DB_CONNECT", None, False) == SearchMessages.INTERNAL_DOWN
        assert build_message(None, None, True) == SearchMessages.EXTERNAL_DEGRADED
        assert build_message(None, None, False) is None

    def test_combined_error_code(self):
        assert combined_error_code("ERR_DB_CONNECT", "ERR_EXT_TIMEOUT") == "ERR_BOTH_DOWN"
        assert combined_error_code(None, "ERR_EXT_TIMEOUT") == "ERR_EXT_TIMEOUT"
        assert combined_error_code(None, None) is None
