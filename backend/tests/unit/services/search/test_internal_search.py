"""Tests for the internal (database) search engine against in-memory SQLite."""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.enums import EventCategory, EventStatus, ModerationStatus
from app.database import Base
from app.models.event import Event
from app.services.search.config import SearchConfig
from app.services.search.embedding_provider import MockEmbeddingProvider
from app.services.search.internal_search import InternalSearchEngine, event_to_result, resolve_window
from app.services.search.query_mapper import SearchEntities
from tests.unit.services.search._helpers import melbourne

SATURDAY = datetime(2026, 10, 17, 10, 0)


def _utc(*args: int) -> datetime:
    return melbourne(*args).astimezone(pytz.utc)


def _event(title: str, start, end, **kwargs) -> Event:
    kwargs.setdefault("status", EventStatus.PUBLISHED)
    kwargs.setdefault("moderation_status", ModerationStatus.APPROVED)
    kwargs.setdefault("city", "Melbourne")
    kwargs.setdefault("country", "Australia")
    kwargs.setdefault("category", EventCategory.MUSIC_NIGHTLIFE)
    kwargs.setdefault("categories", ["jazz"])
    kwargs.setdefault("description", "Live music by the river")
    event = Event(title=title, start_at=_utc(*start), end_at=_utc(*end), **kwargs)
    event.refresh_search_text()
    return event


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    session = factory()
    session.add_all(
        [
            _event("Jazz on the Yarra", (2026, 10, 17, 20, 0), (2026, 10, 17, 23, 0), venue_name="Riverside Stage"),
            _event("Jazz in November", (2026, 11, 20, 20, 0), (2026, 11, 20, 23, 0)),
            _event("Secret Jazz Draft", (2026, 10, 17, 20, 0), (2026, 10, 17, 23, 0), status=EventStatus.DRAFT),
            _event(
                "Pending Jazz",
                (2026, 10, 17, 20, 0),
                (2026, 10, 17, 23, 0),
                moderation_status=ModerationStatus.PENDING,
            ),
            _event(
                "Space Coast Jazz",
                (2026, 10, 18, 19, 0),
                (2026, 10, 18, 22, 0),
                country="United States",
            ),
            _event("Last Week's Jazz", (2026, 10, 10, 20, 0), (2026, 10, 10, 23, 0)),
        ]
    )
    session.commit()
    session.close()

    yield factory

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def engine(session_factory):
    return InternalSearchEngine(
        session_factory=session_factory,
        embedding_provider=MockEmbeddingProvider(dimensions=8),
        config=SearchConfig(),
    )


def _weekend_jazz(**overrides) -> SearchEntities:
    values = dict(
        city="Melbourne",
        category=EventCategory.MUSIC_NIGHTLIFE,
        category_keywords=["jazz"],
        date_phrase="this weekend",
    )
    values.update(overrides)
    return SearchEntities(**values)


class TestInternalSearch:
    @pytest.mark.asyncio
    async def test_weekend_window_returns_only_public_events(self, engine):
        outcome = await engine.search("jazz", _weekend_jazz(), now=SATURDAY)

        assert outcome.error is None
        assert outcome.fallback_stage is None
        assert [r.title for r in outcome.results] == ["Jazz on the Yarra"]
        assert outcome.window.start_date == date(2026, 10, 17)

    @pytest.mark.asyncio
    async def test_results_are_internal_and_timezone_aware(self, engine):
        outcome = await engine.search("jazz", _weekend_jazz(), now=SATURDAY)
        result = outcome.results[0]

        assert result.to_dict()["is_web_result"] is False
        assert result.start_at.tzinfo is not None
        assert result.venue == "Riverside Stage"

    @pytest.mark.asyncio
    async def test_empty_window_falls_back_to_without_date(self, engine):
        entities = _weekend_jazz(date_phrase=None, date_iso="2026-12-24")

        outcome = await engine.search("jazz", entities, now=SATURDAY)

        assert outcome.fallback_stage == "without_date"
        titles = [r.title for r in outcome.results]
        assert "Jazz on the Yarra" in titles
        assert "Jazz in November" in titles
        assert "Last Week's Jazz" not in titles

    @pytest.mark.asyncio
    async def test_unmatched_text_falls_back_to_entities_only(self, engine):
        outcome = await engine.search("salsa", _weekend_jazz(date_phrase=None), now=SATURDAY)

        assert outcome.fallback_stage == "entities_only"
        assert {r.title for r in outcome.results} == {"Jazz on the Yarra", "Jazz in November"}

    @pytest.mark.asyncio
    async def test_no_entities_and_no_match_is_empty(self, engine):
        outcome = await engine.search("salsa", SearchEntities(), now=SATURDAY)

        assert outcome.results == []
        assert outcome.fallback_stage is None
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_ambiguous_city_drops_wrong_country(self, engine):
        outcome = await engine.search("jazz", _weekend_jazz(), now=SATURDAY)
        assert "Space Coast Jazz" not in [r.title for r in outcome.results]

        us = await engine.search("jazz", _weekend_jazz(country="USA"), now=SATURDAY)
        assert [r.title for r in us.results] == ["Space Coast Jazz"]

    @pytest.mark.asyncio
    async def test_limit_caps_results(self, engine):
        outcome = await engine.search("jazz", _weekend_jazz(date_phrase=None), now=SATURDAY, limit=1)
        assert len(outcome.results) == 1

    @pytest.mark.asyncio
    async def test_best_match_starting_last_survives_candidate_cut(self, session_factory, engine):
        session = session_factory()
        session.add_all(
            [
                _event(
                    f"Open mic {n}",
                    (2026, 10, 18 + n, 19, 0),
                    (2026, 10, 18 + n, 22, 0),
                    description="Open mic with a jazz house band",
                )
                for n in range(1, 4)
            ]
            + [_event("Jazz Night Gala", (2026, 12, 5, 19, 0), (2026, 12, 5, 23, 0))]
        )
        session.commit()
        session.close()

        outcome = await engine.search("jazz night gala", SearchEntities(), now=SATURDAY, limit=1)

        assert outcome.error is None
        assert [r.title for r in outcome.results] == ["Jazz Night Gala"]

    @pytest.mark.asyncio
    async def test_dropped_connection_is_retried(self, session_factory, monkeypatch):
        session = session_factory()
        real_query = session.query
        calls = []

        def flaky_query(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("SELECT", {}, Exception("server closed the connection unexpectedly"))
            return real_query(*args, **kwargs)

        monkeypatch.setattr(session, "query", flaky_query)
        monkeypatch.setattr("app.database.time.sleep", lambda seconds: None)
        engine = InternalSearchEngine(
            session_factory=lambda: session,
            embedding_provider=MockEmbeddingProvider(dimensions=8),
            config=SearchConfig(),
        )

        outcome = await engine.search("jazz", _weekend_jazz(), now=SATURDAY)

        assert outcome.error is None
        assert [r.title for r in outcome.results] == ["Jazz on the Yarra"]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_database_error_maps_to_code(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "sqlite"
        session.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        engine = InternalSearchEngine(
            session_factory=lambda: session,
            embedding_provider=MockEmbeddingProvider(dimensions=8),
            config=SearchConfig(),
        )

        outcome = await engine.search("jazz", _weekend_jazz(), now=SATURDAY)

        assert outcome.error == "ERR_DB_CONNECT"
        assert outcome.results == []
        session.close.assert_called_once()


class TestInternalSearchHelpers:
    def test_resolve_window_from_iso_and_duration(self):
        window = resolve_window(SearchEntities(date_iso="2026-12-24", duration_days=3))

        assert window.start_date == date(2026, 12, 24)
        assert window.end_date == date(2026, 12, 26)

    def test_resolve_window_without_date(self):
        assert resolve_window(SearchEntities()) is None

    def test_event_to_result_treats_naive_times_as_utc(self):
        event = Event(
            id="01J0000000000000000000000",
            title="Open Mic",
            description="x" * 400,
            start_at=datetime(2026, 10, 17, 9, 0),
            end_at=datetime(2026, 10, 17, 11, 0),
            category=EventCategory.MUSIC_NIGHTLIFE,
            categories=["open mic"],
            price_free=True,
        )

        result = event_to_result(event)

        assert result.start_at.utcoffset().total_seconds() == 0
        assert result.categories == ["open mic", "MUSIC_NIGHTLIFE"]
        assert len(result.snippet) == 280
        assert result.price_free is True
