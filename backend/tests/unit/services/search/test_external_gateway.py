"""Tests for provider health state (rate limiter, circuit breaker) and the external gateway."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.services.search.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
)
from app.services.search.config import SearchConfig
from app.services.search.external_gateway import ExternalProviderGateway
from app.services.search.providers import (
    ProviderHealthRegistry,
    ProviderParams,
    StubWebProvider,
    create_providers,
    is_whitelisted,
)
from app.services.search.rate_limiter import SlidingWindowRateLimiter
from tests.unit.services.search._helpers import FakeClock, RecordingProvider

PARAMS = ProviderParams(keywords=["jazz"], city="Melbourne", date="2026-10-17")

GOOD_ITEM = {
    "title": "Jazz on the Yarra",
    "date": "2026-10-17",
    "time": "8pm",
    "url": "https://example.com/jazz?utm_source=newsletter&id=7",
    "venue": "Riverside Stage",
    "city": "Melbourne",
}


class TestSlidingWindowRateLimiter:
    def test_refuses_when_window_full(self, fake_clock):
        limiter = SlidingWindowRateLimiter(max_calls=3, window_seconds=10, clock=fake_clock)

        assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]
        assert limiter.calls_in_window == 3

    def test_window_slides(self, fake_clock):
        limiter = SlidingWindowRateLimiter(max_calls=1, window_seconds=10, clock=fake_clock)
        assert limiter.try_acquire()
        fake_clock.advance(10)
        assert limiter.try_acquire()

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_calls=0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_seconds=0)


class TestCircuitBreaker:
    @pytest.fixture
    def breaker(self, fake_clock):
        return CircuitBreaker(
            name="test",
            config=CircuitBreakerConfig(failure_threshold=5, cooldown_seconds=120),
            clock=fake_clock,
        )

    def test_opens_after_threshold(self, breaker):
        for _ in range(4):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.allow_request() is False

    def test_success_resets_consecutive_count(self, breaker):
        for _ in range(4):
            breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.failure_count == 1
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_allows_single_trial(self, breaker, fake_clock):
        for _ in range(5):
            breaker.record_failure()
        fake_clock.advance(120)

        assert breaker.allow_request() is True
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request() is False

    def test_trial_success_closes(self, breaker, fake_clock):
        for _ in range(5):
            breaker.record_failure()
        fake_clock.advance(121)
        assert breaker.allow_request()
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_trial_failure_reopens_for_full_cooldown(self, breaker, fake_clock):
        for _ in range(5):
            breaker.record_failure()
        fake_clock.advance(121)
        assert breaker.allow_request()
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        fake_clock.advance(60)
        assert breaker.allow_request() is False
        assert breaker.snapshot()["cooldown_remaining_s"] == 60.0

    @pytest.mark.asyncio
    async def test_call_raises_when_open(self, breaker):
        for _ in range(5):
            breaker.record_failure()

        async def never_called():
            raise AssertionError("should not run")

        with pytest.raises(CircuitOpenError):
            await breaker.call(never_called)

    @pytest.mark.asyncio
    async def test_call_records_outcomes(self, breaker):
        async def boom():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        assert breaker.failure_count == 1

        async def ok():
            return 42

        assert await breaker.call(ok) == 42
        assert breaker.failure_count == 0

    def test_state_change_callback(self, fake_clock):
        seen = []
        breaker = CircuitBreaker(
            name="cb",
            config=CircuitBreakerConfig(failure_threshold=1),
            clock=fake_clock,
            on_state_change=lambda name, state: seen.append((name, state)),
        )
        breaker.record_failure()
        breaker.reset()
        assert seen == [("cb", CircuitState.OPEN), ("cb", CircuitState.CLOSED)]


class TestProviderFactory:
    def test_whitelist(self):
        assert is_whitelisted("eventbrite")
        assert not is_whitelisted("evil_scraper")

    def test_create_providers_skips_unknown_and_unimplemented(self):
        providers = create_providers(["stub_web", "evil_scraper", "meetup"])
        assert list(providers) == ["stub_web"]

    @pytest.mark.asyncio
    async def test_stub_provider_respects_limit(self):
        items = await StubWebProvider().search(ProviderParams(limit=1))
        assert len(items) == 1


class TestExternalProviderGateway:
    @pytest.mark.asyncio
    async def test_unknown_provider_rejected(self, health_registry):
        gateway = ExternalProviderGateway(health_registry, {}, config=health_registry.config)

        result = await gateway.fetch_from_provider("evil_scraper", PARAMS)

        assert result.error == "ERR_EXT_PROVIDER_UNKNOWN"

    @pytest.mark.asyncio
    async def test_valid_items_normalized(self, health_registry):
        provider = RecordingProvider("google_events", items=[GOOD_ITEM])
        gateway = ExternalProviderGateway(
            health_registry, {"google_events": provider}, config=health_registry.config
        )

        result = await gateway.fetch_from_provider("google_events", PARAMS)

        assert result.error is None
        assert result.accepted == 1
        item = result.results[0]
        assert item.is_web_result
        assert item.source_label == "From Google events"
        assert item.url == "https://example.com/jazz?id=7"
        assert item.start_at.hour == 20

    @pytest.mark.asyncio
    async def test_invalid_items_counted_by_reason(self, health_registry):
        items = [
            GOOD_ITEM,
            {"title": "", "date": "2026-10-17"},
            {"title": "No date"},
            {"title": "Bad link", "date": "2026-10-17", "url": "javascript:alert(1)"},
            {"title": "Claim now: free crypto airdrop", "date": "2026-10-17"},
        ]
        provider = RecordingProvider("eventbrite", items=items)
        gateway = ExternalProviderGateway(
            health_registry, {"eventbrite": provider}, config=health_registry.config
        )

        result = await gateway.fetch_from_provider("eventbrite", PARAMS)

        assert result.accepted == 1
        assert result.dropped_schema == 3
        assert result.dropped_safety == 1

    @pytest.mark.asyncio
    async def test_rate_limited_without_calling_provider(self, fake_clock):
        registry = ProviderHealthRegistry(
            config=SearchConfig(rate_limit_max_calls=1), clock=fake_clock, on_state_change=None
        )
        provider = RecordingProvider("stub_web", items=[GOOD_ITEM])
        gateway = ExternalProviderGateway(registry, {"stub_web": provider}, config=registry.config)

        await gateway.fetch_from_provider("stub_web", PARAMS)
        second = await gateway.fetch_from_provider("stub_web", PARAMS)

        assert second.error == "RATE_LIMITED"
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_maps_to_code(self, fake_clock):
        class SlowProvider(RecordingProvider):
            async def search(self, params):
                await asyncio.sleep(1)
                return []

        registry = ProviderHealthRegistry(
            config=SearchConfig(provider_timeout_ms=10), clock=fake_clock, on_state_change=None
        )
        gateway = ExternalProviderGateway(
            registry, {"stub_web": SlowProvider("stub_web")}, config=registry.config
        )

        result = await gateway.fetch_from_provider("stub_web", PARAMS)

        assert result.error == "ERR_EXT_TIMEOUT"
        assert registry.get("stub_web").breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_after_five_failures_then_allows_trial(self, health_registry, fake_clock):
        provider = RecordingProvider("eventbrite", error=httpx.ConnectError("refused"))
        gateway = ExternalProviderGateway(
            health_registry, {"eventbrite": provider}, config=health_registry.config
        )

        for _ in range(5):
            result = await gateway.fetch_from_provider("eventbrite", PARAMS)
            assert result.error == "ERR_EXT_CONNECT"
        assert provider.calls == 5

        blocked = await gateway.fetch_from_provider("eventbrite", PARAMS)
        assert blocked.error == "CIRCUIT_OPEN"
        assert provider.calls == 5

        fake_clock.advance(health_registry.config.breaker_cooldown_seconds)
        provider.error = None
        provider.items = [GOOD_ITEM]
        trial = await gateway.fetch_from_provider("eventbrite", PARAMS)

        assert provider.calls == 6
        assert trial.error is None
        assert health_registry.get("eventbrite").breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_fetch_all_settles_every_provider(self, health_registry):
        healthy = RecordingProvider("stub_web", items=[GOOD_ITEM])
        broken = RecordingProvider("eventbrite", error=httpx.ReadError("reset"))
        gateway = ExternalProviderGateway(
            health_registry,
            {"stub_web": healthy, "eventbrite": broken},
            config=health_registry.config,
        )

        outcome = await gateway.fetch_all(PARAMS)

        assert len(outcome.results) == 1
        assert outcome.errors == {"eventbrite": "ERR_EXT_CONNECT"}
        assert outcome.all_failed is False
        assert outcome.stats()["total_accepted"] == 1

    @pytest.mark.asyncio
    async def test_fetch_all_with_no_providers(self, health_registry):
        gateway = ExternalProviderGateway(health_registry, {}, config=health_registry.config)

        outcome = await gateway.fetch_all(PARAMS)

        assert outcome.results == []
        assert outcome.all_failed is False

    def test_registry_snapshot(self, health_registry):
        health_registry.get("stub_web").limiter.try_acquire()

        snapshot = health_registry.snapshot()

        assert snapshot["stub_web"]["rate_limit"]["calls_in_window"] == 1
        assert snapshot["stub_web"]["circuit"]["state"] == "closed"
