"""Shared fixtures for search pipeline unit tests."""

from __future__ import annotations

import pytest

from app.services.search.config import SearchConfig
from app.services.search.providers import ProviderHealthRegistry
from tests.unit.services.search._helpers import FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def search_config() -> SearchConfig:
    # Generous rate limit so breaker tests are not throttled first
    return SearchConfig(rate_limit_max_calls=100)


@pytest.fixture
def health_registry(search_config: SearchConfig, fake_clock: FakeClock) -> ProviderHealthRegistry:
    return ProviderHealthRegistry(config=search_config, clock=fake_clock, on_state_change=None)
