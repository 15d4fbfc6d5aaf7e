# backend/app/services/search/external_gateway.py
"""
External provider gateway.

Each provider call goes through, in order: whitelist -> sliding-window rate
limit -> circuit breaker -> bounded live call -> per-item validation. Every
failure is turned into a typed ProviderCallResult; nothing raises to the
caller. ``fetch_all`` fans out to all providers and settles every call.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.services.search.config import SearchConfig, get_search_config
from app.services.search.errors import SHED_LOAD_CODES, SearchErrorCode
from app.services.search.metrics import record_provider_call
from app.services.search.providers import (
    EventProvider,
    ProviderHealthRegistry,
    ProviderParams,
    is_whitelisted,
)
from app.services.search.result_types import ProviderCallResult, SearchResult
from app.services.search.result_validator import SCHEMA_DROP_CODES, validate_external_item

logger = logging.getLogger(__name__)


@dataclass
class ExternalSearchOutcome:
    """Combined results and per-provider stats of one fan-out."""

    results: List[SearchResult] = field(default_factory=list)
    provider_results: List[ProviderCallResult] = field(default_factory=list)

    @property
    def total_accepted(self) -> int:
        return sum(r.accepted for r in self.provider_results)

    @property
    def total_dropped_schema(self) -> int:
        return sum(r.dropped_schema for r in self.provider_results)

    @property
    def total_dropped_safety(self) -> int:
        return sum(r.dropped_safety for r in self.provider_results)

    @property
    def errors(self) -> Dict[str, str]:
        return {r.provider: r.error for r in self.provider_results if r.error}

    @property
    def all_failed(self) -> bool:
        return bool(self.provider_results) and all(r.error for r in self.provider_results)

    @property
    def load_shed(self) -> bool:
        """Any provider skipped because it was rate-limited or circuit-open."""
        return any(r.error in SHED_LOAD_CODES for r in self.provider_results)

    def stats(self) -> Dict[str, Any]:
        return {
            "providers": [r.stats() for r in self.provider_results],
            "total_accepted": self.total_accepted,
            "total_dropped_schema": self.total_dropped_schema,
            "total_dropped_safety": self.total_dropped_safety,
        }


class ExternalProviderGateway:
    """Rate-limited, circuit-broken access to external event providers."""

    def __init__(
        self,
        registry: ProviderHealthRegistry,
        providers: Mapping[str, EventProvider],
        config: Optional[SearchConfig] = None,
    ) -> None:
        self.registry = registry
        self.providers = dict(providers)
        self.config = config or get_search_config()

    @property
    def provider_names(self) -> List[str]:
        return list(self.providers)

    async def fetch_from_provider(self, name: str, params: ProviderParams) -> ProviderCallResult:
        """
        Call one provider and validate what it returns.

        Returns:
            ProviderCallResult; ``error`` is set for unknown providers,
            rate-limited or circuit-open calls, timeouts and connection errors
        """
        provider = self.providers.get(name)
        if not is_whitelisted(name) or provider is None:
            logger.warning(f"Rejected call to unknown provider '{name}'")
            return ProviderCallResult(provider=name, error=SearchErrorCode.EXT_PROVIDER_UNKNOWN.value)

        health = self.registry.get(name)

        if not health.limiter.try_acquire():
            logger.warning(f"Provider {name} rate limited")
            record_provider_call(name, SearchErrorCode.RATE_LIMITED.value)
            return ProviderCallResult(provider=name, error=SearchErrorCode.RATE_LIMITED.value)

        if not health.breaker.allow_request():
            logger.warning(f"Provider {name} circuit open, skipping call")
            record_provider_call(name, SearchErrorCode.CIRCUIT_OPEN.value)
            return ProviderCallResult(provider=name, error=SearchErrorCode.CIRCUIT_OPEN.value)

        timeout_s = self.config.provider_timeout_ms / 1000
        start = time.perf_counter()
        try:
            raw_items = await asyncio.wait_for(provider.search(params), timeout=timeout_s)
        except asyncio.TimeoutError:
            health.breaker.record_failure()
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(f"Provider {name} timed out after {latency_ms}ms")
            record_provider_call(name, SearchErrorCode.EXT_TIMEOUT.value)
            return ProviderCallResult(
                provider=name, latency_ms=latency_ms, error=SearchErrorCode.EXT_TIMEOUT.value
            )
        except asyncio.CancelledError:
            # Release a half-open trial slot before propagating
            health.breaker.record_failure()
            raise
        except Exception as e:
            health.breaker.record_failure()
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(f"Provider {name} call failed: {str(e)}")
            record_provider_call(name, SearchErrorCode.EXT_CONNECT.value)
            return ProviderCallResult(
                provider=name, latency_ms=latency_ms, error=SearchErrorCode.EXT_CONNECT.value
            )

        health.breaker.record_success()
        latency_ms = int((time.perf_counter() - start) * 1000)

        call = ProviderCallResult(provider=name, latency_ms=latency_ms)
        for raw in raw_items or []:
            outcome = validate_external_item(raw, name)
            if outcome.result is not None:
                call.results.append(outcome.result)
                call.accepted += 1
            elif outcome.error_code in SCHEMA_DROP_CODES:
                call.dropped_schema += 1
                logger.debug(f"Provider {name} item dropped ({outcome.error_code.value}): {outcome.reason}")
            else:
                call.dropped_safety += 1
                logger.debug(f"Provider {name} item failed safety filter")

        record_provider_call(name, None, call.dropped_schema, call.dropped_safety)
        logger.debug(
            f"Provider {name}: accepted={call.accepted} dropped_schema={call.dropped_schema} "
            f"dropped_safety={call.dropped_safety} latency={latency_ms}ms"
        )
        return call

    async def fetch_all(
        self, params: ProviderParams, providers: Optional[Sequence[str]] = None
    ) -> ExternalSearchOutcome:
        """Query providers concurrently; individual failures never fail the fan-out."""
        names = list(providers) if providers is not None else self.provider_names
        if not names:
            return ExternalSearchOutcome()

        settled = await asyncio.gather(
            *(self.fetch_from_provider(name, params) for name in names),
            return_exceptions=True,
        )

        outcome = ExternalSearchOutcome()
        for name, item in zip(names, settled):
            if isinstance(item, BaseException):
                logger.error(f"Unexpected error fetching from {name}: {item!r}")
                item = ProviderCallResult(provider=name, error=SearchErrorCode.EXT_CONNECT.value)
            outcome.provider_results.append(item)
            outcome.results.extend(item.results)
        return outcome
