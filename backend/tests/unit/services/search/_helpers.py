"""Test doubles and builders shared by the search pipeline tests."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz

from app.core.enums import ResultSource
from app.services.search.providers import EventProvider, ProviderParams
from app.services.search.result_types import SearchResult

MELBOURNE = pytz.timezone("Australia/Melbourne")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingProvider(EventProvider):
    """Provider returning canned items (or raising) and counting calls."""

    def __init__(
        self,
        name: str,
        items: Optional[List[Dict[str, Any]]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.name = name
        self.items = items or []
        self.error = error
        self.calls = 0

    async def search(self, params: ProviderParams) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [dict(item) for item in self.items]


def melbourne(*args: int) -> datetime:
    return MELBOURNE.localize(datetime(*args))


def make_result(title: str, source: ResultSource = ResultSource.INTERNAL, **kwargs: Any) -> SearchResult:
    return SearchResult(source=source, title=title, **kwargs)


def web_result(title: str, **kwargs: Any) -> SearchResult:
    kwargs.setdefault("provider", "google_events")
    kwargs.setdefault("source_label", "From Google events")
    return SearchResult(source=ResultSource.EXTERNAL, title=title, **kwargs)
