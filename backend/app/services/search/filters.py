# backend/app/services/search/filters.py
"""
Typed filter predicates for internal event search.

Each filter is a small frozen dataclass; ``build_clause`` turns one into a
SQLAlchemy boolean expression. The union is closed: adding a filter type
without handling it in ``build_clause`` is a type error (``assert_never``).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import math
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy import String, and_, cast, false, or_, true
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.elements import ColumnElement
from typing_extensions import assert_never

from app.core.enums import EventCategory
from app.models.event import Event

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class VisibilityFilter:
    """Published and moderation-approved only."""


@dataclass(frozen=True)
class DateRangeFilter:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class FutureOnlyFilter:
    now: datetime


@dataclass(frozen=True)
class CategoryFilter:
    category: Optional[EventCategory]
    keywords: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CityFilter:
    city: str
    country: Optional[str] = None
    variations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VenueFilter:
    text: str


@dataclass(frozen=True)
class TextFilter:
    terms: Tuple[str, ...]
    folded_terms: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GeoFilter:
    lat: float
    lng: float
    radius_km: float


SearchFilter = Union[
    VisibilityFilter,
    DateRangeFilter,
    FutureOnlyFilter,
    CategoryFilter,
    CityFilter,
    VenueFilter,
    TextFilter,
    GeoFilter,
]

# Filters that describe *what* the user named, as opposed to text or time
ENTITY_FILTER_TYPES = (CategoryFilter, CityFilter, VenueFilter, GeoFilter)


def _like(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _utc(value: datetime) -> datetime:
    # Stored timestamps compare in UTC on every dialect
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _contains(column: ColumnElement, value: str) -> ColumnElement[bool]:
    return column.ilike(_like(value), escape="\\")


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) enclosing a radius around a point."""
    lat_delta = math.degrees(radius_km / EARTH_RADIUS_KM)
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    lng_delta = math.degrees(radius_km / (EARTH_RADIUS_KM * cos_lat))
    return lat - lat_delta, lat + lat_delta, lng - lng_delta, lng + lng_delta


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def _category_clause(f: CategoryFilter, dialect: str) -> ColumnElement[bool]:
    labels: List[str] = [k for k in f.keywords if k]
    if f.category is not None:
        labels.append(f.category.value)
    clauses: List[ColumnElement[bool]] = []
    if f.category is not None:
        clauses.append(Event.category == f.category)
    if labels:
        if dialect == "postgresql":
            clauses.append(Event.categories.op("&&")(postgresql.array(labels)))
        else:
            # JSON-encoded list: match quoted members case-insensitively
            stored = cast(Event.categories, String)
            clauses.extend(_contains(stored, f'"{label}"') for label in labels)
    if not clauses:
        return true()
    return or_(*clauses)


def build_clause(f: SearchFilter, dialect: str = "postgresql") -> ColumnElement[bool]:
    """Translate one filter predicate into a SQLAlchemy expression."""
    if isinstance(f, VisibilityFilter):
        return Event.public_clause()
    elif isinstance(f, DateRangeFilter):
        # Overlap: starts before the window closes, ends after it opens
        return and_(Event.start_at <= _utc(f.end), Event.end_at >= _utc(f.start))
    elif isinstance(f, FutureOnlyFilter):
        return Event.end_at >= _utc(f.now)
    elif isinstance(f, CategoryFilter):
        return _category_clause(f, dialect)
    elif isinstance(f, CityFilter):
        names = [f.city, *f.variations]
        return or_(
            *[_contains(Event.city, n) for n in names if n],
            *[_contains(Event.address, n) for n in names if n],
        )
    elif isinstance(f, VenueFilter):
        return or_(_contains(Event.venue_name, f.text), _contains(Event.address, f.text))
    elif isinstance(f, TextFilter):
        if not f.terms and not f.folded_terms:
            return true()
        clauses: List[ColumnElement[bool]] = []
        for term in f.terms:
            clauses.extend(
                [
                    _contains(Event.title, term),
                    _contains(Event.description, term),
                    _contains(Event.search_text, term),
                ]
            )
        for term in f.folded_terms:
            clauses.append(_contains(Event.search_text_folded, term))
        return or_(*clauses) if clauses else false()
    elif isinstance(f, GeoFilter):
        min_lat, max_lat, min_lng, max_lng = bounding_box(f.lat, f.lng, f.radius_km)
        return and_(
            Event.lat.isnot(None),
            Event.lng.isnot(None),
            Event.lat.between(min_lat, max_lat),
            Event.lng.between(min_lng, max_lng),
        )
    else:
        assert_never(f)


def build_where(filters: Sequence[SearchFilter], dialect: str = "postgresql") -> ColumnElement[bool]:
    clauses = [build_clause(f, dialect) for f in filters]
    return and_(*clauses) if clauses else true()


def without(filters: Sequence[SearchFilter], *types: type) -> List[SearchFilter]:
    """Copy of ``filters`` minus every instance of the given types."""
    return [f for f in filters if not isinstance(f, types)]


def entity_filters(filters: Sequence[SearchFilter]) -> List[SearchFilter]:
    return [f for f in filters if isinstance(f, ENTITY_FILTER_TYPES)]


def describe(filters: Sequence[SearchFilter]) -> List[str]:
    """Compact names for logging."""
    return [type(f).__name__ for f in filters]
