# backend/app/services/search/result_validator.py
"""
Validation and normalization of raw external provider items.

Every raw item either becomes a SearchResult or is dropped with a code:
- ERR_EXT_SCHEMA_REQUIRED: missing/invalid title or date
- ERR_EXT_URL_SCHEME: link is not http(s)
- ERR_EXT_SAFETY_FILTER: content matched the safety blocklist
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging
from typing import Any, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup
import dateparser

from app.core.config import settings
from app.core.constants import MAX_EXTERNAL_DESCRIPTION_LENGTH, MAX_EXTERNAL_TITLE_LENGTH
from app.core.enums import ResultSource
from app.services.search.date_parser import combine_local, home_timezone, localize_home, parse_time
from app.services.search.errors import SearchErrorCode
from app.services.search.patterns import (
    ISO_DATE,
    SAFETY_BLOCKLIST,
    TRACKING_IN_TEXT,
    TRACKING_PARAM,
    WHITESPACE,
)
from app.services.search.result_types import SearchResult

logger = logging.getLogger(__name__)

# Codes counted as schema drops
SCHEMA_DROP_CODES = frozenset({SearchErrorCode.EXT_SCHEMA_REQUIRED, SearchErrorCode.EXT_URL_SCHEME})


@dataclass
class ValidationOutcome:
    result: Optional[SearchResult] = None
    error_code: Optional[SearchErrorCode] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.result is not None


def _reject(code: SearchErrorCode, reason: str) -> ValidationOutcome:
    return ValidationOutcome(error_code=code, reason=reason)


def strip_html(value: str) -> str:
    """Visible text of an HTML fragment (scripts and styles removed)."""
    if "<" not in value:
        return value
    soup = BeautifulSoup(value, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(" ")


def clean_text(value: Optional[str]) -> str:
    """Strip HTML and tracking params, collapse whitespace."""
    if not value:
        return ""
    text = strip_html(value)
    text = TRACKING_IN_TEXT.sub("", text)
    return WHITESPACE.sub(" ", text).strip()


def truncate(value: str, limit: int = MAX_EXTERNAL_DESCRIPTION_LENGTH) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def strip_tracking_params(url: str) -> str:
    """Remove utm_*, fbclid and gclid query parameters from a URL."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not TRACKING_PARAM.match(k)]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))


def source_label(provider: str) -> str:
    """"google_events" -> "From Google events"."""
    name = provider.replace("_", " ")
    return f"From {name[:1].upper()}{name[1:]}"


def _parse_datetime_value(value: Any) -> Optional[datetime]:
    """Parse a provider start value into an aware datetime in the home timezone."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return combine_local(value.isoformat())
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if ISO_DATE.match(text):
            return combine_local(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = dateparser.parse(
                text,
                settings={
                    "TIMEZONE": settings.home_timezone,
                    "RETURN_AS_TIMEZONE_AWARE": True,
                    "PREFER_DATES_FROM": "future",
                },
            )
            if parsed is None:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        return localize_home(parsed)
    return parsed.astimezone(home_timezone())


def _compose_start(raw: Mapping[str, Any]) -> Optional[datetime]:
    start_value = raw.get("startAt") or raw.get("start_at")
    if start_value:
        return _parse_datetime_value(start_value)

    date_value = raw.get("date")
    time_value = raw.get("time")
    if isinstance(date_value, str) and ISO_DATE.match(date_value.strip()):
        return combine_local(date_value.strip(), parse_time(time_value) if time_value else None)
    start = _parse_datetime_value(date_value)
    if start is not None and time_value:
        normalized = parse_time(time_value)
        if normalized:
            return combine_local(start.date().isoformat(), normalized)
    return start


def _optional_str(raw: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return WHITESPACE.sub(" ", value).strip()
    return None


def _optional_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _categories(raw: Mapping[str, Any]) -> List[str]:
    value = raw.get("categories") or raw.get("category")
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return []


def validate_external_item(raw: Any, provider: str) -> ValidationOutcome:
    """
    Validate one raw provider item and normalize it to a SearchResult.

    Args:
        raw: Provider payload (mapping with title, startAt/date, time, url, ...)
        provider: Whitelisted provider name (used for tagging and the source label)

    Returns:
        ValidationOutcome with either a result or the drop code and reason
    """
    if not isinstance(raw, Mapping):
        return _reject(SearchErrorCode.EXT_SCHEMA_REQUIRED, "Item is not an object")

    raw_title = raw.get("title")
    if not isinstance(raw_title, str) or not raw_title.strip():
        return _reject(SearchErrorCode.EXT_SCHEMA_REQUIRED, "Missing or invalid title")
    title = clean_text(raw_title)
    if not title:
        return _reject(SearchErrorCode.EXT_SCHEMA_REQUIRED, "Missing or invalid title")
    if len(title) > MAX_EXTERNAL_TITLE_LENGTH:
        return _reject(
            SearchErrorCode.EXT_SCHEMA_REQUIRED,
            f"Title exceeds {MAX_EXTERNAL_TITLE_LENGTH} characters",
        )

    if not (raw.get("startAt") or raw.get("start_at") or raw.get("date")):
        return _reject(SearchErrorCode.EXT_SCHEMA_REQUIRED, "Missing date")

    raw_description = raw.get("description") or raw.get("snippet")
    description = clean_text(raw_description) if isinstance(raw_description, str) else ""

    text_to_check = f"{title} {description}"
    if any(pattern.search(text_to_check) for pattern in SAFETY_BLOCKLIST):
        return _reject(SearchErrorCode.EXT_SAFETY_FILTER, "Content failed safety filter")

    start_at = _compose_start(raw)
    if start_at is None:
        return _reject(SearchErrorCode.EXT_SCHEMA_REQUIRED, "Invalid date format")

    url: Optional[str] = None
    raw_url = raw.get("sourceUrl") or raw.get("url")
    if raw_url is not None:
        if not isinstance(raw_url, str) or not raw_url.lower().startswith(("http://", "https://")):
            return _reject(SearchErrorCode.EXT_URL_SCHEME, "Invalid URL scheme (must be http/https)")
        url = strip_tracking_params(raw_url.strip())

    end_at = None
    raw_end = raw.get("endAt") or raw.get("end_at")
    if raw_end:
        end_at = _parse_datetime_value(raw_end)

    result = SearchResult(
        source=ResultSource.EXTERNAL,
        title=title,
        start_at=start_at,
        end_at=end_at,
        venue=_optional_str(raw, "venue", "venueName"),
        address=_optional_str(raw, "address"),
        city=_optional_str(raw, "city"),
        country=_optional_str(raw, "country"),
        lat=_optional_float(raw.get("lat")),
        lng=_optional_float(raw.get("lng")),
        url=url,
        snippet=truncate(description) if description else None,
        categories=_categories(raw),
        price_free=raw.get("priceFree") if isinstance(raw.get("priceFree"), bool) else None,
        image_url=_optional_str(raw, "imageUrl", "image_url"),
        source_label=source_label(provider),
        provider=provider,
        is_online=bool(raw.get("isOnline")),
    )
    return ValidationOutcome(result=result)
