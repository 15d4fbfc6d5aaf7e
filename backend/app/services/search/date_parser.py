# backend/app/services/search/date_parser.py
"""
Canonical date/time phrase parser for Eventa search and event creation.

All "now"-relative arithmetic happens in the platform home timezone
(settings.home_timezone) regardless of the caller's locale, so "today" and
"this weekend" resolve the same way for every client.

Weekday arithmetic uses 0=Sunday..6=Saturday.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import List, Optional

import dateparser
import pytz

from app.core.config import settings
from app.services.search.date_tokens import month_number, translate_date_phrase
from app.services.search.patterns import (
    BARE_WEEKDAY,
    DAY_MONTH_PHRASE,
    ISO_DATE,
    MONTH_PHRASE,
    TIME_MENTION,
    TIME_STRICT,
    WEEKDAY_PHRASE,
    WHITESPACE,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

_DATEPARSER_LANGUAGES = ["en", "it", "es", "fr", "el"]


@dataclass(frozen=True)
class DateRange:
    """Inclusive, timezone-aware window resolved from a date phrase."""

    start: datetime
    end: datetime
    label: str

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "label": self.label}


def home_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.home_timezone)


def home_now(now: Optional[datetime] = None) -> datetime:
    """Current time in the home timezone; naive ``now`` is taken as home wall time."""
    tz = home_timezone()
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return localize_home(now)
    return now.astimezone(tz)


def localize_home(naive: datetime) -> datetime:
    """
    Attach the home timezone to a naive wall-clock datetime.

    Wall times inside a spring-forward gap are shifted forward past the gap.
    Wall times that occur twice during fall-back resolve to the first
    (daylight-saving) occurrence.
    """
    tz = home_timezone()
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.exceptions.NonExistentTimeError:
        shifted = tz.localize(naive + timedelta(hours=1), is_dst=True)
        return tz.normalize(shifted)
    except pytz.exceptions.AmbiguousTimeError:
        return tz.localize(naive, is_dst=True)


def _sunday_index(day: date) -> int:
    # Python weekday() is Monday=0; convert to Sunday=0
    return (day.weekday() + 1) % 7


def _days_until(weekday: str, today: date) -> int:
    days = (WEEKDAYS.index(weekday) - _sunday_index(today)) % 7
    return days or 7


def _days_until_weekend(today: date) -> int:
    # Saturday -> 0, Sunday -> 6 (following Saturday), otherwise upcoming Saturday
    return (6 - _sunday_index(today)) % 7


def _first_of_next_month(today: date) -> date:
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


def _next_monday(today: date) -> date:
    return today + timedelta(days=7 - today.weekday())


def _month_date(
    month: int, day: Optional[int], year: Optional[int], today: date
) -> Optional[date]:
    try:
        if year is not None:
            return date(year, month, day or 1)
        if day is None:
            if month == today.month:
                return today
            candidate = date(today.year, month, 1)
            return candidate if candidate >= today else date(today.year + 1, month, 1)
        candidate = date(today.year, month, day)
        return candidate if candidate >= today else date(today.year + 1, month, day)
    except ValueError:
        return None


def _normalize(phrase: str) -> str:
    return WHITESPACE.sub(" ", translate_date_phrase(phrase).lower().strip())


def _parse_deterministic(text: str, today: date) -> Optional[date]:
    iso = ISO_DATE.match(text)
    if iso:
        try:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except ValueError:
            return None

    if text in ("today", "tonight"):
        return today
    if text == "tomorrow":
        return today + timedelta(days=1)
    if text == "this weekend":
        return today + timedelta(days=_days_until_weekend(today))
    if text == "next weekend":
        return today + timedelta(days=_days_until_weekend(today) + 7)
    if text == "this week":
        return today
    if text == "next week":
        return _next_monday(today)
    if text == "next month":
        return _first_of_next_month(today)

    weekday = WEEKDAY_PHRASE.match(text)
    if weekday:
        return today + timedelta(days=_days_until(weekday.group(2), today))
    bare = BARE_WEEKDAY.match(text)
    if bare:
        return today + timedelta(days=_days_until(bare.group(1), today))

    month = MONTH_PHRASE.match(text)
    if month:
        return _month_date(
            month_number(month.group(1)),
            int(month.group(2)) if month.group(2) else None,
            int(month.group(3)) if month.group(3) else None,
            today,
        )
    day_month = DAY_MONTH_PHRASE.match(text)
    if day_month:
        return _month_date(
            month_number(day_month.group(2)),
            int(day_month.group(1)),
            int(day_month.group(3)) if day_month.group(3) else None,
            today,
        )
    return None


def _parse_with_dateparser(text: str, reference: datetime) -> Optional[date]:
    try:
        parsed = dateparser.parse(
            text,
            languages=_DATEPARSER_LANGUAGES,
            settings={
                "PREFER_DATES_FROM": "future",
                "RELATIVE_BASE": reference.replace(tzinfo=None),
                "TIMEZONE": settings.home_timezone,
                "RETURN_AS_TIMEZONE_AWARE": False,
            },
        )
    except (ValueError, TypeError, OverflowError) as e:
        logger.debug(f"dateparser rejected {text!r}: {e}")
        return None
    if parsed is None:
        return None
    if parsed.date() < reference.date():
        return None
    return parsed.date()


def parse_date_phrase(phrase: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """
    Convert a natural-language date phrase into an ISO ``YYYY-MM-DD`` string.

    Args:
        phrase: "today", "next friday", "this weekend", "15 marzo", "2025-03-01"...
        now: Reference instant (defaults to now in the home timezone)

    Returns:
        ISO date string, or None when the phrase cannot be resolved
    """
    if not phrase or not str(phrase).strip():
        return None
    reference = home_now(now)
    text = _normalize(str(phrase))

    resolved = _parse_deterministic(text, reference.date())
    if resolved is None and not ISO_DATE.match(text):
        resolved = _parse_with_dateparser(text, reference)
    return resolved.isoformat() if resolved else None


def parse_time(phrase: Optional[str]) -> Optional[str]:
    """
    Convert a time phrase into 24-hour ``HH:MM``.

    Accepts "8pm", "8:30 pm", "20:00", "noon" and "midnight". Returns None
    for anything out of range or not a time.
    """
    if phrase is None:
        return None
    text = str(phrase).strip().lower()
    if not text:
        return None
    if text in ("noon", "midday"):
        return "12:00"
    if text == "midnight":
        return "00:00"

    match = TIME_STRICT.match(text)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    meridiem = (match.group(3) or "").replace(".", "")

    if minutes > 59:
        return None
    if meridiem:
        if hours < 1 or hours > 12:
            return None
        if meridiem == "pm" and hours != 12:
            hours += 12
        elif meridiem == "am" and hours == 12:
            hours = 0
    elif hours > 23:
        return None

    return f"{hours:02d}:{minutes:02d}"


def combine_local(date_iso: str, time_24h: Optional[str] = None) -> Optional[datetime]:
    """Compose a timezone-aware start from an ISO date and optional ``HH:MM`` (default 00:00)."""
    try:
        day = date.fromisoformat(date_iso)
    except (TypeError, ValueError):
        return None
    normalized = parse_time(time_24h) if time_24h else "00:00"
    if normalized is None:
        return None
    hours, minutes = (int(part) for part in normalized.split(":"))
    return localize_home(datetime.combine(day, time(hours, minutes)))


def is_past_datetime(
    date_iso: Optional[str], time_24h: Optional[str], now: Optional[datetime] = None
) -> bool:
    """True when the local wall-clock date+time is already behind now in the home timezone."""
    if not date_iso or not time_24h:
        return False
    moment = combine_local(date_iso, time_24h)
    if moment is None:
        return False
    return moment < home_now(now)


def detect_time_conflicts(text: Optional[str]) -> Optional[List[str]]:
    """
    Find distinct time-of-day mentions in free text.

    Returns the sorted distinct times when more than one is present
    (e.g. "meet at 7pm, doors 8:30pm"), otherwise None.
    """
    if not text:
        return None
    times = set()
    for match in TIME_MENTION.finditer(text):
        parsed = parse_time(match.group(0))
        if parsed:
            times.add(parsed)
    if len(times) > 1:
        return sorted(times)
    return None


def _day_bounds(start_day: date, end_day: date) -> tuple[datetime, datetime]:
    start = localize_home(datetime.combine(start_day, time.min))
    end = localize_home(datetime.combine(end_day, time(23, 59, 59)))
    return start, end


def resolve_date_range(phrase: Optional[str], now: Optional[datetime] = None) -> Optional[DateRange]:
    """
    Resolve a date phrase into a window.

    Range phrases (weekend, week, month) give multi-day windows; any other
    parseable phrase gives a single-day window.
    """
    if not phrase or not str(phrase).strip():
        return None
    reference = home_now(now)
    today = reference.date()
    text = _normalize(str(phrase))

    if text in ("this weekend", "next weekend"):
        saturday = today + timedelta(days=_days_until_weekend(today))
        if text == "next weekend":
            saturday += timedelta(days=7)
        start, end = _day_bounds(saturday, saturday + timedelta(days=1))
        return DateRange(start, end, text)

    if text == "this week":
        start, end = _day_bounds(today, today + timedelta(days=6 - today.weekday()))
        return DateRange(start, end, text)

    if text == "next week":
        monday = _next_monday(today)
        start, end = _day_bounds(monday, monday + timedelta(days=6))
        return DateRange(start, end, text)

    if text == "next month":
        first = _first_of_next_month(today)
        last = date(first.year, first.month, calendar.monthrange(first.year, first.month)[1])
        start, end = _day_bounds(first, last)
        return DateRange(start, end, text)

    if text == "tonight":
        start = localize_home(datetime.combine(today, time(18, 0)))
        _, end = _day_bounds(today, today)
        return DateRange(start, end, text)

    month = MONTH_PHRASE.match(text)
    if month and not month.group(2):
        first = _month_date(
            month_number(month.group(1)),
            None,
            int(month.group(3)) if month.group(3) else None,
            today,
        )
        if first is None:
            return None
        last = date(first.year, first.month, calendar.monthrange(first.year, first.month)[1])
        start, end = _day_bounds(first, last)
        return DateRange(start, end, text)

    iso = parse_date_phrase(phrase, now=reference)
    if iso is None:
        return None
    day = date.fromisoformat(iso)
    start, end = _day_bounds(day, day)
    return DateRange(start, end, text)
