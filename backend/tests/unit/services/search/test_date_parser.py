"""Unit tests for the canonical date/time phrase parser (home timezone Australia/Melbourne)."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
import pytz

from app.services.search.date_parser import (
    WEEKDAYS,
    detect_time_conflicts,
    home_now,
    is_past_datetime,
    localize_home,
    parse_date_phrase,
    parse_time,
    resolve_date_range,
)

MELBOURNE = pytz.timezone("Australia/Melbourne")

# Saturday 2026-10-17; Melbourne DST ended Sunday 2026-04-05 and started Sunday 2026-10-04
SATURDAY = datetime(2026, 10, 17, 10, 0)
SUNDAY = datetime(2026, 10, 18, 10, 0)
DST_END_SUNDAY = datetime(2026, 4, 5, 9, 0)
DST_START_SUNDAY = datetime(2026, 10, 4, 9, 0)


def _reference_dates():
    # Three weeks around the April DST change
    start = datetime(2026, 3, 29, 12, 0)
    return [start + timedelta(days=offset) for offset in range(21)]


class TestNextWeekday:
    """``next W`` always lands strictly in the future, within a week."""

    @pytest.mark.parametrize("weekday", WEEKDAYS)
    def test_next_weekday_never_returns_reference_day(self, weekday):
        for reference in _reference_dates():
            resolved = date.fromisoformat(parse_date_phrase(f"next {weekday}", now=reference))
            delta = (resolved - reference.date()).days
            assert 1 <= delta <= 7
            assert WEEKDAYS[(resolved.weekday() + 1) % 7] == weekday

    def test_same_weekday_rolls_full_week(self):
        assert parse_date_phrase("next saturday", now=SATURDAY) == "2026-10-24"

    def test_bare_weekday(self):
        assert parse_date_phrase("friday", now=SATURDAY) == "2026-10-23"
        assert parse_date_phrase("on Monday", now=SATURDAY) == "2026-10-19"


class TestWeekendPhrases:
    def test_this_weekend_on_saturday_is_today(self):
        assert parse_date_phrase("this weekend", now=SATURDAY) == "2026-10-17"

    def test_this_weekend_on_sunday_rolls_to_following_saturday(self):
        assert parse_date_phrase("this weekend", now=SUNDAY) == "2026-10-24"

    @pytest.mark.parametrize(
        "reference, expected",
        [
            (DST_END_SUNDAY, "2026-04-11"),
            (DST_START_SUNDAY, "2026-10-10"),
        ],
    )
    def test_this_weekend_on_sunday_across_dst(self, reference, expected):
        assert parse_date_phrase("this weekend", now=reference) == expected

    def test_this_weekend_on_wednesday(self):
        assert parse_date_phrase("this weekend", now=datetime(2026, 10, 14, 8, 0)) == "2026-10-17"

    def test_next_weekend(self):
        assert parse_date_phrase("next weekend", now=SATURDAY) == "2026-10-24"

    def test_late_sunday_evening_utc_still_resolves_in_home_zone(self):
        # 2026-10-18 09:30 UTC is Sunday 20:30 in Melbourne
        utc_moment = pytz.utc.localize(datetime(2026, 10, 18, 9, 30))
        assert parse_date_phrase("this weekend", now=utc_moment) == "2026-10-24"


class TestParseDatePhrase:
    def test_relative_days(self):
        assert parse_date_phrase("today", now=SATURDAY) == "2026-10-17"
        assert parse_date_phrase("tonight", now=SATURDAY) == "2026-10-17"
        assert parse_date_phrase("Tomorrow", now=SATURDAY) == "2026-10-18"

    def test_next_week_and_month(self):
        assert parse_date_phrase("next week", now=SATURDAY) == "2026-10-19"
        assert parse_date_phrase("next month", now=SATURDAY) == "2026-11-01"
        assert parse_date_phrase("next month", now=datetime(2026, 12, 5, 9, 0)) == "2027-01-01"

    def test_iso_passthrough_and_invalid_iso(self):
        assert parse_date_phrase("2026-12-24", now=SATURDAY) == "2026-12-24"
        assert parse_date_phrase("2026-13-01", now=SATURDAY) is None

    def test_month_day_rolls_to_next_year_when_past(self):
        assert parse_date_phrase("march 15", now=SATURDAY) == "2027-03-15"
        assert parse_date_phrase("15th of december", now=SATURDAY) == "2026-12-15"

    def test_empty_and_unparseable(self):
        assert parse_date_phrase(None) is None
        assert parse_date_phrase("   ") is None
        assert parse_date_phrase("qwerty zxcv", now=SATURDAY) is None


class TestResolveDateRange:
    def test_weekend_window_spans_saturday_and_sunday(self):
        window = resolve_date_range("this weekend", now=SATURDAY)

        assert window.start == MELBOURNE.localize(datetime(2026, 10, 17, 0, 0))
        assert window.end == MELBOURNE.localize(datetime(2026, 10, 18, 23, 59, 59))
        assert window.label == "this weekend"

    def test_next_month_covers_whole_month(self):
        window = resolve_date_range("next month", now=SATURDAY)
        assert window.start_date == date(2026, 11, 1)
        assert window.end_date == date(2026, 11, 30)

    def test_bare_month_covers_month(self):
        window = resolve_date_range("february", now=SATURDAY)
        assert window.start_date == date(2027, 2, 1)
        assert window.end_date == date(2027, 2, 28)

    def test_tonight_starts_at_six_pm(self):
        window = resolve_date_range("tonight", now=SATURDAY)
        assert window.start.hour == 18
        assert window.end_date == date(2026, 10, 17)

    def test_single_day_window(self):
        window = resolve_date_range("tomorrow", now=SATURDAY)
        assert window.start_date == window.end_date == date(2026, 10, 18)

    def test_window_offsets_follow_dst(self):
        # Weekend straddling the 2026-10-04 spring-forward changes offset mid-window
        window = resolve_date_range("this weekend", now=datetime(2026, 10, 3, 9, 0))
        assert window.start.utcoffset() == timedelta(hours=10)
        assert window.end.utcoffset() == timedelta(hours=11)

    def test_unresolvable_returns_none(self):
        assert resolve_date_range("qwerty zxcv", now=SATURDAY) is None
        assert resolve_date_range("") is None

    def test_to_dict(self):
        payload = resolve_date_range("tomorrow", now=SATURDAY).to_dict()
        assert payload["label"] == "tomorrow"
        assert payload["start"].startswith("2026-10-18T00:00:00")


class TestParseTime:
    @pytest.mark.parametrize(
        "phrase, expected",
        [
            ("8pm", "20:00"),
            ("8:30 pm", "20:30"),
            ("8:30 p.m.", "20:30"),
            ("12am", "00:00"),
            ("12pm", "12:00"),
            ("7 AM", "07:00"),
            ("20:00", "20:00"),
            ("0:15", "00:15"),
            ("noon", "12:00"),
            ("midnight", "00:00"),
        ],
    )
    def test_valid_times(self, phrase, expected):
        assert parse_time(phrase) == expected

    @pytest.mark.parametrize(
        "phrase",
        ["0pm", "0am", "13pm", "23am", "10:60", "24:00", "ab:cd", "8:xx pm", "-5pm", "-1:30", "", None],
    )
    def test_rejected_times(self, phrase):
        assert parse_time(phrase) is None

    @pytest.mark.parametrize("phrase", ["8pm", "08:05", "23:59", "12am", "noon", "0:00"])
    def test_idempotent_on_own_output(self, phrase):
        once = parse_time(phrase)
        assert parse_time(once) == once


class TestTimeHelpers:
    def test_detect_time_conflicts(self):
        assert detect_time_conflicts("meet at 7pm, doors 8:30pm") == ["19:00", "20:30"]
        assert detect_time_conflicts("starts 7pm sharp, 7 pm latest") is None
        assert detect_time_conflicts("5 people in 2026") is None
        assert detect_time_conflicts(None) is None

    def test_is_past_datetime(self):
        assert is_past_datetime("2026-10-17", "09:00", now=SATURDAY) is True
        assert is_past_datetime("2026-10-17", "23:59", now=SATURDAY) is False
        assert is_past_datetime("2026-10-17", None, now=SATURDAY) is False

    def test_home_now_treats_naive_as_home_wall_time(self):
        assert home_now(SATURDAY).utcoffset() == timedelta(hours=11)
        assert home_now(SATURDAY).hour == 10


class TestLocalizeHome:
    def test_spring_forward_gap_shifts_forward(self):
        # 02:30 does not exist on 2026-10-04 in Melbourne
        localized = localize_home(datetime(2026, 10, 4, 2, 30))
        assert localized.hour == 3
        assert localized.utcoffset() == timedelta(hours=11)

    def test_fall_back_ambiguity_resolves_to_daylight_time(self):
        localized = localize_home(datetime(2026, 4, 5, 2, 30))
        assert localized.hour == 2
        assert localized.utcoffset() == timedelta(hours=11)
