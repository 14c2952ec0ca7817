"""Tests for calendar-day projection and the streak utility."""

from datetime import UTC, date, datetime, timedelta

from hypothesis import given
from hypothesis import strategies as st

from aura_workers.dates import (
    consecutive_day_streak,
    local_date,
    normalize_timezone_name,
    resolve_timezone_context,
    streak_start,
    unique_days_desc,
)

D = date(2024, 1, 10)


class TestConsecutiveDayStreak:
    def test_empty_input_is_zero(self):
        assert consecutive_day_streak([]) == 0

    def test_single_day_is_one(self):
        assert consecutive_day_streak([D]) == 1

    def test_three_consecutive_days(self):
        assert consecutive_day_streak([D, D - timedelta(days=1), D - timedelta(days=2)]) == 3

    def test_gap_stops_the_walk(self):
        days = [D, D - timedelta(days=1), D - timedelta(days=2), D - timedelta(days=4)]
        assert consecutive_day_streak(days) == 3

    def test_same_day_timestamps_are_deduplicated(self):
        points = [
            datetime(2024, 1, 10, 8, 0, tzinfo=UTC),
            datetime(2024, 1, 10, 20, 0, tzinfo=UTC),
            datetime(2024, 1, 9, 12, 0, tzinfo=UTC),
        ]
        assert consecutive_day_streak(points) == 2

    def test_streak_counts_from_most_recent_day_not_longest_run(self):
        days = [D, D - timedelta(days=2), D - timedelta(days=3), D - timedelta(days=4)]
        assert consecutive_day_streak(days) == 1

    def test_timezone_changes_the_calendar_day(self):
        # 23:30 UTC on Jan 9 is already Jan 10 in Berlin.
        points = [
            datetime(2024, 1, 9, 23, 30, tzinfo=UTC),
            datetime(2024, 1, 9, 10, 0, tzinfo=UTC),
        ]
        assert consecutive_day_streak(points) == 1
        assert consecutive_day_streak(points, "Europe/Berlin") == 2

    @given(st.sets(st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 1, 1)), max_size=40))
    def test_streak_bounded_by_unique_days(self, days):
        streak = consecutive_day_streak(days)
        assert 0 <= streak <= len(days)
        assert (streak == 0) == (len(days) == 0)

    @given(
        st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 1, 1)),
        st.integers(min_value=1, max_value=30),
    )
    def test_unbroken_run_counts_every_day(self, end, length):
        days = [end - timedelta(days=i) for i in range(length)]
        assert consecutive_day_streak(days) == length
        assert streak_start(days) == end - timedelta(days=length - 1)

    @given(st.sets(st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 1, 1)), min_size=1, max_size=40))
    def test_adding_an_older_day_after_a_gap_never_changes_the_streak(self, days):
        oldest = min(days)
        before = consecutive_day_streak(days)
        if before == len(days):
            older = oldest - timedelta(days=2)
        else:
            older = oldest - timedelta(days=1)
        assert consecutive_day_streak(days | {older}) == before


class TestStreakStart:
    def test_none_without_input(self):
        assert streak_start([]) is None

    def test_first_day_of_current_run(self):
        days = [D, D - timedelta(days=1), D - timedelta(days=5)]
        assert streak_start(days) == D - timedelta(days=1)


class TestTimezones:
    def test_normalize_accepts_iana_names(self):
        assert normalize_timezone_name("Europe/Berlin") == "Europe/Berlin"
        assert normalize_timezone_name(" utc ") == "UTC"

    def test_normalize_rejects_garbage(self):
        assert normalize_timezone_name("Mars/Olympus") is None
        assert normalize_timezone_name("") is None
        assert normalize_timezone_name(42) is None

    def test_missing_preference_is_an_explicit_assumption(self):
        ctx = resolve_timezone_context(None)
        assert ctx["timezone"] == "UTC"
        assert ctx["assumed"] is True
        assert ctx["assumption_disclosure"]

    def test_valid_preference_is_used(self):
        ctx = resolve_timezone_context("America/New_York")
        assert ctx == {
            "timezone": "America/New_York",
            "source": "preference",
            "assumed": False,
            "assumption_disclosure": None,
        }

    def test_local_date_treats_naive_as_utc(self):
        assert local_date(datetime(2024, 1, 10, 23, 0)) == date(2024, 1, 10)
        assert local_date(datetime(2024, 1, 10, 23, 0), "Asia/Tokyo") == date(2024, 1, 11)

    def test_local_date_passes_dates_through(self):
        assert local_date(D, "Asia/Tokyo") == D

    def test_unique_days_desc(self):
        points = [D - timedelta(days=1), D, D - timedelta(days=1)]
        assert unique_days_desc(points) == [D, D - timedelta(days=1)]
