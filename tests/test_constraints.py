"""
Tests for search constraint normalization.
"""

import pendulum
import pytest

from slotengine.domain.constraints import (
    TimePreference,
    hour_from_preference,
    normalize_constraints,
    resolve_search_window,
)
from slotengine.domain.exceptions import DegenerateConstraints, InvalidTimezone


def _normalize(**overrides):
    params = {
        "duration_minutes": 30,
        "window_start": pendulum.datetime(2024, 2, 5, tz="UTC"),  # Monday
        "window_end": pendulum.datetime(2024, 2, 9, 23, 59, tz="UTC"),  # Friday
        "timezone": "UTC",
    }
    params.update(overrides)
    return normalize_constraints(**params)


class TestPreferences:
    """Tests for time-of-day preferences."""

    @pytest.mark.parametrize(
        "preference, hour",
        [
            ("morning", 9),
            ("afternoon", 13),
            ("evening", 17),
            (TimePreference.ANY, 9),
            (None, 9),
            ("brunch", 9),
        ],
    )
    def test_hour_from_preference(self, preference, hour):
        assert hour_from_preference(preference) == hour


class TestNormalizeConstraints:
    """Tests for normalize_constraints."""

    def test_defaults(self):
        constraints = _normalize()

        assert constraints.start_hour == 9
        assert constraints.end_hour == 18
        assert constraints.excluded_weekdays == frozenset()
        assert constraints.buffer_before_minutes == 0
        assert constraints.buffer_after_minutes == 0
        assert constraints.explicit_end_hour_given is False
        assert constraints.single_day_search is False

    def test_not_before_overrides_preference(self):
        constraints = _normalize(preference="afternoon", not_before=11)

        assert constraints.start_hour == 11

    def test_preference_sets_start_hour(self):
        assert _normalize(preference="evening").start_hour == 17

    def test_not_after_is_explicit(self):
        constraints = _normalize(not_after=16)

        assert constraints.end_hour == 16
        assert constraints.explicit_end_hour_given is True

    def test_single_day_by_local_date(self):
        constraints = _normalize(
            window_start=pendulum.datetime(2024, 2, 6, 0, 0, tz="Asia/Kolkata"),
            window_end=pendulum.datetime(2024, 2, 6, 23, 59, tz="Asia/Kolkata"),
            timezone="Asia/Kolkata",
        )

        assert constraints.single_day_search is True

    def test_short_window_across_midnight_is_single_day(self):
        constraints = _normalize(
            window_start=pendulum.datetime(2024, 2, 6, 20, 0, tz="UTC"),
            window_end=pendulum.datetime(2024, 2, 7, 10, 0, tz="UTC"),
        )

        assert constraints.single_day_search is True

    def test_invalid_timezone(self):
        with pytest.raises(InvalidTimezone):
            _normalize(timezone="Not/AZone")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"duration_minutes": 0},
            {"buffer_before_minutes": -5},
            {"buffer_after_minutes": -1},
            {"not_before": 24},
            {"not_after": -1},
            {"excluded_weekdays": [7]},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            _normalize(**overrides)

    def test_empty_window_rejected(self):
        instant = pendulum.datetime(2024, 2, 6, tz="UTC")

        with pytest.raises(ValueError):
            _normalize(window_start=instant, window_end=instant)


class TestProblems:
    """Tests for degenerate constraint detection."""

    def test_consistent_constraints_have_no_problem(self):
        assert _normalize().problem() is None

    def test_start_after_end(self):
        problem = _normalize(not_before=15, not_after=10).problem()

        assert isinstance(problem, DegenerateConstraints)

    def test_every_weekday_excluded(self):
        """Weekends are skipped anyway on multi-day searches."""
        problem = _normalize(excluded_weekdays=[1, 2, 3, 4, 5]).problem()

        assert isinstance(problem, DegenerateConstraints)

    def test_single_day_search_may_use_weekend(self):
        constraints = _normalize(
            window_start=pendulum.datetime(2024, 2, 10, tz="UTC"),
            window_end=pendulum.datetime(2024, 2, 10, 23, 59, tz="UTC"),
            excluded_weekdays=[1, 2, 3, 4, 5],
        )

        assert constraints.problem() is None


class TestBusyLookupRange:
    """Tests for the free/busy query range."""

    def test_covers_start_hour_before_mid_day_window(self):
        constraints = _normalize(
            window_start=pendulum.datetime(2024, 2, 6, 12, 0, tz="UTC"),
            window_end=pendulum.datetime(2024, 2, 7, 12, 0, tz="UTC"),
        )

        lookup = constraints.busy_lookup_range()

        assert lookup.start == pendulum.datetime(2024, 2, 6, 9, 0, tz="UTC")
        assert lookup.end == constraints.window_end

    def test_window_starting_before_start_hour(self):
        constraints = _normalize()

        assert constraints.busy_lookup_range().start == constraints.window_start


class TestResolveSearchWindow:
    """Tests for date-string windows."""

    def test_whole_local_days(self):
        start, end = resolve_search_window("2024-02-06", "2024-02-07", "Asia/Kolkata")

        assert start == pendulum.datetime(2024, 2, 6, tz="Asia/Kolkata")
        assert end.in_timezone("Asia/Kolkata").to_date_string() == "2024-02-07"
        assert end.in_timezone("Asia/Kolkata").hour == 23

    def test_end_before_start_falls_back_to_window_days(self):
        start, end = resolve_search_window("2024-02-06", "2024-02-01", "UTC", window_days=7)

        assert end == start.add(days=7)
