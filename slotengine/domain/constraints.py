"""
Constraint normalization: raw search request -> fully resolved ``SearchConstraints``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Iterable, Tuple

from pendulum import DateTime

from .exceptions import DegenerateConstraints
from .models import TimeRange
from .timezones import (
    at_hour_in_zone,
    date_string_in_zone,
    end_of_day_in_zone,
    ensure_instant,
    parse_instant,
    resolve_timezone,
    start_of_day_in_zone,
)

DEFAULT_END_HOUR = 18
DEFAULT_WINDOW_DAYS = 7
WEEKEND = frozenset({0, 6})  # Sunday, Saturday


class TimePreference(str, Enum):
    """Coarse time-of-day preference expressed by the user."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANY = "any"


PREFERENCE_START_HOURS = {
    TimePreference.MORNING: 9,
    TimePreference.AFTERNOON: 13,
    TimePreference.EVENING: 17,
    TimePreference.ANY: 9,
}


def hour_from_preference(preference: TimePreference | str | None) -> int:
    """Start hour for a time-of-day preference (unknown/missing -> 9)."""
    if preference is None:
        return PREFERENCE_START_HOURS[TimePreference.ANY]
    try:
        return PREFERENCE_START_HOURS[TimePreference(preference)]
    except ValueError:
        return PREFERENCE_START_HOURS[TimePreference.ANY]


def _validate_hour(name: str, value: int | None) -> None:
    if value is not None and not 0 <= value <= 23:
        raise ValueError(f"{name} must be between 0 and 23, got {value}")


@dataclass(frozen=True)
class SearchConstraints:
    """
    Normalized, immutable constraints for a single slot search.

    Weekdays use 0=Sunday ... 6=Saturday.
    """
    duration_minutes: int
    search_window: TimeRange
    timezone: str
    start_hour: int
    end_hour: int
    excluded_weekdays: FrozenSet[int]
    buffer_before_minutes: int
    buffer_after_minutes: int
    single_day_search: bool
    explicit_end_hour_given: bool

    @property
    def window_start(self) -> DateTime:
        return self.search_window.start

    @property
    def window_end(self) -> DateTime:
        return self.search_window.end

    def busy_lookup_range(self) -> TimeRange:
        """
        Range the free/busy query must cover.

        The scan anchors at ``start_hour`` on the window's first local day,
        which can fall before a window that starts mid-day.
        """
        anchor = at_hour_in_zone(self.window_start, self.start_hour, self.timezone)
        return TimeRange(start=min(anchor, self.window_start), end=self.window_end)

    def problem(self) -> DegenerateConstraints | None:
        """Describe why these constraints can never produce a slot, if so."""
        if self.start_hour > self.end_hour:
            return DegenerateConstraints(
                f"Start hour {self.start_hour}:00 is after end hour {self.end_hour}:00"
            )
        blocked = set(self.excluded_weekdays)
        if not self.single_day_search:
            blocked |= WEEKEND
        if blocked >= set(range(7)):
            return DegenerateConstraints("Every day of the week is excluded")
        return None


def normalize_constraints(
    *,
    duration_minutes: int,
    window_start: datetime,
    window_end: datetime,
    timezone: str,
    preference: TimePreference | str | None = None,
    not_before: int | None = None,
    not_after: int | None = None,
    excluded_weekdays: Iterable[int] | None = None,
    buffer_before_minutes: int | None = None,
    buffer_after_minutes: int | None = None,
) -> SearchConstraints:
    """
    Build ``SearchConstraints`` from a raw request.

    ``start_hour > end_hour`` is accepted: such constraints just yield no
    slots, and ``SearchConstraints.problem()`` explains why.

    Raises:
        InvalidTimezone: If ``timezone`` is unknown
        ValueError: For non-positive durations, negative buffers,
            out-of-range hours/weekdays or an empty window
    """
    resolve_timezone(timezone)

    if duration_minutes <= 0:
        raise ValueError(f"Duration must be greater than zero, got {duration_minutes}")

    _validate_hour("not_before", not_before)
    _validate_hour("not_after", not_after)

    buffer_before = buffer_before_minutes or 0
    buffer_after = buffer_after_minutes or 0
    if buffer_before < 0 or buffer_after < 0:
        raise ValueError("Buffers must not be negative")

    weekdays = frozenset(excluded_weekdays or ())
    invalid_days = sorted(day for day in weekdays if day not in range(7))
    if invalid_days:
        raise ValueError(f"Excluded weekdays must be between 0 and 6, got {invalid_days}")

    start = ensure_instant(window_start)
    end = ensure_instant(window_end)
    window = TimeRange(start=start, end=end)

    single_day = (
        date_string_in_zone(start, timezone) == date_string_in_zone(end, timezone)
        or (window.end - window.start).total_seconds() < 24 * 60 * 60
    )

    return SearchConstraints(
        duration_minutes=duration_minutes,
        search_window=window,
        timezone=timezone,
        start_hour=not_before if not_before is not None else hour_from_preference(preference),
        end_hour=not_after if not_after is not None else DEFAULT_END_HOUR,
        excluded_weekdays=weekdays,
        buffer_before_minutes=buffer_before,
        buffer_after_minutes=buffer_after,
        single_day_search=single_day,
        explicit_end_hour_given=not_after is not None,
    )


def resolve_search_window(
    start_date: str,
    end_date: str,
    timezone: str,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Tuple[DateTime, DateTime]:
    """
    Turn ``YYYY-MM-DD`` dates into a search window in ``timezone``.

    The window runs from the start of ``start_date`` to the end of
    ``end_date``. If the end is not after the start, the window spans
    ``window_days`` days from the start instead.
    """
    start = start_of_day_in_zone(parse_instant(start_date, timezone), timezone)
    end = end_of_day_in_zone(parse_instant(end_date, timezone), timezone)

    if end <= start:
        end = start.add(days=window_days)

    return start, end
