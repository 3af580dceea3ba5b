"""
Core business logic for finding free meeting slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).

The scan is a bounded, deterministic cursor walk through the search window
in the search timezone. The cursor itself is kept in UTC; local hours and
days are read through the timezone helpers. Each call to ``SlotScanner.step`` performs exactly
one transition of the state machine, so individual decisions (skip a
weekend, snap to the start hour, emit a slot) can be tested on their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Sequence

from pendulum import DateTime

from .constraints import WEEKEND, SearchConstraints
from .models import AvailabilitySlot, TimeRange, is_free, sort_busy_periods
from .timezones import (
    as_utc,
    at_hour_in_zone,
    date_string_in_zone,
    hour_in_zone,
    in_zone,
    minute_in_zone,
    next_day_at_hour,
    weekday_in_zone,
)

logger = logging.getLogger(__name__)

DEFAULT_RESULT_CAP = 5
DEFAULT_EXPLORATION_CAP = 10
DEFAULT_STEP_MINUTES = 30


class ScanAction(str, Enum):
    """What a single scan transition decided."""
    SKIP_EXCLUDED_DAY = "skip_excluded_day"
    SKIP_WEEKEND = "skip_weekend"
    SNAP_TO_START_HOUR = "snap_to_start_hour"
    PAST_END_HOUR = "past_end_hour"
    RUNS_PAST_END_HOUR = "runs_past_end_hour"
    BUSY = "busy"
    EMIT = "emit"


@dataclass(frozen=True)
class ScanState:
    """Cursor position plus the number of free candidates collected so far."""
    cursor: DateTime
    explored: int = 0


@dataclass(frozen=True)
class ScanStep:
    """Result of one transition: the next state and, for EMIT, the slot."""
    state: ScanState
    action: ScanAction
    slot: AvailabilitySlot | None = None


def round_up_to_step(instant: datetime, timezone: str, step_minutes: int) -> DateTime:
    """
    Round ``instant`` up to the next wall-clock step boundary in ``timezone``.

    An instant already on a boundary is returned unchanged. With 30-minute
    steps, 11:10 becomes 11:30 and 11:45 becomes 12:00. The result is in UTC.
    """
    local = in_zone(instant, timezone)
    elapsed = (local.minute * 60 + local.second) * 1_000_000 + local.microsecond
    remainder = elapsed % (step_minutes * 60 * 1_000_000)
    rounded = as_utc(local)
    if remainder:
        rounded = rounded.add(microseconds=step_minutes * 60 * 1_000_000 - remainder)
    return rounded


class SlotScanner:
    """
    Walks the search window in fixed steps and collects free slots.

    Algorithm:
    1. Anchor the cursor at ``start_hour`` on the window's first local day
    2. For a search starting today, move the cursor past ``now``
    3. Step through the window, skipping excluded days, weekends (unless
       it is a single-day search) and hours outside the allowed range
    4. Emit every candidate whose buffered interval is free
    5. Stop at the window end or after ``exploration_cap`` free candidates,
       then truncate to ``result_cap``
    """

    def __init__(
        self,
        result_cap: int = DEFAULT_RESULT_CAP,
        exploration_cap: int = DEFAULT_EXPLORATION_CAP,
        step_minutes: int = DEFAULT_STEP_MINUTES,
    ):
        if result_cap <= 0 or exploration_cap <= 0:
            raise ValueError("result_cap and exploration_cap must be greater than zero")
        if step_minutes <= 0:
            raise ValueError("step_minutes must be greater than zero")
        self.result_cap = result_cap
        self.exploration_cap = exploration_cap
        self.step_minutes = step_minutes

    def scan(
        self,
        constraints: SearchConstraints,
        busy_periods: Iterable[TimeRange],
        now: datetime,
    ) -> List[AvailabilitySlot]:
        """
        Find free slots for the given constraints.

        Args:
            constraints: Normalized search constraints
            busy_periods: Busy intervals covering the search window
            now: Current instant, used to avoid offering past slots today

        Returns:
            Up to ``result_cap`` slots in chronological order
        """
        busy = sort_busy_periods(busy_periods)
        state = self.initial_state(constraints, now)
        slots: List[AvailabilitySlot] = []
        transitions = 0

        while self.is_running(state, constraints):
            step = self.step(state, constraints, busy)
            if step.slot is not None:
                slots.append(step.slot)
            state = step.state
            transitions += 1

        logger.debug(
            "Scan finished after %d transitions: %d free candidates, returning %d",
            transitions,
            len(slots),
            min(len(slots), self.result_cap),
        )
        return slots[: self.result_cap]

    def initial_state(self, constraints: SearchConstraints, now: datetime) -> ScanState:
        """Anchor the cursor and apply the 'already past' adjustment."""
        tz = constraints.timezone
        now = as_utc(now)
        cursor = as_utc(at_hour_in_zone(constraints.window_start, constraints.start_hour, tz))

        searching_today = (
            date_string_in_zone(constraints.window_start, tz) == date_string_in_zone(now, tz)
        )
        if searching_today and now > cursor:
            cursor = round_up_to_step(now, tz, self.step_minutes)

        return ScanState(cursor=cursor)

    def is_running(self, state: ScanState, constraints: SearchConstraints) -> bool:
        return (
            as_utc(state.cursor) < as_utc(constraints.window_end)
            and state.explored < self.exploration_cap
        )

    def step(
        self,
        state: ScanState,
        constraints: SearchConstraints,
        busy_periods: Sequence[TimeRange],
    ) -> ScanStep:
        """Perform one transition of the scan from ``state``."""
        tz = constraints.timezone
        cursor = as_utc(state.cursor)
        weekday = weekday_in_zone(cursor, tz)
        hour = hour_in_zone(cursor, tz)

        if weekday in constraints.excluded_weekdays:
            return self._next_day(state, constraints, ScanAction.SKIP_EXCLUDED_DAY)

        # Single-day searches may target a weekend the caller asked for
        if not constraints.single_day_search and weekday in WEEKEND:
            return self._next_day(state, constraints, ScanAction.SKIP_WEEKEND)

        if hour < constraints.start_hour:
            snapped = as_utc(at_hour_in_zone(cursor, constraints.start_hour, tz))
            return ScanStep(
                state=ScanState(cursor=snapped, explored=state.explored),
                action=ScanAction.SNAP_TO_START_HOUR,
            )

        # Starting exactly in the end hour is allowed
        if hour > constraints.end_hour:
            return self._next_day(state, constraints, ScanAction.PAST_END_HOUR)

        slot_end = cursor.add(minutes=constraints.duration_minutes)
        buffered_end = slot_end.add(minutes=constraints.buffer_after_minutes)
        if not constraints.explicit_end_hour_given and self._runs_past_end_hour(
            cursor, buffered_end, constraints
        ):
            return self._next_day(state, constraints, ScanAction.RUNS_PAST_END_HOUR)

        candidate = TimeRange(start=cursor, end=slot_end)
        buffered = candidate.expanded(
            before_minutes=constraints.buffer_before_minutes,
            after_minutes=constraints.buffer_after_minutes,
        )
        advanced = cursor.add(minutes=self.step_minutes)

        if is_free(buffered, busy_periods):
            return ScanStep(
                state=ScanState(cursor=advanced, explored=state.explored + 1),
                action=ScanAction.EMIT,
                slot=AvailabilitySlot(time_range=candidate),
            )

        return ScanStep(
            state=ScanState(cursor=advanced, explored=state.explored),
            action=ScanAction.BUSY,
        )

    def _next_day(
        self,
        state: ScanState,
        constraints: SearchConstraints,
        action: ScanAction,
    ) -> ScanStep:
        cursor = as_utc(next_day_at_hour(state.cursor, constraints.start_hour, constraints.timezone))
        return ScanStep(state=ScanState(cursor=cursor, explored=state.explored), action=action)

    @staticmethod
    def _runs_past_end_hour(
        cursor: DateTime,
        buffered_end: DateTime,
        constraints: SearchConstraints,
    ) -> bool:
        """True when the buffered slot ends after ``end_hour:00`` or on a later day."""
        tz = constraints.timezone
        if date_string_in_zone(buffered_end, tz) != date_string_in_zone(cursor, tz):
            return True
        end_hour = hour_in_zone(buffered_end, tz)
        if end_hour > constraints.end_hour:
            return True
        return end_hour == constraints.end_hour and minute_in_zone(buffered_end, tz) > 0
