"""
Application service for finding free meeting slots.

The service fetches busy periods once per search via the calendar client
and delegates the actual scan to the domain-level ``SlotScanner``. A failed
free/busy query is always surfaced: an empty slot list would be
indistinguishable from a genuinely full calendar.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List

import pendulum

from ..domain.constraints import (
    DEFAULT_WINDOW_DAYS,
    SearchConstraints,
    TimePreference,
    normalize_constraints,
    resolve_search_window,
)
from ..domain.exceptions import AvailabilityQueryFailed, DegenerateConstraints, ProviderError
from ..domain.models import AvailabilitySlot, TimeRange, sort_busy_periods
from ..domain.slot_scanner import SlotScanner
from ..domain.timezones import ensure_instant
from .calendar_client import CalendarClientProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotSearchResult:
    """Slots found for a search, with the constraints that produced them."""
    constraints: SearchConstraints
    slots: List[AvailabilitySlot] = field(default_factory=list)
    problem: DegenerateConstraints | None = None

    @property
    def is_degenerate(self) -> bool:
        return self.problem is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slots": [slot.to_dict(self.constraints.timezone) for slot in self.slots],
            "problem": str(self.problem) if self.problem else None,
        }


class AvailabilityService:
    """
    Orchestrates busy-period retrieval and slot scanning.

    Stateless apart from its collaborators; safe to share across concurrent
    searches.
    """

    def __init__(
        self,
        calendar_client: CalendarClientProtocol,
        slot_scanner: SlotScanner | None = None,
        default_timezone: str = "Asia/Kolkata",
        window_days: int = DEFAULT_WINDOW_DAYS,
    ) -> None:
        self._calendar_client = calendar_client
        self._slot_scanner = slot_scanner or SlotScanner()
        self._default_timezone = default_timezone
        self._window_days = window_days

    async def find_available_slots(
        self,
        duration_minutes: int,
        window_start: datetime,
        window_end: datetime,
        **options: Any,
    ) -> List[AvailabilitySlot]:
        """Return free slots only; see ``search_available_slots`` for options."""
        result = await self.search_available_slots(
            duration_minutes, window_start, window_end, **options
        )
        return result.slots

    async def search_available_slots(
        self,
        duration_minutes: int,
        window_start: datetime,
        window_end: datetime,
        *,
        preference: TimePreference | str | None = None,
        not_before: int | None = None,
        not_after: int | None = None,
        excluded_weekdays: Iterable[int] | None = None,
        buffer_before_minutes: int | None = None,
        buffer_after_minutes: int | None = None,
        timezone: str | None = None,
        now: datetime | None = None,
    ) -> SlotSearchResult:
        """
        Normalize the request, fetch busy periods and scan for free slots.

        Args:
            duration_minutes: Meeting length
            window_start: Start of the search window
            window_end: End of the search window
            preference: morning / afternoon / evening / any
            not_before: Explicit earliest start hour (overrides preference)
            not_after: Explicit latest hour; disables end-of-day pruning
            excluded_weekdays: Weekdays to skip, 0=Sunday
            buffer_before_minutes: Free time required before the slot
            buffer_after_minutes: Free time required after the slot
            timezone: IANA zone for all wall-clock decisions
            now: Current instant (defaults to the system clock)

        Raises:
            InvalidTimezone: If the timezone is unknown
            AvailabilityQueryFailed: If busy periods cannot be fetched
            CalendarAuthExpired / CalendarNotConnected: On credential problems
        """
        constraints = normalize_constraints(
            duration_minutes=duration_minutes,
            window_start=window_start,
            window_end=window_end,
            timezone=timezone or self._default_timezone,
            preference=preference,
            not_before=not_before,
            not_after=not_after,
            excluded_weekdays=excluded_weekdays,
            buffer_before_minutes=buffer_before_minutes,
            buffer_after_minutes=buffer_after_minutes,
        )

        problem = constraints.problem()
        if problem is not None:
            logger.info("Search cannot match any slot: %s", problem)
            return SlotSearchResult(constraints=constraints, problem=problem)

        busy_periods = await self.fetch_busy_periods(constraints)
        slots = self.calculate_slots(
            constraints=constraints,
            busy_periods=busy_periods,
            now=now if now is not None else pendulum.now("UTC"),
        )
        return SlotSearchResult(constraints=constraints, slots=slots)

    async def search_available_slots_between_dates(
        self,
        duration_minutes: int,
        start_date: str,
        end_date: str,
        **options: Any,
    ) -> SlotSearchResult:
        """Search whole local days given as ``YYYY-MM-DD`` strings."""
        timezone = options.get("timezone") or self._default_timezone
        window_start, window_end = resolve_search_window(
            start_date, end_date, timezone, window_days=self._window_days
        )
        return await self.search_available_slots(
            duration_minutes, window_start, window_end, **options
        )

    async def fetch_busy_periods(self, constraints: SearchConstraints) -> List[TimeRange]:
        """Fetch busy periods covering everything the scan may look at."""
        lookup = constraints.busy_lookup_range()
        try:
            busy_periods = await self._calendar_client.query_free_busy(lookup.start, lookup.end)
        except ProviderError as exc:
            logger.warning("Free/busy query for %s failed: %s", lookup, exc)
            raise AvailabilityQueryFailed(f"Could not fetch busy periods: {exc}") from exc

        logger.debug("Fetched %d busy periods for %s", len(busy_periods), lookup)
        return sort_busy_periods(busy_periods)

    def calculate_slots(
        self,
        *,
        constraints: SearchConstraints,
        busy_periods: List[TimeRange],
        now: datetime,
    ) -> List[AvailabilitySlot]:
        """Calculate free slots from already fetched busy data."""
        return self._slot_scanner.scan(constraints, busy_periods, ensure_instant(now))
