"""
Meeting mutation façade: schedule, update, delete and look up meetings.

End times are always derived from start + duration. Mutations propagate
every failure; look-ups (search, last meeting of the day) are soft and
degrade to an empty result when the provider misbehaves.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ProviderError
from ..domain.models import UNSET, CalendarEvent, EventDraft, EventPatch, Meeting, MeetingUpdate
from ..domain.timezones import (
    as_utc,
    end_of_day_in_zone,
    ensure_instant,
    parse_instant,
    resolve_timezone,
    start_of_day_in_zone,
)
from .calendar_client import CalendarClientProtocol

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DAYS = 30


class MeetingService:
    """Creates and changes events through the calendar client."""

    def __init__(
        self,
        calendar_client: CalendarClientProtocol,
        default_timezone: str = "Asia/Kolkata",
        search_days: int = DEFAULT_SEARCH_DAYS,
    ) -> None:
        self._calendar_client = calendar_client
        self._default_timezone = default_timezone
        self._search_days = search_days

    async def schedule_meeting(self, meeting: Meeting) -> str:
        """
        Create the meeting with a conferencing link and notify attendees.

        Returns:
            The provider event id

        Raises:
            InvalidTimezone: If the meeting timezone is unknown
            CalendarAuthExpired: If the credential can no longer be used
            ProviderError: For any other remote failure
        """
        timezone = meeting.timezone or self._default_timezone
        resolve_timezone(timezone)

        draft = EventDraft.from_meeting(meeting, timezone)
        event_id = await self._calendar_client.insert_event(draft)

        logger.info(
            "Scheduled %r %s - %s as event %s",
            meeting.title,
            draft.start.to_iso8601_string(),
            draft.end.to_iso8601_string(),
            event_id,
        )
        return event_id

    async def update_meeting(self, event_id: str, update: MeetingUpdate) -> None:
        """
        Apply a partial update.

        A new start without a duration keeps the event's current length; a
        duration without a new start keeps the current start. Either way the
        end is recomputed from start + duration.

        Raises:
            EventNotFound: If the event does not exist
        """
        if update.is_empty():
            logger.info("Update for event %s changes nothing; skipping", event_id)
            return

        timezone = self._default_timezone
        if update.is_set("timezone") and update.timezone:
            timezone = update.timezone
        resolve_timezone(timezone)

        start, end = UNSET, UNSET
        if update.is_set("start_time") or update.is_set("duration_minutes"):
            start, end = await self._resolve_times(event_id, update)

        attendees = update.attendees
        if update.is_set("attendees"):
            attendees = list(update.attendees or [])

        patch = EventPatch(
            title=update.title,
            description=update.description,
            start=start,
            end=end,
            timezone=timezone,
            attendees=attendees,
        )
        await self._calendar_client.patch_event(event_id, patch)
        logger.info("Updated event %s (%s)", event_id, ", ".join(patch.changed_fields()))

    async def delete_meeting(self, event_id: str) -> None:
        """
        Delete the meeting.

        Raises:
            EventNotFound: If the event is unknown or already deleted
        """
        await self._calendar_client.delete_event(event_id)
        logger.info("Deleted event %s", event_id)

    async def search_events(
        self,
        query: str,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        *,
        now: datetime | None = None,
    ) -> List[CalendarEvent]:
        """
        Free-text search, by default from now over the next ``search_days``.

        Provider failures yield an empty list: not finding an event is a
        normal outcome for this look-up.
        """
        start = ensure_instant(window_start) if window_start else self._now(now)
        end = ensure_instant(window_end) if window_end else self._now(now).add(days=self._search_days)
        if as_utc(end) <= as_utc(start):
            end = start.add(days=self._search_days)

        try:
            return await self._calendar_client.search_events(query, start, end)
        except ProviderError as exc:
            logger.warning("Event search for %r failed, returning no results: %s", query, exc)
            return []

    async def last_meeting_of_day(
        self,
        day: datetime | str,
        timezone: str | None = None,
    ) -> CalendarEvent | None:
        """
        Return the event with the latest end time on a local calendar day.

        Args:
            day: Any instant on the day, or a ``YYYY-MM-DD`` string
            timezone: Zone whose midnight-to-midnight defines the day

        Returns:
            The event, or None if the day is empty or the look-up failed
        """
        tz = timezone or self._default_timezone
        day_start, day_end = self._day_bounds(day, tz)

        try:
            events = await self._calendar_client.list_events(day_start, day_end)
        except ProviderError as exc:
            logger.warning("Could not list events for %s: %s", day_start.to_date_string(), exc)
            return None

        if not events:
            return None
        return max(events, key=lambda event: as_utc(event.end))

    async def _resolve_times(self, event_id: str, update: MeetingUpdate) -> Tuple[DateTime, DateTime]:
        if update.is_set("start_time") and update.is_set("duration_minutes"):
            start = update.start_time
            duration = update.duration_minutes
        else:
            existing = await self._calendar_client.get_event(event_id)
            start = update.start_time if update.is_set("start_time") else existing.start
            duration = (
                update.duration_minutes
                if update.is_set("duration_minutes")
                else existing.duration_minutes()
            )
        return start, start.add(minutes=duration)

    @staticmethod
    def _day_bounds(day: datetime | str, timezone: str) -> Tuple[DateTime, DateTime]:
        instant = parse_instant(day, timezone) if isinstance(day, str) else ensure_instant(day)
        return start_of_day_in_zone(instant, timezone), end_of_day_in_zone(instant, timezone)

    @staticmethod
    def _now(now: datetime | None) -> DateTime:
        return ensure_instant(now) if now is not None else pendulum.now("UTC")
