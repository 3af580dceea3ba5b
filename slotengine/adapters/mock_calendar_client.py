"""
In-memory calendar for testing and demos without Google authentication.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from pendulum import DateTime

from ..domain.exceptions import EventNotFound
from ..domain.models import UNSET, CalendarEvent, EventDraft, EventPatch, TimeRange
from ..domain.timezones import as_utc, parse_instant

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockCalendarClient:
    """
    Mock client that behaves like the Google Calendar adapter.

    Events live in memory and can be seeded from a JSON file
    (``mock_calendar_data.json`` next to this module by default). Mutations
    are recorded in ``inserted``, ``patched`` and ``deleted`` so tests can
    inspect what the services sent.
    """

    def __init__(
        self,
        events: Sequence[CalendarEvent] | None = None,
        calendar_id: str = "primary",
        data_file: Path | None = None,
        timezone: str = "UTC",
    ):
        """
        Initialize the mock client.

        Args:
            events: Initial events; when omitted they are loaded from ``data_file``
            calendar_id: Only JSON entries for this calendar are loaded
            data_file: JSON file with mock events
            timezone: Zone for JSON timestamps without an offset
        """
        self.calendar_id = calendar_id
        self.timezone = timezone
        self.inserted: List[EventDraft] = []
        self.patched: List[Tuple[str, EventPatch]] = []
        self.deleted: List[str] = []

        if events is None:
            events = self._load_calendar_data(data_file or DEFAULT_DATA_FILE)
        self._events: Dict[str, CalendarEvent] = {event.id: event for event in events}

    def _load_calendar_data(self, data_file: Path) -> List[CalendarEvent]:
        """Load mock calendar data from a JSON file."""
        if not data_file.exists():
            return []

        with open(data_file, "r", encoding="utf-8") as f:
            raw_events = json.load(f)

        events: List[CalendarEvent] = []
        for raw in raw_events:
            if raw.get("calendarId", self.calendar_id) != self.calendar_id:
                continue
            try:
                events.append(
                    CalendarEvent(
                        id=raw["id"],
                        title=raw.get("summary", ""),
                        start=parse_instant(raw["start"], self.timezone),
                        end=parse_instant(raw["end"], self.timezone),
                        description=raw.get("description"),
                        attendees=list(raw.get("attendees", [])),
                    )
                )
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping invalid mock event %r: %s", raw, exc)
        return events

    @property
    def events(self) -> List[CalendarEvent]:
        return sorted(self._events.values(), key=lambda event: as_utc(event.start))

    async def query_free_busy(self, start_time: DateTime, end_time: DateTime) -> List[TimeRange]:
        window = TimeRange(start=start_time, end=end_time)
        busy: List[TimeRange] = []
        for event in self._overlapping(start_time, end_time):
            if as_utc(event.end) <= as_utc(event.start):
                continue
            clipped = TimeRange(start=event.start, end=event.end).intersect(window)
            if clipped is not None:
                busy.append(clipped)
        return busy

    async def list_events(self, start_time: DateTime, end_time: DateTime) -> List[CalendarEvent]:
        return self._overlapping(start_time, end_time)

    async def search_events(
        self,
        query: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[CalendarEvent]:
        needle = query.lower()
        return [
            event for event in self._overlapping(start_time, end_time)
            if needle in event.title.lower()
            or needle in (event.description or "").lower()
            or any(needle in attendee.lower() for attendee in event.attendees)
        ]

    async def get_event(self, event_id: str) -> CalendarEvent:
        try:
            return self._events[event_id]
        except KeyError:
            raise EventNotFound(event_id) from None

    async def insert_event(self, draft: EventDraft) -> str:
        event_id = uuid.uuid4().hex[:16]
        self._events[event_id] = CalendarEvent(
            id=event_id,
            title=draft.title,
            start=draft.start,
            end=draft.end,
            description=draft.description,
            attendees=list(draft.attendees),
            conference_link=f"https://meet.google.com/mock-{event_id[:8]}" if draft.with_conference else None,
        )
        self.inserted.append(draft)
        return event_id

    async def patch_event(self, event_id: str, patch: EventPatch) -> None:
        event = await self.get_event(event_id)
        changes = {}
        if patch.title is not UNSET:
            changes["title"] = patch.title
        if patch.description is not UNSET:
            changes["description"] = patch.description
        if patch.start is not UNSET:
            changes["start"] = patch.start
        if patch.end is not UNSET:
            changes["end"] = patch.end
        if patch.attendees is not UNSET:
            changes["attendees"] = list(patch.attendees)
        self._events[event_id] = replace(event, **changes)
        self.patched.append((event_id, patch))

    async def delete_event(self, event_id: str) -> None:
        if self._events.pop(event_id, None) is None:
            raise EventNotFound(event_id)
        self.deleted.append(event_id)

    def _overlapping(self, start_time: DateTime, end_time: DateTime) -> List[CalendarEvent]:
        return [
            event for event in self.events
            if as_utc(event.start) < as_utc(end_time) and as_utc(event.end) > as_utc(start_time)
        ]
