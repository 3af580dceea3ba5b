"""
The calendar collaborator the services depend on.

Adapters (Google Calendar, the in-memory mock) implement this protocol;
services only ever talk to it, which keeps them testable with simple stubs.
"""

from __future__ import annotations

from typing import List, Protocol

from pendulum import DateTime

from ..domain.models import CalendarEvent, EventDraft, EventPatch, TimeRange


class CalendarClientProtocol(Protocol):
    """Protocol describing the calendar client behaviour needed by the services."""

    calendar_id: str

    async def query_free_busy(self, start_time: DateTime, end_time: DateTime) -> List[TimeRange]:
        """Return busy intervals between two instants."""

    async def list_events(self, start_time: DateTime, end_time: DateTime) -> List[CalendarEvent]:
        """Return single (expanded) events overlapping the window, ordered by start."""

    async def search_events(
        self,
        query: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[CalendarEvent]:
        """Free-text event search within a window."""

    async def get_event(self, event_id: str) -> CalendarEvent:
        """Fetch one event; raises ``EventNotFound`` if it does not exist."""

    async def insert_event(self, draft: EventDraft) -> str:
        """Create an event and return its provider id."""

    async def patch_event(self, event_id: str, patch: EventPatch) -> None:
        """Change only the fields present in ``patch``."""

    async def delete_event(self, event_id: str) -> None:
        """Delete an event; raises ``EventNotFound`` if it is unknown or gone."""
