"""
Google Calendar API v3 client implementing ``CalendarClientProtocol``.

The discovery client is blocking; every call runs in a worker thread so the
async services can await it. ``httplib2.Http`` is not thread-safe, so each
request executes on its own authorized transport while the discovery
service is only used to build requests. Each public method is a single
round-trip (plus page fetches), with one transparent token refresh on
HTTP 401.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Callable, Dict, List, Tuple

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pendulum import DateTime

from ..domain.exceptions import (
    CalendarAuthExpired,
    CalendarNotConnected,
    EventNotFound,
    ProviderError,
)
from ..domain.models import UNSET, CalendarEvent, EventDraft, EventPatch, TimeRange
from ..domain.timezones import in_zone, parse_instant
from .google_authenticator import GoogleAuthenticator

logger = logging.getLogger(__name__)


def _rfc3339(instant: DateTime) -> str:
    return instant.in_timezone("UTC").to_iso8601_string()


def _timed_field(instant: DateTime, timezone: str) -> Dict[str, str]:
    return {"dateTime": in_zone(instant, timezone).to_iso8601_string(), "timeZone": timezone}


class GoogleCalendarClient:
    """
    Client for Google Calendar operations.

    Uses ``freebusy.query`` for busy periods and the ``events`` collection for
    everything else. Either pass an authenticator (the discovery service is
    built lazily from its credentials) or a ready-made ``service`` resource.
    """

    def __init__(
        self,
        authenticator: GoogleAuthenticator | None = None,
        calendar_id: str = "primary",
        timezone: str = "UTC",
        service: Any = None,
    ):
        """
        Initialize the Google Calendar client.

        Args:
            authenticator: Source of credentials, also used to refresh on 401
            calendar_id: Calendar to operate on
            timezone: Zone used to anchor all-day events
            service: Pre-built ``calendar v3`` resource (tests, custom transports)
        """
        self.calendar_id = calendar_id
        self.timezone = timezone
        self._authenticator = authenticator
        self._service = service

    async def query_free_busy(self, start_time: DateTime, end_time: DateTime) -> List[TimeRange]:
        body = {
            "timeMin": _rfc3339(start_time),
            "timeMax": _rfc3339(end_time),
            "items": [{"id": self.calendar_id}],
        }
        data = await self._call(
            "Free/busy query",
            lambda service: service.freebusy().query(body=body),
        )
        return self._parse_free_busy(data)

    async def list_events(self, start_time: DateTime, end_time: DateTime) -> List[CalendarEvent]:
        return await self._list("List events", start_time, end_time)

    async def search_events(
        self,
        query: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[CalendarEvent]:
        return await self._list("Search events", start_time, end_time, q=query)

    async def get_event(self, event_id: str) -> CalendarEvent:
        data = await self._call(
            "Get event",
            lambda service: service.events().get(calendarId=self.calendar_id, eventId=event_id),
            event_id=event_id,
        )
        if data.get("status") == "cancelled":
            raise EventNotFound(event_id)
        return self._parse_event(data)

    async def insert_event(self, draft: EventDraft) -> str:
        body: Dict[str, Any] = {
            "summary": draft.title,
            "start": _timed_field(draft.start, draft.timezone),
            "end": _timed_field(draft.end, draft.timezone),
            "reminders": {"useDefault": True},
        }
        if draft.description is not None:
            body["description"] = draft.description
        if draft.attendees:
            body["attendees"] = [{"email": email} for email in draft.attendees]
        if draft.with_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }

        data = await self._call(
            "Create event",
            lambda service: service.events().insert(
                calendarId=self.calendar_id,
                body=body,
                conferenceDataVersion=1,
                sendUpdates="all",
            ),
        )
        return data["id"]

    async def patch_event(self, event_id: str, patch: EventPatch) -> None:
        body = self._patch_body(patch)
        await self._call(
            "Update event",
            lambda service: service.events().patch(
                calendarId=self.calendar_id,
                eventId=event_id,
                body=body,
                sendUpdates="all",
            ),
            event_id=event_id,
        )

    async def delete_event(self, event_id: str) -> None:
        await self._call(
            "Delete event",
            lambda service: service.events().delete(
                calendarId=self.calendar_id,
                eventId=event_id,
                sendUpdates="all",
            ),
            event_id=event_id,
        )

    async def _list(
        self,
        operation: str,
        start_time: DateTime,
        end_time: DateTime,
        **filters: Any,
    ) -> List[CalendarEvent]:
        events: List[CalendarEvent] = []
        page_token = None

        while True:
            params = {
                "calendarId": self.calendar_id,
                "timeMin": _rfc3339(start_time),
                "timeMax": _rfc3339(end_time),
                "singleEvents": True,
                "orderBy": "startTime",
                **filters,
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self._call(operation, lambda service: service.events().list(**params))
            events.extend(
                self._parse_event(item)
                for item in data.get("items", [])
                if item.get("status") != "cancelled"
            )

            page_token = data.get("nextPageToken")
            if not page_token:
                return events

    async def _call(
        self,
        operation: str,
        make_request: Callable[[Any], Any],
        event_id: str | None = None,
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(self._execute, operation, make_request, event_id)

    def _execute(
        self,
        operation: str,
        make_request: Callable[[Any], Any],
        event_id: str | None,
    ) -> Dict[str, Any]:
        try:
            return self._run(operation, make_request)
        except HttpError as exc:
            if exc.resp.status != 401 or self._authenticator is None:
                raise self._translate_error(operation, exc, event_id) from exc
            logger.info("%s was rejected with HTTP 401; refreshing token and retrying", operation)

        self._authenticator.refresh()

        try:
            return self._run(operation, make_request)
        except HttpError as exc:
            raise self._translate_error(operation, exc, event_id) from exc

    def _run(self, operation: str, make_request: Callable[[Any], Any]) -> Dict[str, Any]:
        try:
            request = make_request(self._get_service())
            return request.execute(http=self._authorized_http()) or {}
        except RefreshError as exc:
            raise CalendarAuthExpired(
                "Calendar authentication expired. Please reconnect your Google account."
            ) from exc
        except (OSError, httplib2.HttpLib2Error, TransportError) as exc:
            logger.warning("%s failed: %s", operation, exc)
            raise ProviderError(f"{operation} failed: {exc}", operation=operation) from exc

    def _authorized_http(self) -> AuthorizedHttp | None:
        """
        A fresh transport for one request.

        Returns None for an injected service without an authenticator, in
        which case the request runs on the service's own transport. Refresh
        on 401 is left to ``_execute`` so rotated tokens reach the cache.
        """
        if self._authenticator is None:
            return None
        return AuthorizedHttp(
            self._authenticator.get_credentials(),
            http=httplib2.Http(),
            refresh_status_codes=(),
        )

    def _get_service(self) -> Any:
        if self._service is None:
            if self._authenticator is None:
                raise CalendarNotConnected("No Google credentials configured.")
            credentials = self._authenticator.get_credentials()
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    def _translate_error(
        self,
        operation: str,
        error: HttpError,
        event_id: str | None,
    ) -> Exception:
        status_code = error.resp.status
        reason, message = self._parse_http_error(error)

        if status_code == 401:
            return CalendarAuthExpired(
                "Calendar authentication expired. Please reconnect your Google account."
            )
        if event_id is not None and status_code in (404, 410):
            return EventNotFound(event_id)

        logger.warning("%s failed with HTTP %s (%s): %s", operation, status_code, reason, message)
        return ProviderError(
            f"{operation} failed: HTTP {status_code} {message}",
            operation=operation,
            status_code=status_code,
            reason=reason,
        )

    @staticmethod
    def _parse_http_error(error: HttpError) -> Tuple[str, str]:
        """Extract (reason, message) from a Google API error payload."""
        content: Dict[str, Any] = {}
        try:
            content = json.loads(error.content.decode("utf-8"))
        except (json.JSONDecodeError, AttributeError, UnicodeDecodeError):
            pass

        error_info = content.get("error", {}) if isinstance(content, dict) else {}
        if not isinstance(error_info, dict):
            return "unknown", str(error_info)
        errors = error_info.get("errors") or [{}]
        reason = errors[0].get("reason", "unknown")
        message = error_info.get("message", str(error))
        return reason, message

    def _parse_free_busy(self, data: Dict[str, Any]) -> List[TimeRange]:
        """
        Parse a ``freebusy.query`` response.

        Response format:
        {
            "calendars": {
                "primary": {
                    "busy": [{"start": "2024-02-06T10:00:00Z", "end": "..."}],
                    "errors": [{"domain": "global", "reason": "notFound"}]
                }
            }
        }
        """
        calendars = data.get("calendars") or {}
        if self.calendar_id not in calendars:
            raise ProviderError(
                f"Free/busy response has no entry for calendar {self.calendar_id}",
                operation="Free/busy query",
            )
        calendar = calendars[self.calendar_id]

        errors = calendar.get("errors") or []
        if errors:
            reasons = ", ".join(e.get("reason", "unknown") for e in errors)
            raise ProviderError(
                f"Free/busy query failed for calendar {self.calendar_id}: {reasons}",
                operation="Free/busy query",
                reason=reasons,
            )

        busy: List[TimeRange] = []
        for period in calendar.get("busy", []):
            try:
                busy.append(
                    TimeRange(
                        start=parse_instant(period["start"]),
                        end=parse_instant(period["end"]),
                    )
                )
            except (KeyError, ValueError) as exc:
                raise ProviderError(
                    f"Malformed busy period {period!r}: {exc}",
                    operation="Free/busy query",
                ) from exc
        return busy

    def _parse_event(self, event: Dict[str, Any]) -> CalendarEvent:
        """Extract the fields we care about from a raw Calendar API event."""
        start = event.get("start", {})
        end = event.get("end", {})

        conference_link = event.get("hangoutLink")
        if not conference_link:
            for entry in event.get("conferenceData", {}).get("entryPoints", []):
                if entry.get("entryPointType") == "video":
                    conference_link = entry.get("uri")
                    break

        return CalendarEvent(
            id=event.get("id", ""),
            title=event.get("summary", ""),
            start=self._parse_event_time(start),
            end=self._parse_event_time(end),
            description=event.get("description"),
            attendees=[a["email"] for a in event.get("attendees", []) if a.get("email")],
            html_link=event.get("htmlLink"),
            conference_link=conference_link,
        )

    def _parse_event_time(self, value: Dict[str, str]) -> DateTime:
        zone = value.get("timeZone") or self.timezone
        try:
            if "dateTime" in value:
                return parse_instant(value["dateTime"], zone)
            # All-day events carry a bare date, anchored at local midnight
            return parse_instant(value["date"], zone)
        except (KeyError, ValueError) as exc:
            raise ProviderError(
                f"Malformed event time {value!r}: {exc}",
                operation="Parse event",
            ) from exc

    @staticmethod
    def _patch_body(patch: EventPatch) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if patch.title is not UNSET:
            body["summary"] = patch.title
        if patch.description is not UNSET:
            body["description"] = patch.description or ""
        if patch.start is not UNSET:
            body["start"] = _timed_field(patch.start, patch.timezone)
        if patch.end is not UNSET:
            body["end"] = _timed_field(patch.end, patch.timezone)
        if patch.attendees is not UNSET:
            body["attendees"] = [{"email": email} for email in patch.attendees]
        return body
