"""
Domain models for busy intervals, offered slots and meetings.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List

from pendulum import DateTime

from .timezones import as_utc, ensure_instant, format_in_zone, in_zone


class _Unset:
    """Marker for 'field not supplied' in partial updates (distinct from None)."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end. Both ends are stored in UTC so
    ordering holds across a DST fall-back.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """
        Check if this range overlaps with another.

        Ranges that only touch (one ends exactly where the other starts)
        do not overlap.
        """
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def expanded(self, before_minutes: int = 0, after_minutes: int = 0) -> "TimeRange":
        """Return the range padded by buffers on each side."""
        return TimeRange(
            start=self.start.subtract(minutes=before_minutes),
            end=self.end.add(minutes=after_minutes),
        )

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


def sort_busy_periods(busy_periods: Iterable[TimeRange]) -> List[TimeRange]:
    """Busy periods ordered ascending by start."""
    return sorted(busy_periods, key=lambda r: r.start)


def is_free(candidate: TimeRange, busy_periods: Iterable[TimeRange]) -> bool:
    """True iff no busy period overlaps the (already buffered) candidate."""
    return not any(candidate.overlaps(busy) for busy in busy_periods)


@dataclass(frozen=True)
class AvailabilitySlot:
    """
    A free slot offered to the caller. Unavailable candidates are never
    materialized, so ``available`` is always True for emitted slots.
    """
    time_range: TimeRange
    available: bool = True

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end

    def format_display(self, timezone: str) -> str:
        """
        Format the slot for display in the caller's timezone.
        Format: Tue, Feb 6, 9:00 AM - 9:30 AM (30 min)
        """
        start = format_in_zone(self.start, timezone)
        end = in_zone(self.end, timezone).format("h:mm A")
        return f"{start} - {end} ({self.time_range.duration_minutes()} min)"

    def to_dict(self, timezone: str) -> Dict[str, Any]:
        """ISO instants for scheduling plus wall-clock strings for reading aloud."""
        return {
            "start": self.start.in_timezone("UTC").to_iso8601_string(),
            "end": self.end.in_timezone("UTC").to_iso8601_string(),
            "startFormatted": format_in_zone(self.start, timezone),
            "endFormatted": format_in_zone(self.end, timezone),
            "available": self.available,
        }


@dataclass
class Meeting:
    """
    A meeting to be created. The end time is always derived from
    ``start_time + duration_minutes`` and never stored.
    """
    title: str
    start_time: DateTime
    duration_minutes: int
    description: str | None = None
    attendees: List[str] = field(default_factory=list)
    timezone: str | None = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Meeting title must not be empty")
        if self.duration_minutes <= 0:
            raise ValueError(f"Meeting duration must be positive, got {self.duration_minutes}")
        self.start_time = ensure_instant(self.start_time)

    @property
    def end_time(self) -> DateTime:
        return self.start_time.add(minutes=self.duration_minutes)


@dataclass
class MeetingUpdate:
    """
    Partial update for an existing meeting.

    Fields left at ``UNSET`` are not touched. ``None`` means "clear" and is
    only accepted for the clearable fields (description, attendees).
    """
    title: Any = UNSET
    description: Any = UNSET
    start_time: Any = UNSET
    duration_minutes: Any = UNSET
    attendees: Any = UNSET
    timezone: Any = UNSET

    def __post_init__(self):
        for name in ("title", "start_time", "duration_minutes"):
            if getattr(self, name) is None:
                raise ValueError(f"'{name}' cannot be cleared")
        if self.is_set("title") and not str(self.title).strip():
            raise ValueError("Meeting title must not be empty")
        if self.is_set("duration_minutes") and self.duration_minutes <= 0:
            raise ValueError(f"Meeting duration must be positive, got {self.duration_minutes}")
        if self.is_set("start_time"):
            self.start_time = ensure_instant(self.start_time)

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    def is_empty(self) -> bool:
        return not any(self.is_set(f.name) for f in fields(self) if f.name != "timezone")


@dataclass(frozen=True)
class EventDraft:
    """Provider-neutral description of an event to insert."""
    title: str
    start: DateTime
    end: DateTime
    timezone: str
    description: str | None = None
    attendees: List[str] = field(default_factory=list)
    with_conference: bool = True

    @classmethod
    def from_meeting(cls, meeting: Meeting, timezone: str) -> "EventDraft":
        return cls(
            title=meeting.title,
            start=meeting.start_time,
            end=meeting.end_time,
            timezone=meeting.timezone or timezone,
            description=meeting.description,
            attendees=list(meeting.attendees),
        )


@dataclass(frozen=True)
class EventPatch:
    """Provider-neutral partial event change; ``UNSET`` fields are omitted."""
    title: Any = UNSET
    description: Any = UNSET
    start: Any = UNSET
    end: Any = UNSET
    timezone: str = "UTC"
    attendees: Any = UNSET

    def changed_fields(self) -> List[str]:
        return [
            f.name for f in fields(self)
            if f.name != "timezone" and getattr(self, f.name) is not UNSET
        ]


@dataclass
class CalendarEvent:
    """An event as read back from the calendar provider."""
    id: str
    title: str
    start: DateTime
    end: DateTime
    description: str | None = None
    attendees: List[str] = field(default_factory=list)
    html_link: str | None = None
    conference_link: str | None = None

    def duration_minutes(self) -> int:
        return int((as_utc(self.end) - as_utc(self.start)).total_seconds() / 60)

    def to_dict(self, timezone: str) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "startTime": self.start.in_timezone("UTC").to_iso8601_string(),
            "endTime": self.end.in_timezone("UTC").to_iso8601_string(),
            "startTimeFormatted": format_in_zone(self.start, timezone),
            "endTimeFormatted": format_in_zone(self.end, timezone),
            "attendees": list(self.attendees),
        }
