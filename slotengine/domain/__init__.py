"""
Domain layer - Pure business logic without external dependencies.
"""

from .constraints import SearchConstraints, TimePreference, normalize_constraints, resolve_search_window
from .models import (
    UNSET,
    AvailabilitySlot,
    CalendarEvent,
    EventDraft,
    EventPatch,
    Meeting,
    MeetingUpdate,
    TimeRange,
)
from .slot_scanner import ScanAction, ScanState, ScanStep, SlotScanner

__all__ = [
    "UNSET",
    "AvailabilitySlot",
    "CalendarEvent",
    "EventDraft",
    "EventPatch",
    "Meeting",
    "MeetingUpdate",
    "TimeRange",
    "SearchConstraints",
    "TimePreference",
    "normalize_constraints",
    "resolve_search_window",
    "ScanAction",
    "ScanState",
    "ScanStep",
    "SlotScanner",
]
