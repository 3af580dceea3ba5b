"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, SlotSearchResult
from .calendar_client import CalendarClientProtocol
from .meetings import MeetingService

__all__ = ["AvailabilityService", "CalendarClientProtocol", "MeetingService", "SlotSearchResult"]
