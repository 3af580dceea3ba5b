"""
Domain-specific exception hierarchy for the slot engine.
"""

from __future__ import annotations


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class InvalidTimezone(SlotEngineError, ValueError):
    """Raised when a timezone name cannot be resolved."""

    def __init__(self, name: object):
        self.name = name
        super().__init__(f"Unknown timezone: {name!r}")


class ProviderError(SlotEngineError):
    """
    Raised for remote calendar failures that are not auth or not-found
    (network, rate limit, 5xx). Callers may retry with backoff.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        status_code: int | None = None,
        reason: str = "",
    ):
        self.operation = operation
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


class AvailabilityQueryFailed(SlotEngineError):
    """Raised when busy periods cannot be fetched; never reported as 'no slots'."""


class AuthenticationError(SlotEngineError):
    """Raised when authentication or token handling fails."""


class CalendarAuthExpired(AuthenticationError):
    """The stored credential was revoked or can no longer be refreshed."""


class CalendarNotConnected(AuthenticationError):
    """No usable credential exists at all."""


class EventNotFound(SlotEngineError):
    """Raised when an update/delete target does not exist (or is already gone)."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Calendar event not found: {event_id}")


class DegenerateConstraints(SlotEngineError):
    """
    Contradictory search constraints (for example start hour after end hour).

    The engine does not raise this; it is attached to a ``SlotSearchResult``
    so the caller can say "no times match" instead of "something broke".
    """
