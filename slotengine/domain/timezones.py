"""
Wall-clock helpers for reading and constructing instants in a named timezone.

Every hour, weekday and date comparison in the engine goes through this
module. Same-day checks compare ``date_string_in_zone`` values rather than
subtracting instants, so DST and odd offsets (UTC+5:30) cannot skew them.
"""

from __future__ import annotations

from datetime import datetime

import pendulum
from pendulum import DateTime
from pendulum.tz.timezone import FixedTimezone, Timezone

from .exceptions import InvalidTimezone

DISPLAY_FORMAT = "ddd, MMM D, h:mm A"


def resolve_timezone(name: str) -> Timezone | FixedTimezone:
    """Resolve an IANA zone name, failing loudly on anything unknown."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimezone(name)
    try:
        return pendulum.timezone(name.strip())
    except (ValueError, KeyError) as exc:
        raise InvalidTimezone(name) from exc


def ensure_instant(value: datetime) -> DateTime:
    """Coerce a stdlib datetime into a pendulum ``DateTime``."""
    if isinstance(value, DateTime):
        return value
    if not isinstance(value, datetime):
        raise TypeError(f"Expected a datetime, got {type(value).__name__}")
    return pendulum.instance(value)


def as_utc(instant: datetime) -> DateTime:
    """
    The same instant in UTC.

    Two datetimes sharing one tzinfo compare by wall clock and ignore
    ``fold``, which orders 01:30 EDT after 01:00 EST on a fall-back night.
    Instants that get ordered or subtracted go through here first.
    """
    return ensure_instant(instant).in_timezone("UTC")


def in_zone(instant: datetime, zone: str) -> DateTime:
    """Return the same instant expressed in ``zone``."""
    return ensure_instant(instant).in_timezone(resolve_timezone(zone))


def hour_in_zone(instant: datetime, zone: str) -> int:
    """Local hour (0-23) as displayed in ``zone``."""
    return in_zone(instant, zone).hour


def minute_in_zone(instant: datetime, zone: str) -> int:
    return in_zone(instant, zone).minute


def weekday_in_zone(instant: datetime, zone: str) -> int:
    """Local weekday in ``zone`` with 0=Sunday ... 6=Saturday."""
    # datetime.weekday() is 0=Monday, independent of pendulum's WeekDay enum
    return (in_zone(instant, zone).weekday() + 1) % 7


def date_string_in_zone(instant: datetime, zone: str) -> str:
    """Local calendar date in ``zone`` as ``YYYY-MM-DD``."""
    return in_zone(instant, zone).to_date_string()


def at_hour_in_zone(instant: datetime, hour: int, zone: str) -> DateTime:
    """
    Return the instant whose wall-clock time in ``zone`` is ``hour:00:00.000``
    on the same local calendar date as ``instant``.

    The local time is built from the timezone database, so DST gaps resolve
    forward (02:00 on a spring-forward day becomes 03:00) and an hour that
    occurs twice on a fall-back day resolves to its first occurrence.
    """
    if not 0 <= hour <= 23:
        raise ValueError(f"Hour must be between 0 and 23, got {hour}")
    tz = resolve_timezone(zone)
    local = in_zone(instant, zone)
    resolved = pendulum.datetime(local.year, local.month, local.day, hour, tz=tz, fold=0)
    if resolved.hour != hour:
        # Nonexistent wall time
        resolved = pendulum.datetime(local.year, local.month, local.day, hour, tz=tz, fold=1)
    return resolved


def next_day_at_hour(instant: datetime, hour: int, zone: str) -> DateTime:
    """``hour:00`` on the local calendar day after ``instant``."""
    return at_hour_in_zone(in_zone(instant, zone).add(days=1), hour, zone)


def start_of_day_in_zone(instant: datetime, zone: str) -> DateTime:
    return in_zone(instant, zone).start_of("day")


def end_of_day_in_zone(instant: datetime, zone: str) -> DateTime:
    return in_zone(instant, zone).end_of("day")


def parse_instant(value: str, zone: str = "UTC") -> DateTime:
    """
    Parse an ISO 8601 string into an instant.

    Strings without an offset are read as wall-clock time in ``zone``.
    """
    tz = resolve_timezone(zone)
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as exc:
        raise ValueError(f"Could not parse datetime: {value!r}") from exc

    if not isinstance(parsed, DateTime):
        raise ValueError(f"Could not parse datetime: {value!r}")
    return parsed


def format_in_zone(instant: datetime, zone: str) -> str:
    """Human/voice friendly wall-clock rendering, e.g. ``Tue, Feb 6, 9:00 AM``."""
    return in_zone(instant, zone).format(DISPLAY_FORMAT)
