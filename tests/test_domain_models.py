"""
Tests for domain models.
"""

from datetime import datetime, timezone

import pendulum
import pytest

from slotengine.domain.models import (
    UNSET,
    AvailabilitySlot,
    CalendarEvent,
    EventDraft,
    EventPatch,
    Meeting,
    MeetingUpdate,
    TimeRange,
    is_free,
    sort_busy_periods,
)


def _utc(hour, minute=0, day=6):
    return pendulum.datetime(2024, 2, day, hour, minute, tz="UTC")


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        tr = TimeRange(start=_utc(9), end=_utc(17))

        assert tr.start == _utc(9)
        assert tr.end == _utc(17)
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=_utc(17), end=_utc(9))

    def test_empty_time_range_raises_error(self):
        with pytest.raises(ValueError):
            TimeRange(start=_utc(9), end=_utc(9))

    def test_stdlib_datetimes_are_coerced(self):
        tr = TimeRange(
            start=datetime(2024, 2, 6, 9, 0, tzinfo=timezone.utc),
            end=datetime(2024, 2, 6, 10, 0, tzinfo=timezone.utc),
        )

        assert isinstance(tr.start, pendulum.DateTime)
        assert tr.duration_minutes() == 60

    def test_overlaps(self):
        """Test overlap detection."""
        tr1 = TimeRange(start=_utc(9), end=_utc(12))
        tr2 = TimeRange(start=_utc(11), end=_utc(14))
        tr3 = TimeRange(start=_utc(13), end=_utc(15))

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)

    def test_touching_ranges_do_not_overlap(self):
        """Ranges are half-open: a slot may start exactly when a meeting ends."""
        meeting = TimeRange(start=_utc(10), end=_utc(11))

        assert not meeting.overlaps(TimeRange(start=_utc(11), end=_utc(11, 30)))
        assert not meeting.overlaps(TimeRange(start=_utc(9, 30), end=_utc(10)))

    def test_intersect(self):
        """Test intersection calculation."""
        tr1 = TimeRange(start=_utc(9), end=_utc(12))
        tr2 = TimeRange(start=_utc(11), end=_utc(14))

        intersection = tr1.intersect(tr2)

        assert intersection == TimeRange(start=_utc(11), end=_utc(12))
        assert tr1.intersect(TimeRange(start=_utc(12), end=_utc(13))) is None

    def test_expanded(self):
        padded = TimeRange(start=_utc(10), end=_utc(11)).expanded(before_minutes=15, after_minutes=30)

        assert padded.start == _utc(9, 45)
        assert padded.end == _utc(11, 30)


class TestBusyHelpers:
    """Tests for busy-period helpers."""

    def test_sort_busy_periods(self):
        late = TimeRange(start=_utc(14), end=_utc(15))
        early = TimeRange(start=_utc(9), end=_utc(10))

        assert sort_busy_periods([late, early]) == [early, late]

    def test_is_free(self):
        busy = [TimeRange(start=_utc(10), end=_utc(11))]

        assert is_free(TimeRange(start=_utc(9), end=_utc(10)), busy)
        assert not is_free(TimeRange(start=_utc(10, 30), end=_utc(11, 30)), busy)
        assert is_free(TimeRange(start=_utc(9), end=_utc(10)), [])

    def test_one_millisecond_overlap_is_busy(self):
        busy = [TimeRange(start=_utc(10), end=_utc(11))]

        assert not is_free(TimeRange(start=_utc(9), end=_utc(10).add(microseconds=1000)), busy)
        assert not is_free(TimeRange(start=_utc(11).subtract(microseconds=1000), end=_utc(12)), busy)


class TestAvailabilitySlot:
    """Tests for slot presentation."""

    def test_to_dict(self):
        slot = AvailabilitySlot(time_range=TimeRange(start=_utc(3, 30), end=_utc(4)))

        data = slot.to_dict("Asia/Kolkata")

        assert pendulum.parse(data["start"]) == _utc(3, 30)
        assert pendulum.parse(data["end"]) == _utc(4)
        assert data["startFormatted"] == "Tue, Feb 6, 9:00 AM"
        assert data["endFormatted"] == "Tue, Feb 6, 9:30 AM"
        assert data["available"] is True

    def test_format_display(self):
        slot = AvailabilitySlot(time_range=TimeRange(start=_utc(3, 30), end=_utc(4)))

        assert slot.format_display("Asia/Kolkata") == "Tue, Feb 6, 9:00 AM - 9:30 AM (30 min)"


class TestMeeting:
    """Tests for Meeting and MeetingUpdate."""

    def test_end_time_is_derived(self):
        meeting = Meeting(title="Sync", start_time=_utc(14), duration_minutes=45)

        assert meeting.end_time == _utc(14, 45)

    def test_empty_title_rejected(self):
        with pytest.raises(ValueError, match="title"):
            Meeting(title="  ", start_time=_utc(14), duration_minutes=30)

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError, match="duration"):
            Meeting(title="Sync", start_time=_utc(14), duration_minutes=0)

    def test_update_defaults_to_unset(self):
        update = MeetingUpdate()

        assert update.title is UNSET
        assert update.is_empty()

    def test_update_with_only_timezone_is_empty(self):
        assert MeetingUpdate(timezone="Asia/Kolkata").is_empty()

    def test_update_can_clear_description(self):
        """None is an explicit 'clear', distinct from 'not supplied'."""
        update = MeetingUpdate(description=None)

        assert update.is_set("description")
        assert update.description is None
        assert not update.is_empty()

    @pytest.mark.parametrize("name", ["title", "start_time", "duration_minutes"])
    def test_update_cannot_clear_required_fields(self, name):
        with pytest.raises(ValueError, match="cannot be cleared"):
            MeetingUpdate(**{name: None})

    def test_update_rejects_non_positive_duration(self):
        with pytest.raises(ValueError):
            MeetingUpdate(duration_minutes=-5)


class TestEvents:
    """Tests for provider-neutral event types."""

    def test_draft_from_meeting(self):
        meeting = Meeting(
            title="Sync",
            start_time=_utc(14),
            duration_minutes=30,
            attendees=["a@example.com"],
        )

        draft = EventDraft.from_meeting(meeting, "Asia/Kolkata")

        assert draft.end == _utc(14, 30)
        assert draft.timezone == "Asia/Kolkata"
        assert draft.attendees == ["a@example.com"]
        assert draft.with_conference is True

    def test_patch_changed_fields(self):
        patch = EventPatch(title="New", description=None, timezone="UTC")

        assert patch.changed_fields() == ["title", "description"]

    def test_calendar_event_to_dict(self):
        event = CalendarEvent(id="evt1", title="Sync", start=_utc(3, 30), end=_utc(4, 30))

        data = event.to_dict("Asia/Kolkata")

        assert data["id"] == "evt1"
        assert data["startTimeFormatted"] == "Tue, Feb 6, 9:00 AM"
        assert data["endTimeFormatted"] == "Tue, Feb 6, 10:00 AM"
        assert event.duration_minutes() == 60


class TestFallBackRanges:
    """Ordering on the night New York falls back (2024-11-03)."""

    @staticmethod
    def _new_york(hour, minute=0):
        return pendulum.datetime(2024, 11, 3, hour, minute, tz="UTC").in_timezone("America/New_York")

    def test_range_across_the_fall_back(self):
        """01:30 EDT to 01:00 EST is thirty minutes, not negative."""
        tr = TimeRange(start=self._new_york(5, 30), end=self._new_york(6, 0))

        assert tr.duration_minutes() == 30

    def test_disjoint_ranges_in_the_repeated_hour_do_not_overlap(self):
        first = TimeRange(start=self._new_york(4, 45), end=self._new_york(5, 15))
        second = TimeRange(start=self._new_york(6, 10), end=self._new_york(6, 40))

        assert not first.overlaps(second)
        assert is_free(second, [first])
        assert sort_busy_periods([second, first]) == [first, second]

    def test_endpoints_are_stored_in_utc(self):
        tr = TimeRange(start=self._new_york(5, 30), end=self._new_york(6, 0))

        assert tr.start.timezone_name == "UTC"
        assert tr.start == pendulum.datetime(2024, 11, 3, 5, 30, tz="UTC")
