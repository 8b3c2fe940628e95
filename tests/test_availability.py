"""Tests for the availability index."""

from datetime import date, time

from models import SessionStatus, TherapistAvailability
from scheduler.availability import AvailabilityIndex

MONDAY = date(2024, 6, 3)
SUNDAY = date(2024, 6, 2)
SATURDAY = date(2024, 6, 8)


def _spans(index, therapist_id, day):
    return [(i.start_minutes, i.end_minutes) for i in index.intervals_for(therapist_id, day)]


class TestRecurringExpansion:
    """Tests for expanding recurring weekly windows."""

    def test_only_matching_weekdays_are_indexed(self, make_rows):
        """A Monday-only row produces intervals on the Monday of the week only."""
        rows = make_rows("ther_01", [1])
        index = AvailabilityIndex.build(["ther_01"], rows, [], SUNDAY, SATURDAY)

        assert index.days_for("ther_01") == [MONDAY]
        assert _spans(index, "ther_01", MONDAY) == [(9 * 60, 15 * 60)]

    def test_interval_carries_window_settings(self, make_rows):
        """Buffer and remaining capacity come from the availability row."""
        rows = make_rows("ther_01", [1], buffer=10, max_per_slot=3)
        index = AvailabilityIndex.build(["ther_01"], rows, [], SUNDAY, SATURDAY)

        interval = index.intervals_for("ther_01", MONDAY)[0]
        assert interval.buffer_minutes == 10
        assert interval.remaining_capacity == 3
        assert interval.window_id == "avail_ther_01_1"

    def test_dated_row_applies_to_its_date_only(self):
        """A non-recurring row opens exactly one date."""
        row = TherapistAvailability(
            id="extra_shift",
            therapist_id="ther_01",
            specific_date=date(2024, 6, 6),
            start_time=time(13, 0),
            end_time=time(16, 0),
            is_recurring=False,
        )
        index = AvailabilityIndex.build(["ther_01"], [row], [], SUNDAY, SATURDAY)

        assert index.days_for("ther_01") == [date(2024, 6, 6)]


class TestExceptions:
    """Tests for time-off exceptions and booked sessions."""

    def test_time_off_splits_window(self, make_rows):
        """A dated time-off row is carved out of the recurring window."""
        off = TherapistAvailability(
            id="off_lunch",
            therapist_id="ther_01",
            specific_date=MONDAY,
            start_time=time(11, 0),
            end_time=time(12, 0),
            is_recurring=False,
            is_time_off=True,
        )
        rows = make_rows("ther_01", [1]) + [off]
        index = AvailabilityIndex.build(["ther_01"], rows, [], SUNDAY, SATURDAY)

        assert _spans(index, "ther_01", MONDAY) == [(9 * 60, 11 * 60), (12 * 60, 15 * 60)]

    def test_full_day_time_off_leaves_nothing(self, make_rows):
        """Whole-day leave removes the day from the index."""
        off = TherapistAvailability(
            id="off_leave",
            therapist_id="ther_01",
            specific_date=MONDAY,
            start_time=time(0, 0),
            end_time=time(23, 59),
            is_recurring=False,
            is_time_off=True,
        )
        index = AvailabilityIndex.build(["ther_01"], make_rows("ther_01", [1]) + [off], [], SUNDAY, SATURDAY)

        assert index.intervals_for("ther_01", MONDAY) == []

    def test_booked_session_carved_with_buffer(self, make_rows, make_session):
        """A 10:00-10:45 booking with a 15 minute buffer blocks until 11:00."""
        booked = make_session(MONDAY, time(10, 0), student_id="stu_009")
        index = AvailabilityIndex.build(["ther_01"], make_rows("ther_01", [1]), [booked], SUNDAY, SATURDAY)

        assert _spans(index, "ther_01", MONDAY) == [(9 * 60, 10 * 60), (11 * 60, 15 * 60)]
        assert index.intervals_for("ther_01", MONDAY)[0].remaining_capacity == 7

    def test_cancelled_session_ignored(self, make_rows, make_session):
        """Cancelled sessions no longer occupy the therapist."""
        cancelled = make_session(MONDAY, time(10, 0), status=SessionStatus.CANCELLED)
        index = AvailabilityIndex.build(["ther_01"], make_rows("ther_01", [1]), [cancelled], SUNDAY, SATURDAY)

        assert _spans(index, "ther_01", MONDAY) == [(9 * 60, 15 * 60)]

    def test_exhausted_window_skipped(self, make_rows, make_session):
        """A window whose session capacity is used up offers no intervals."""
        rows = make_rows("ther_01", [1], max_per_slot=1)
        booked = make_session(MONDAY, time(9, 0))
        index = AvailabilityIndex.build(["ther_01"], rows, [booked], SUNDAY, SATURDAY)

        assert index.intervals_for("ther_01", MONDAY) == []
        assert not index.is_free("ther_01", MONDAY, 12 * 60, 12 * 60 + 45)


class TestQueries:
    """Tests for index queries and degradation."""

    def test_unknown_therapist_warns(self, make_rows):
        """A therapist without rows yields a warning, not an error."""
        index = AvailabilityIndex.build(["ther_01", "ther_99"], make_rows("ther_01", [1]), [], SUNDAY, SATURDAY)

        assert index.known_therapists == ["ther_01"]
        assert [w.code for w in index.warnings] == ["therapist_not_found"]
        assert "ther_99" in index.warnings[0].en
        assert index.intervals_for("ther_99", MONDAY) == []

    def test_is_free_requires_containment(self, make_rows):
        """A range must lie inside one open interval."""
        index = AvailabilityIndex.build(["ther_01"], make_rows("ther_01", [1]), [], SUNDAY, SATURDAY)

        assert index.is_free("ther_01", MONDAY, 9 * 60, 9 * 60 + 45)
        assert not index.is_free("ther_01", MONDAY, 14 * 60 + 30, 15 * 60 + 15)
        assert not index.is_free("ther_01", SUNDAY, 9 * 60, 9 * 60 + 45)

    def test_utilization_ratio(self, make_rows, make_session):
        """Booked minutes over open minutes across the indexed range."""
        booked = make_session(MONDAY, time(10, 0))
        index = AvailabilityIndex.build(["ther_01"], make_rows("ther_01", [1]), [booked], SUNDAY, SATURDAY)

        assert index.open_minutes["ther_01"] == 360
        assert index.utilization("ther_01") == 45 / 360

    def test_utilization_without_open_time(self):
        """No open minutes means fully utilized."""
        index = AvailabilityIndex.build([], [], [], SUNDAY, SATURDAY)

        assert index.utilization("ther_01") == 1.0
        assert index.total_open_slots() == 0
