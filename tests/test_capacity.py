"""Tests for the capacity manager."""

from datetime import date, time

import pytest

from models import MaintenanceWindow, Room, TherapistAvailability, TherapistCapacity
from scheduler import SchedulingEngine
from scheduler.capacity import CapacityManager, week_start
from scheduler.constraints import ConflictDetector
from stores.memory import in_memory_bundle

SATURDAY_BEFORE = date(2024, 6, 1)
SUNDAY = date(2024, 6, 2)
MONDAY = date(2024, 6, 3)


def _m(hour, minute=0):
    return hour * 60 + minute


def _codes(check):
    return [r.code for r in check.reasons]


@pytest.fixture
def rows(make_rows):
    return make_rows("ther_01", [0, 1])


class TestWeekStart:
    """Tests for the Sunday-based week boundary."""

    def test_week_start(self):
        """Every day maps to the Sunday opening its week."""
        assert week_start(MONDAY) == SUNDAY
        assert week_start(SUNDAY) == SUNDAY
        assert week_start(SATURDAY_BEFORE) == date(2024, 5, 26)


class TestAvailabilityChecks:
    """Tests for availability windows and slot capacity."""

    def test_assignment_inside_window_passes(self, rows):
        """A free slot inside the window passes with utilization reported."""
        check = CapacityManager(rows).check_assignment("ther_01", MONDAY, _m(9), _m(9, 45))

        assert check.passed
        assert check.reasons == []
        assert check.window_id == "avail_ther_01_1"
        assert check.room_id is None
        assert check.utilization_after == round(45 / 2400, 4)

    def test_outside_window_fails(self, rows):
        """Running past the end of the window is outside availability."""
        check = CapacityManager(rows).check_assignment("ther_01", MONDAY, _m(14, 30), _m(15, 15))

        assert not check.passed
        assert _codes(check) == ["outside_availability"]

    def test_time_off_fails(self, rows):
        """Time-off exceptions make the slot unavailable."""
        off = TherapistAvailability(
            id="off_monday",
            therapist_id="ther_01",
            specific_date=MONDAY,
            start_time=time(9, 0),
            end_time=time(12, 0),
            is_recurring=False,
            is_time_off=True,
        )
        check = CapacityManager(rows + [off]).check_assignment("ther_01", MONDAY, _m(10), _m(10, 45))

        assert _codes(check) == ["outside_availability"]

    def test_slot_capacity_exhausted(self, make_rows, make_session):
        """A window holding its maximum number of sessions is full."""
        rows = make_rows("ther_01", [1], max_per_slot=1)
        manager = CapacityManager(rows, sessions=[make_session(MONDAY, time(9, 0))])

        check = manager.check_assignment("ther_01", MONDAY, _m(12), _m(12, 45))

        assert _codes(check) == ["slot_capacity_exhausted"]


class TestWorkloadLimits:
    """Tests for per-day and per-week therapist ceilings."""

    def test_daily_session_limit(self, rows, make_session):
        """One session per day means the second is refused."""
        capacity = TherapistCapacity(therapist_id="ther_01", max_sessions_per_day=1)
        manager = CapacityManager(rows, [capacity], sessions=[make_session(MONDAY, time(9, 0))])

        check = manager.check_assignment("ther_01", MONDAY, _m(11), _m(11, 45))

        assert _codes(check) == ["daily_session_limit"]
        assert "(1)" in check.reasons[0].en

    def test_daily_hours_limit(self, rows, make_session):
        """A one-hour day cannot take a second 45 minute session."""
        capacity = TherapistCapacity(therapist_id="ther_01", max_daily_hours=1.0)
        manager = CapacityManager(rows, [capacity], sessions=[make_session(MONDAY, time(9, 0))])

        check = manager.check_assignment("ther_01", MONDAY, _m(11), _m(11, 45))

        assert "daily_hours_limit" in _codes(check)

    def test_weekly_hours_limit(self, rows, make_session):
        """Sunday's session counts towards Monday's week."""
        capacity = TherapistCapacity(therapist_id="ther_01", max_weekly_hours=1.0)
        manager = CapacityManager(rows, [capacity], sessions=[make_session(SUNDAY, time(9, 0))])

        check = manager.check_assignment("ther_01", MONDAY, _m(11), _m(11, 45))

        assert _codes(check) == ["weekly_hours_limit"]
        assert check.utilization_after == 1.5

    def test_previous_week_not_counted(self, rows, make_session):
        """Saturday belongs to the previous week."""
        capacity = TherapistCapacity(therapist_id="ther_01", max_weekly_hours=1.0)
        manager = CapacityManager(rows, [capacity], sessions=[make_session(SATURDAY_BEFORE, time(9, 0))])

        assert manager.check_assignment("ther_01", MONDAY, _m(11), _m(11, 45)).passed

    def test_release_undoes_record(self, rows, make_session):
        """A released tentative assignment no longer counts."""
        capacity = TherapistCapacity(therapist_id="ther_01", max_sessions_per_day=1)
        manager = CapacityManager(rows, [capacity])
        tentative = make_session(MONDAY, time(9, 0))

        manager.record_assignment(tentative)
        assert not manager.check_assignment("ther_01", MONDAY, _m(11), _m(11, 45)).passed

        manager.release_assignment(tentative)
        assert manager.check_assignment("ther_01", MONDAY, _m(11), _m(11, 45)).passed

    def test_defaults_without_capacity_row(self, rows):
        """Configured defaults apply to therapists without a capacity row."""
        cap = CapacityManager(rows).capacity_for("ther_01")

        assert cap.max_sessions_per_day == 8
        assert cap.max_weekly_hours == 40.0


class TestRooms:
    """Tests for room matching."""

    @pytest.fixture
    def rooms(self):
        return [
            Room(id="room_a", name="Speech A", room_type="speech", equipment=["mirror"]),
            Room(id="room_b", name="Speech B", room_type="speech", equipment=["mirror", "audio_kit"]),
            Room(
                id="room_c",
                name="Sensory",
                room_type="sensory",
                maintenance_windows=[MaintenanceWindow(start_date=MONDAY, end_date=MONDAY)],
            ),
        ]

    def test_room_type_and_equipment(self, rows, rooms):
        """The first room (by id) satisfying type and equipment is chosen."""
        manager = CapacityManager(rows, rooms=rooms)

        assert manager.check_assignment("ther_01", MONDAY, _m(9), _m(9, 45), room_type="speech").room_id == "room_a"
        check = manager.check_assignment("ther_01", MONDAY, _m(9), _m(9, 45), equipment=["audio_kit"])
        assert check.room_id == "room_b"

    def test_room_under_maintenance(self, rows, rooms):
        """A room closed for maintenance cannot be used."""
        check = CapacityManager(rows, rooms=rooms).check_assignment(
            "ther_01", MONDAY, _m(9), _m(9, 45), room_type="sensory"
        )

        assert not check.passed
        assert _codes(check) == ["no_matching_room"]

    def test_occupied_room_skipped(self, rows, rooms, make_session):
        """With a detector attached, a booked room is passed over."""
        busy = make_session(MONDAY, time(9, 0), therapist_id="ther_02", student_id="stu_002", room_id="room_a")
        manager = CapacityManager(rows, rooms=rooms, detector=ConflictDetector([busy]))

        check = manager.check_assignment("ther_01", MONDAY, _m(9), _m(9, 45), room_type="speech")

        assert check.room_id == "room_b"

    def test_all_suitable_rooms_occupied(self, rows, rooms, make_session):
        """Occupied rooms are reported apart from rooms that do not exist."""
        busy = [
            make_session(MONDAY, time(9, 0), therapist_id="ther_02", student_id="stu_002", room_id="room_a"),
            make_session(MONDAY, time(9, 0), therapist_id="ther_03", student_id="stu_003", room_id="room_b"),
        ]
        manager = CapacityManager(rows, rooms=rooms, detector=ConflictDetector(busy))

        check = manager.check_assignment("ther_01", MONDAY, _m(9), _m(9, 45), room_type="speech")

        assert not check.passed
        assert _codes(check) == ["room_unavailable"]

    def test_preferred_room_first(self, rows, rooms):
        """A preferred room that fits is chosen ahead of lower ids."""
        check = CapacityManager(rows, rooms=rooms).check_assignment(
            "ther_01", MONDAY, _m(9), _m(9, 45), room_type="speech", preferred_room_id="room_b"
        )

        assert check.room_id == "room_b"

    def test_any_room_when_rooms_exist(self, rows, rooms):
        """Without requirements, any open room is assigned."""
        check = CapacityManager(rows, rooms=rooms).check_assignment("ther_01", MONDAY, _m(9), _m(9, 45))

        assert check.passed
        assert check.room_id == "room_a"


class TestStandaloneCheck:
    """Tests for the engine's standalone capacity pre-check."""

    def test_check_assignment_capacity(self, rows, make_session, subscription):
        """The engine loads what it needs and applies the same rules."""
        stores = in_memory_bundle(
            subscriptions=[subscription],
            sessions=[make_session(MONDAY, time(9, 0))],
            availability=rows,
            capacities=[TherapistCapacity(therapist_id="ther_01", max_sessions_per_day=1)],
        )
        engine = SchedulingEngine(stores)

        blocked = engine.check_assignment_capacity("ther_01", MONDAY, time(11, 0), time(11, 45))
        free = engine.check_assignment_capacity("ther_01", SUNDAY, time(11, 0), time(11, 45))

        assert _codes(blocked) == ["daily_session_limit"]
        assert free.passed
