"""Tests for the in-memory store implementations."""

from datetime import date, time

import pytest

from models import ScheduleTemplate, SessionStatus, TherapistAvailability
from stores import SlotAlreadyBookedError, StoreError
from stores.memory import (
    InMemoryAvailabilityStore,
    InMemorySessionStore,
    InMemorySubscriptionStore,
    InMemoryTemplateStore,
)

MONDAY = date(2024, 6, 3)
TUESDAY = date(2024, 6, 4)


class TestSessionStore:
    """Tests for InMemorySessionStore."""

    @pytest.fixture
    def store(self, make_session):
        return InMemorySessionStore([make_session(MONDAY, time(9, 0), student_id="stu_002", room_id="room_a")])

    def test_insert_and_filter(self, store, make_session):
        """Inserted sessions are returned by date, therapist and student filters."""
        store.insert_sessions([make_session(TUESDAY, time(9, 0), therapist_id="ther_02")])

        assert len(store.list_sessions()) == 2
        assert len(store.list_sessions(start_date=TUESDAY)) == 1
        assert len(store.list_sessions(therapist_ids=["ther_02"])) == 1
        assert len(store.list_sessions(student_id="stu_002")) == 1
        assert store.list_sessions(end_date=date(2024, 6, 2)) == []

    def test_batch_is_atomic(self, store, make_session):
        """One clashing session rejects the whole batch."""
        fine = make_session(TUESDAY, time(9, 0))
        clash = make_session(MONDAY, time(9, 30))

        with pytest.raises(SlotAlreadyBookedError) as exc_info:
            store.insert_sessions([fine, clash])

        assert exc_info.value.session_id == clash.id
        assert store.get_session(fine.id) is None
        assert len(store.list_sessions()) == 1

    def test_same_therapist_same_start_rejected(self, store, make_session):
        """Therapist, date and start time are unique."""
        with pytest.raises(SlotAlreadyBookedError):
            store.insert_sessions([make_session(MONDAY, time(9, 0), duration=30, buffer=0)])

    def test_buffer_enforced(self, store, make_session):
        """Starting inside the previous session's buffer is a clash."""
        with pytest.raises(SlotAlreadyBookedError):
            store.insert_sessions([make_session(MONDAY, time(9, 50))])

        store.insert_sessions([make_session(MONDAY, time(10, 0))])

    def test_room_clash(self, store, make_session):
        """Two therapists cannot share a room at the same time."""
        with pytest.raises(SlotAlreadyBookedError):
            store.insert_sessions([make_session(MONDAY, time(9, 0), therapist_id="ther_02", room_id="room_a")])

    def test_clash_within_batch(self, make_session):
        """Sessions in one batch are checked against each other."""
        store = InMemorySessionStore()

        with pytest.raises(SlotAlreadyBookedError):
            store.insert_sessions([make_session(MONDAY, time(9, 0)), make_session(MONDAY, time(9, 15))])
        assert store.list_sessions() == []

    def test_cancelled_sessions_hidden_and_free(self, make_session):
        """Cancelled sessions are filtered out and do not block inserts."""
        store = InMemorySessionStore([make_session(MONDAY, time(9, 0), status=SessionStatus.CANCELLED)])

        assert store.list_sessions() == []
        assert len(store.list_sessions(include_inactive=True)) == 1
        store.insert_sessions([make_session(MONDAY, time(9, 0))])

    def test_returns_copies(self, store):
        """Mutating a returned session does not change the store."""
        session = store.list_sessions()[0]
        session.therapist_id = "ther_99"

        assert store.list_sessions()[0].therapist_id == "ther_01"

    def test_reschedule_overlapping_old_slot(self, make_session):
        """A moved session does not clash with the row it replaces."""
        session = make_session(MONDAY, time(9, 0))
        store = InMemorySessionStore([session])

        store.reschedule_sessions([session.model_copy(update={"start_time": time(9, 30), "end_time": time(10, 15)})])

        assert store.get_session(session.id).start_time == time(9, 30)

    def test_reschedule_clash_rejects_batch(self, store, make_session):
        """A move into a booked slot is refused and no move is applied."""
        first = make_session(TUESDAY, time(9, 0))
        second = make_session(TUESDAY, time(11, 0))
        store.insert_sessions([first, second])

        moves = [
            first.model_copy(update={"session_date": date(2024, 6, 5)}),
            second.model_copy(update={"session_date": MONDAY, "start_time": time(9, 30), "end_time": time(10, 15)}),
        ]
        with pytest.raises(SlotAlreadyBookedError) as exc_info:
            store.reschedule_sessions(moves)

        assert exc_info.value.session_id == second.id
        assert store.get_session(first.id).session_date == TUESDAY

    def test_reschedule_unknown_session(self, make_session):
        with pytest.raises(StoreError):
            InMemorySessionStore().reschedule_sessions([make_session(MONDAY, time(9, 0))])

    def test_update_unknown_session(self, make_session):
        with pytest.raises(StoreError):
            InMemorySessionStore().update_session(make_session(MONDAY, time(9, 0)))


class TestOtherStores:
    """Tests for the remaining in-memory stores."""

    def test_update_unknown_subscription(self, subscription):
        with pytest.raises(StoreError):
            InMemorySubscriptionStore().update_subscription(subscription)

    def test_inactive_template_hidden(self):
        """Inactive templates read as missing."""
        template = ScheduleTemplate(id="tpl_old", name="Retired", session_duration=30, is_active=False)

        assert InMemoryTemplateStore([template]).get_template("tpl_old") is None

    def test_dated_rows_filtered_by_range(self, make_rows):
        """Dated rows outside the requested range are not returned."""
        dated = TherapistAvailability(
            id="off_july",
            therapist_id="ther_01",
            specific_date=date(2024, 7, 1),
            start_time=time(0, 0),
            end_time=time(23, 59),
            is_recurring=False,
            is_time_off=True,
        )
        store = InMemoryAvailabilityStore(make_rows("ther_01", [1]) + [dated])

        assert len(store.list_availability(["ther_01"], MONDAY, date(2024, 6, 30))) == 1
        assert len(store.list_availability(["ther_01"], MONDAY, date(2024, 7, 31))) == 2
        assert store.list_availability(["ther_02"], MONDAY, date(2024, 7, 31)) == []
        assert store.list_therapist_ids() == ["ther_01"]
