"""Test fixtures for the therapy scheduling engine."""

from datetime import date, time
from decimal import Decimal

import pytest

from models import (
    ScheduledSession,
    SchedulingRequest,
    Subscription,
    TherapistAvailability,
    TimeWindow,
)
from scheduler import FreezeCoordinator, KeyedLockRegistry, SchedulerConfig, SchedulingEngine
from stores.memory import in_memory_bundle

# 2024-06-02 is a Sunday
WEEK_START = date(2024, 6, 2)


@pytest.fixture
def make_rows():
    """Factory: one recurring availability row per weekday for a therapist."""

    def _make(therapist_id, days, start=time(9, 0), end=time(15, 0), buffer=15, max_per_slot=8):
        return [
            TherapistAvailability(
                id=f"avail_{therapist_id}_{day}",
                therapist_id=therapist_id,
                day_of_week=day,
                start_time=start,
                end_time=end,
                max_sessions_per_slot=max_per_slot,
                buffer_minutes=buffer,
            )
            for day in days
        ]

    return _make


@pytest.fixture
def make_session():
    """Factory: a committed 45-minute session."""

    def _make(day, start, therapist_id="ther_01", student_id="stu_001", duration=45, buffer=15, **extra):
        end_minutes = start.hour * 60 + start.minute + duration
        fields = dict(
            subscription_id=f"sub_{student_id[-3:]}",
            student_id=student_id,
            therapist_id=therapist_id,
            session_date=day,
            start_time=start,
            end_time=time(end_minutes // 60, end_minutes % 60),
            duration_minutes=duration,
            buffer_minutes=buffer,
        )
        fields.update(extra)
        return ScheduledSession(**fields)

    return _make


@pytest.fixture
def subscription():
    """Leap-year subscription: 366 days for 3660 SAR (10 SAR per day)."""
    return Subscription(
        id="sub_001",
        student_id="stu_001",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
        original_end_date=date(2024, 12, 31),
        freeze_days_allowed=30,
        sessions_total=48,
        total_amount=Decimal("3660.00"),
    )


@pytest.fixture
def clinic_rows(make_rows):
    """ther_01 works Sunday-Thursday, ther_02 Monday and Wednesday only."""
    return make_rows("ther_01", [0, 1, 2, 3, 4]) + make_rows("ther_02", [1, 3])


@pytest.fixture
def stores(subscription, clinic_rows):
    return in_memory_bundle(subscriptions=[subscription], availability=clinic_rows)


@pytest.fixture
def config():
    return SchedulerConfig()


@pytest.fixture
def locks():
    return KeyedLockRegistry()


@pytest.fixture
def engine(stores, config, locks):
    return SchedulingEngine(stores, config, locks)


@pytest.fixture
def coordinator(stores, config, locks):
    return FreezeCoordinator(stores, config, locks)


@pytest.fixture
def basic_request():
    """Eight Monday/Wednesday sessions over four weeks."""
    return SchedulingRequest(
        subscription_id="sub_001",
        start_date=WEEK_START,
        end_date=date(2024, 6, 29),
        total_sessions=8,
        session_duration=45,
        sessions_per_week=2,
        preferred_days=[1, 3],
        avoid_days=[5, 6],
        preferred_times=[TimeWindow(start_time=time(9, 0), end_time=time(13, 0))],
    )
