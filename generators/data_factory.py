"""
Demo data factory for the Therapy Scheduling Engine.
STRATEGY: seeded pseudo-random generation so every run of the demo (and every
test that uses it) sees the same clinic.
"""

import logging
import random
from datetime import date, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from models import (
    MaintenanceWindow,
    OptimizationRule,
    Room,
    RuleAction,
    RuleActionType,
    RuleCondition,
    RuleField,
    RuleOperator,
    ScheduledSession,
    ScheduleTemplate,
    Subscription,
    TherapistAvailability,
    TherapistCapacity,
    TimeWindow
)
from scheduler.utils import date_range, day_of_week

logger = logging.getLogger(__name__)

# Sunday - Thursday working week
WORK_DAYS = [0, 1, 2, 3, 4]
SPECIALIZATIONS = ["speech", "occupational", "behavioral", "physio", "sensory"]
ROOM_EQUIPMENT = {
    "speech": ["mirror", "audio_kit"],
    "sensory": ["swing", "ball_pit"],
    "physio": ["parallel_bars", "mat"],
}


class DemoDataFactory:
    def __init__(self, seed: int = 42, start_date: Optional[date] = None):
        self.rng = random.Random(seed)
        self.start_date = start_date or date.today()

    def generate_therapists(self, count: int = 4) -> Dict[str, List]:
        """
        Availability rows (recurring + one dated time-off each) and workload
        ceilings for `count` therapists.
        """
        availability: List[TherapistAvailability] = []
        capacities: List[TherapistCapacity] = []

        for i in range(1, count + 1):
            therapist_id = f"ther_{i:02d}"
            start_hour = self.rng.choice([8, 9])
            shift_hours = self.rng.choice([6, 7, 8])
            buffer = self.rng.choice([0, 10, 15])

            for day in WORK_DAYS:
                availability.append(TherapistAvailability(
                    id=f"avail_{therapist_id}_{day}",
                    therapist_id=therapist_id,
                    day_of_week=day,
                    start_time=time(start_hour, 0),
                    end_time=time(start_hour + shift_hours, 0),
                    max_sessions_per_slot=self.rng.randint(5, 8),
                    buffer_minutes=buffer
                ))

            off_day = self.start_date + timedelta(days=self.rng.randint(3, 40))
            availability.append(TherapistAvailability(
                id=f"off_{therapist_id}_{off_day.isoformat()}",
                therapist_id=therapist_id,
                specific_date=off_day,
                start_time=time(0, 0),
                end_time=time(23, 59),
                is_recurring=False,
                is_time_off=True,
                time_off_reason="Annual leave"
            ))

            capacities.append(TherapistCapacity(
                therapist_id=therapist_id,
                max_sessions_per_day=self.rng.randint(5, 8),
                max_daily_hours=float(shift_hours),
                max_weekly_hours=float(shift_hours * len(WORK_DAYS)),
                specializations=self.rng.sample(SPECIALIZATIONS, 2)
            ))

        logger.info(f"Generated {count} therapists with {len(availability)} availability rows")
        return {"availability": availability, "capacities": capacities}

    def generate_rooms(self) -> List[Room]:
        rooms = []
        for i, (room_type, equipment) in enumerate(ROOM_EQUIPMENT.items(), start=1):
            maintenance = []
            if i == 1:
                closed = self.start_date + timedelta(days=14)
                maintenance.append(MaintenanceWindow(start_date=closed, end_date=closed + timedelta(days=1),
                                                     reason="Deep cleaning"))
            rooms.append(Room(
                id=f"room_{room_type}",
                name=f"{room_type.title()} Room",
                room_type=room_type,
                equipment=list(equipment),
                maintenance_windows=maintenance
            ))
        return rooms

    def generate_templates(self) -> List[ScheduleTemplate]:
        return [
            ScheduleTemplate(
                id="tpl_speech_2x",
                name="Speech therapy, twice weekly",
                name_ar="علاج النطق مرتين أسبوعياً",
                session_duration=45,
                sessions_per_week=2,
                preferred_days=[1, 3],
                preferred_times=[TimeWindow(start_time=time(9, 0), end_time=time(12, 0))],
                allow_weekends=False,
                allow_evenings=False,
                required_room_type="speech"
            ),
            ScheduleTemplate(
                id="tpl_intensive",
                name="Intensive back-to-back program",
                name_ar="برنامج مكثف",
                session_duration=30,
                sessions_per_week=4,
                allow_weekends=False,
                max_sessions_per_day=2
            ),
        ]

    def generate_subscriptions(self, count: int = 3, months: int = 6) -> List[Subscription]:
        subscriptions = []
        for i in range(1, count + 1):
            end = self.start_date + timedelta(days=30 * months - 1)
            subscriptions.append(Subscription(
                id=f"sub_{i:03d}",
                student_id=f"stu_{i:03d}",
                start_date=self.start_date,
                end_date=end,
                original_end_date=end,
                freeze_days_allowed=self.rng.choice([14, 21, 30]),
                sessions_total=months * 8,
                total_amount=Decimal(self.rng.choice([6000, 9000, 12000])),
            ))
        return subscriptions

    def generate_rules(self) -> List[OptimizationRule]:
        return [
            OptimizationRule(
                id="rule_no_late_thursday",
                name="Avoid late Thursday sessions",
                name_ar="تجنب الجلسات المتأخرة يوم الخميس",
                priority=7,
                condition=RuleCondition(
                    operator=RuleOperator.ALL,
                    conditions=[
                        RuleCondition(field=RuleField.DAY_OF_WEEK, operator=RuleOperator.EQUALS, value=4),
                        RuleCondition(field=RuleField.START_HOUR, operator=RuleOperator.GREATER_THAN, value=13),
                    ]
                ),
                action=RuleAction(type=RuleActionType.PENALIZE_SCORE, score_impact=25)
            ),
            OptimizationRule(
                id="rule_prefer_mornings",
                name="Prefer morning sessions",
                name_ar="تفضيل الجلسات الصباحية",
                priority=5,
                weight=0.5,
                condition=RuleCondition(field=RuleField.START_HOUR, operator=RuleOperator.BETWEEN, value=[8, 11]),
                action=RuleAction(type=RuleActionType.PREFER)
            ),
        ]

    def generate_existing_sessions(
        self,
        subscriptions: List[Subscription],
        availability: List[TherapistAvailability],
        weeks: int = 2
    ) -> List[ScheduledSession]:
        """A light pre-existing booking load so runs have something to avoid."""
        windows = {(a.therapist_id, a.day_of_week): a for a in availability if a.is_recurring}
        therapist_ids = sorted({a.therapist_id for a in availability})
        sessions = []
        used = set()

        for day in date_range(self.start_date, self.start_date + timedelta(days=7 * weeks - 1)):
            weekday = day_of_week(day)
            for sub in subscriptions:
                if self.rng.random() > 0.3:
                    continue
                therapist_id = self.rng.choice(therapist_ids)
                window = windows.get((therapist_id, weekday))
                if window is None:
                    continue
                hour = window.start_time.hour + self.rng.randint(0, 3)
                if (therapist_id, day, hour) in used or (sub.student_id, day) in used:
                    continue
                used.add((therapist_id, day, hour))
                used.add((sub.student_id, day))
                sessions.append(ScheduledSession(
                    subscription_id=sub.id,
                    student_id=sub.student_id,
                    therapist_id=therapist_id,
                    session_date=day,
                    start_time=time(hour, 0),
                    end_time=time(hour, 45),
                    duration_minutes=45,
                    buffer_minutes=window.buffer_minutes
                ))
        return sessions

    def generate_all(self, therapist_count: int = 4, subscription_count: int = 3) -> Dict[str, List]:
        therapists = self.generate_therapists(therapist_count)
        subscriptions = self.generate_subscriptions(subscription_count)
        return {
            "availability": therapists["availability"],
            "capacities": therapists["capacities"],
            "rooms": self.generate_rooms(),
            "templates": self.generate_templates(),
            "subscriptions": subscriptions,
            "rules": self.generate_rules(),
            "sessions": self.generate_existing_sessions(subscriptions, therapists["availability"]),
        }
