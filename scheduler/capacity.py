"""
Capacity Manager.

Validates one proposed (therapist, date, time-window) assignment against:
1. The therapist's availability windows and their per-slot session capacity.
2. The therapist's workload ceiling (sessions/day, hours/day, hours/week).
3. Room type, equipment and maintenance (plus room occupancy when a conflict
   detector is attached).

Used standalone as a pre-check and by the assembler before every commit.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date as date_type, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from models import (
    LocalizedMessage,
    Room,
    ScheduledSession,
    TherapistAvailability,
    TherapistCapacity,
    localized
)
from .config import SchedulerConfig
from .constraints import ROOM, ConflictDetector
from .utils import day_of_week, intervals_overlap, to_minutes

logger = logging.getLogger(__name__)


@dataclass
class CapacityCheck:
    passed: bool
    reasons: List[LocalizedMessage] = field(default_factory=list)
    utilization_after: float = 0.0
    room_id: Optional[str] = None
    window_id: Optional[str] = None


def week_start(day: date_type) -> date_type:
    """Sunday that opens the calendar week containing `day`."""
    return day - timedelta(days=day_of_week(day))


class CapacityManager:

    def __init__(
        self,
        availability: Iterable[TherapistAvailability] = (),
        capacities: Iterable[TherapistCapacity] = (),
        rooms: Iterable[Room] = (),
        sessions: Iterable[ScheduledSession] = (),
        config: Optional[SchedulerConfig] = None,
        detector: Optional[ConflictDetector] = None
    ):
        self.config = config or SchedulerConfig()
        self.detector = detector
        self.rooms = sorted(rooms, key=lambda r: r.id)
        self.capacities = {c.therapist_id: c for c in capacities}

        self.availability: Dict[str, List[TherapistAvailability]] = defaultdict(list)
        for row in availability:
            self.availability[row.therapist_id].append(row)

        # Load counters
        self.daily_sessions: Dict[Tuple[str, date_type], int] = defaultdict(int)
        self.daily_minutes: Dict[Tuple[str, date_type], int] = defaultdict(int)
        self.weekly_minutes: Dict[Tuple[str, date_type], int] = defaultdict(int)
        self.window_sessions: Dict[Tuple[str, date_type], int] = defaultdict(int)

        for session in sessions:
            if session.is_active:
                self.record_assignment(session)

    def capacity_for(self, therapist_id: str) -> TherapistCapacity:
        cap = self.capacities.get(therapist_id)
        if cap is None:
            cap = TherapistCapacity(
                therapist_id=therapist_id,
                max_sessions_per_day=self.config.default_max_sessions_per_day_therapist,
                max_daily_hours=self.config.default_max_daily_hours,
                max_weekly_hours=self.config.default_max_weekly_hours
            )
            self.capacities[therapist_id] = cap
        return cap

    def check_assignment(
        self,
        therapist_id: str,
        day: date_type,
        start_minutes: int,
        end_minutes: int,
        room_type: Optional[str] = None,
        equipment: Optional[List[str]] = None,
        buffer_minutes: int = 0,
        preferred_room_id: Optional[str] = None
    ) -> CapacityCheck:
        """Pass/fail plus the therapist's weekly utilization after assignment."""
        reasons: List[LocalizedMessage] = []
        duration = end_minutes - start_minutes
        cap = self.capacity_for(therapist_id)

        # 1. Availability window & slot capacity
        window = self._covering_window(therapist_id, day, start_minutes, end_minutes)
        if window is None:
            reasons.append(localized("outside_availability"))
        else:
            used = max(window.current_bookings, self.window_sessions[(window.id, day)])
            if used >= window.max_sessions_per_slot:
                reasons.append(localized("slot_capacity_exhausted"))

        # 2. Workload ceiling
        if self.daily_sessions[(therapist_id, day)] + 1 > cap.max_sessions_per_day:
            reasons.append(localized("daily_session_limit", limit=cap.max_sessions_per_day))
        if self.daily_minutes[(therapist_id, day)] + duration > cap.max_daily_hours * 60:
            reasons.append(localized("daily_hours_limit", limit=cap.max_daily_hours))

        weekly_after = self.weekly_minutes[(therapist_id, week_start(day))] + duration
        if weekly_after > cap.max_weekly_hours * 60:
            reasons.append(localized("weekly_hours_limit", limit=cap.max_weekly_hours))

        # 3. Room
        room_id = None
        if self.rooms or room_type or equipment:
            room_id = self.find_room(day, start_minutes, end_minutes, room_type, equipment or [], buffer_minutes,
                                     preferred_room_id)
            if room_id is None:
                # Suitable rooms exist but all are taken at this time
                if self._suitable_rooms(day, room_type, equipment or []):
                    reasons.append(localized("room_unavailable"))
                else:
                    reasons.append(localized("no_matching_room"))

        utilization_after = round(weekly_after / (cap.max_weekly_hours * 60), 4)
        if reasons:
            logger.debug(f"Capacity check failed for {therapist_id} on {day}: {[r.code for r in reasons]}")

        return CapacityCheck(
            passed=not reasons,
            reasons=reasons,
            utilization_after=utilization_after,
            room_id=room_id,
            window_id=window.id if window else None
        )

    def find_room(
        self,
        day: date_type,
        start_minutes: int,
        end_minutes: int,
        room_type: Optional[str],
        equipment: List[str],
        buffer_minutes: int = 0,
        preferred_room_id: Optional[str] = None
    ) -> Optional[str]:
        """
        First matching room that is open and, if tracked, unoccupied.
        `preferred_room_id` is tried first, then the rest by id.
        """
        candidates = self._suitable_rooms(day, room_type, equipment)
        candidates.sort(key=lambda r: r.id != preferred_room_id)
        for room in candidates:
            if self.detector and not self.detector.is_free(ROOM, room.id, day, start_minutes, end_minutes,
                                                           buffer_minutes):
                continue
            return room.id
        return None

    def _suitable_rooms(self, day: date_type, room_type: Optional[str], equipment: List[str]) -> List[Room]:
        return [r for r in self.rooms if r.is_open_on(day) and r.satisfies(room_type, equipment)]

    def record_assignment(self, session: ScheduledSession) -> None:
        tid, day = session.therapist_id, session.session_date
        self.daily_sessions[(tid, day)] += 1
        self.daily_minutes[(tid, day)] += session.duration_minutes
        self.weekly_minutes[(tid, week_start(day))] += session.duration_minutes

        window = self._covering_window(tid, day, session.start_minutes, session.end_minutes)
        if window is not None:
            self.window_sessions[(window.id, day)] += 1

    def release_assignment(self, session: ScheduledSession) -> None:
        """Undo record_assignment for a session that was not committed after all."""
        tid, day = session.therapist_id, session.session_date
        self.daily_sessions[(tid, day)] -= 1
        self.daily_minutes[(tid, day)] -= session.duration_minutes
        self.weekly_minutes[(tid, week_start(day))] -= session.duration_minutes

        window = self._covering_window(tid, day, session.start_minutes, session.end_minutes)
        if window is not None:
            self.window_sessions[(window.id, day)] -= 1

    def _covering_window(
        self,
        therapist_id: str,
        day: date_type,
        start_minutes: int,
        end_minutes: int
    ) -> Optional[TherapistAvailability]:
        weekday = day_of_week(day)
        rows = [r for r in self.availability.get(therapist_id, []) if r.applies_to(day, weekday)]

        for row in rows:
            if (row.is_time_off or not row.is_available) and intervals_overlap(
                    start_minutes, end_minutes, to_minutes(row.start_time), to_minutes(row.end_time)):
                return None

        for row in rows:
            if row.is_time_off or not row.is_available:
                continue
            if to_minutes(row.start_time) <= start_minutes and end_minutes <= to_minutes(row.end_time):
                return row
        return None
