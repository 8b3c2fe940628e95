"""
Scheduler State Management.

This module acts as the 'Memory' of one generation run.
It tracks:
1. Sessions committed during the run and per-therapist usage.
2. The student's per-day and per-week load (assembly caps).
3. Near misses (candidates rejected by conflicts or capacity) that become
   suggestions when the run ends short.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Any, Dict, List, Optional, Tuple

from models import ConflictType, LocalizedMessage, ScheduledSession, SchedulingSuggestion
from .scoring import ScoredCandidate
from .utils import week_index


@dataclass
class NearMiss:
    """A candidate that was good enough to try but could not be booked."""
    candidate: ScoredCandidate
    conflict_type: ConflictType
    resource_id: Optional[str] = None
    reasons: List[LocalizedMessage] = field(default_factory=list)


class SchedulerState:
    """
    Maintains the mutable state of the assembler during execution.
    """

    def __init__(self, start_date: date_type, max_per_day: int, max_per_week: int):
        self.start_date = start_date
        self.max_per_day = max_per_day
        self.max_per_week = max_per_week

        # The Run Schedule
        self.booked_sessions: List[ScheduledSession] = []
        self.therapist_bookings: Dict[str, List[ScheduledSession]] = defaultdict(list)

        # Student load
        self.daily_counts: Dict[date_type, int] = defaultdict(int)
        self.weekly_counts: Dict[int, int] = defaultdict(int)

        # Failure Tracking
        self.near_misses: List[NearMiss] = []

    def add_booking(self, session: ScheduledSession) -> None:
        """Commit a successful booking to the state."""
        self.booked_sessions.append(session)
        self.therapist_bookings[session.therapist_id].append(session)
        self.daily_counts[session.session_date] += 1
        self.weekly_counts[week_index(session.session_date, self.start_date)] += 1

    def has_room_for(self, day: date_type, sessions: int = 1) -> bool:
        """Would `sessions` more on `day` stay inside the student's caps?"""
        if self.daily_counts[day] + sessions > self.max_per_day:
            return False
        return self.weekly_counts[week_index(day, self.start_date)] + sessions <= self.max_per_week

    def record_failure(self, miss: NearMiss) -> None:
        self.near_misses.append(miss)

    # --- Reporting Methods ---

    def get_date_range(self) -> Optional[Tuple[date_type, date_type]]:
        if not self.booked_sessions:
            return None
        dates = [s.session_date for s in self.booked_sessions]
        return min(dates), max(dates)

    def average_gap_days(self) -> Optional[float]:
        dates = sorted(s.session_date for s in self.booked_sessions)
        if len(dates) < 2:
            return None
        gaps = [(b - a).days for a, b in zip(dates, dates[1:])]
        return round(sum(gaps) / len(gaps), 2)

    def max_gap_days(self) -> int:
        dates = sorted(s.session_date for s in self.booked_sessions)
        return max(((b - a).days for a, b in zip(dates, dates[1:])), default=0)

    def get_suggestions(self, limit: int) -> List[SchedulingSuggestion]:
        """
        Best near misses first, one per (date, start, therapist), capped at `limit`.
        """
        ordered = sorted(self.near_misses, key=lambda m: m.candidate.sort_key)
        suggestions = []
        seen = set()
        for miss in ordered:
            slot = miss.candidate.slot
            key = (slot.day, slot.start_minutes, slot.therapist_id)
            if key in seen:
                continue
            seen.add(key)
            suggestions.append(SchedulingSuggestion(
                session_date=slot.day,
                start_time=slot.start_time,
                end_time=slot.end_time,
                therapist_id=slot.therapist_id,
                confidence_score=miss.candidate.score,
                blocking_conflict=miss.conflict_type,
                blocking_resource_id=miss.resource_id,
                reasons=miss.reasons
            ))
            if len(suggestions) >= limit:
                break
        return suggestions

    def get_statistics(self) -> Dict[str, Any]:
        """Summary counters for logging and reporting."""
        failure_breakdown: Dict[str, int] = defaultdict(int)
        for miss in self.near_misses:
            failure_breakdown[miss.conflict_type.value] += 1

        busiest_day = max(self.daily_counts.items(), key=lambda x: x[1]) if self.daily_counts else None
        return {
            "total_sessions": len(self.booked_sessions),
            "date_range": self.get_date_range(),
            "busiest_day": busiest_day,
            "average_gap_days": self.average_gap_days(),
            "therapist_usage_count": {k: len(v) for k, v in self.therapist_bookings.items()},
            "near_misses": len(self.near_misses),
            "failure_breakdown": dict(failure_breakdown),
        }
