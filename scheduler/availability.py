"""
Availability Index.

Answers "when is therapist X open between dates A and B" in one bulk pass.
Recurring weekly windows are expanded per date, dated time-off exceptions and
already-booked sessions (plus their buffer) are carved out, and what remains
is stored as OpenInterval records keyed by therapist and date.

Later stages only do dictionary lookups against this index.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date as date_type
from typing import Dict, Iterable, List, Optional, Tuple

from models import LocalizedMessage, ScheduledSession, TherapistAvailability, localized
from .utils import day_of_week, date_range, subtract_interval, to_minutes

logger = logging.getLogger(__name__)


@dataclass
class OpenInterval:
    """A free stretch of one therapist's day, in minutes from midnight."""
    therapist_id: str
    day: date_type
    start_minutes: int
    end_minutes: int
    remaining_capacity: int
    buffer_minutes: int
    window_id: str

    @property
    def length(self) -> int:
        return self.end_minutes - self.start_minutes


class AvailabilityIndex:

    def __init__(self, start_date: date_type, end_date: date_type):
        self.start_date = start_date
        self.end_date = end_date
        self._intervals: Dict[str, Dict[date_type, List[OpenInterval]]] = defaultdict(lambda: defaultdict(list))
        self.open_minutes: Dict[str, int] = defaultdict(int)
        self.booked_minutes: Dict[str, int] = defaultdict(int)
        self.warnings: List[LocalizedMessage] = []
        self.known_therapists: List[str] = []

    @classmethod
    def build(
        cls,
        therapist_ids: Iterable[str],
        rows: Iterable[TherapistAvailability],
        sessions: Iterable[ScheduledSession],
        start_date: date_type,
        end_date: date_type
    ) -> "AvailabilityIndex":
        index = cls(start_date, end_date)

        rows_by_therapist: Dict[str, List[TherapistAvailability]] = defaultdict(list)
        for row in rows:
            rows_by_therapist[row.therapist_id].append(row)

        sessions_by_key: Dict[Tuple[str, date_type], List[ScheduledSession]] = defaultdict(list)
        for s in sessions:
            if s.is_active and start_date <= s.session_date <= end_date:
                sessions_by_key[(s.therapist_id, s.session_date)].append(s)

        for therapist_id in therapist_ids:
            therapist_rows = rows_by_therapist.get(therapist_id)
            if not therapist_rows:
                # Degrade gracefully: zero candidates for this therapist
                logger.warning(f"Therapist {therapist_id} has no availability rows")
                index.warnings.append(localized("therapist_not_found", therapist_id=therapist_id))
                continue
            index.known_therapists.append(therapist_id)
            index._index_therapist(therapist_id, therapist_rows, sessions_by_key)

        logger.debug(
            f"Availability index built for {len(index.known_therapists)} therapists "
            f"({start_date} -> {end_date})"
        )
        return index

    def _index_therapist(
        self,
        therapist_id: str,
        rows: List[TherapistAvailability],
        sessions_by_key: Dict[Tuple[str, date_type], List[ScheduledSession]]
    ) -> None:
        for day in date_range(self.start_date, self.end_date):
            weekday = day_of_week(day)
            applicable = [r for r in rows if r.applies_to(day, weekday)]
            if not applicable:
                continue

            # 1. Exceptions that remove time
            blocked = [
                (to_minutes(r.start_time), to_minutes(r.end_time))
                for r in applicable if r.is_time_off or not r.is_available
            ]
            windows = [r for r in applicable if r.is_available and not r.is_time_off]
            booked = sessions_by_key.get((therapist_id, day), [])

            for s in booked:
                self.booked_minutes[therapist_id] += s.duration_minutes

            for window in windows:
                w_start, w_end = to_minutes(window.start_time), to_minutes(window.end_time)
                pieces = [(w_start, w_end)]
                for cut_start, cut_end in blocked:
                    pieces = subtract_interval(pieces, cut_start, cut_end)

                self.open_minutes[therapist_id] += sum(end - start for start, end in pieces)

                # 2. Remaining capacity of this window on this date
                inside = sum(1 for s in booked if w_start <= s.start_minutes < w_end)
                remaining = window.max_sessions_per_slot - max(window.current_bookings, inside)
                if remaining <= 0:
                    continue

                # 3. Carve out existing bookings including their trailing buffer
                for s in booked:
                    pieces = subtract_interval(pieces, s.start_minutes, s.end_minutes + s.buffer_minutes)

                for start, end in pieces:
                    self._intervals[therapist_id][day].append(OpenInterval(
                        therapist_id=therapist_id,
                        day=day,
                        start_minutes=start,
                        end_minutes=end,
                        remaining_capacity=remaining,
                        buffer_minutes=window.buffer_minutes,
                        window_id=window.id
                    ))

            opened = self._intervals[therapist_id].get(day)
            if opened:
                opened.sort(key=lambda i: i.start_minutes)

    # --- Query Methods ---

    def intervals_for(self, therapist_id: str, day: date_type) -> List[OpenInterval]:
        return self._intervals.get(therapist_id, {}).get(day, [])

    def days_for(self, therapist_id: str) -> List[date_type]:
        return sorted(self._intervals.get(therapist_id, {}).keys())

    def is_free(self, therapist_id: str, day: date_type, start_minutes: int, end_minutes: int) -> bool:
        """Is [start, end) fully inside one open interval with capacity left?"""
        return self.find_interval(therapist_id, day, start_minutes, end_minutes) is not None

    def find_interval(
        self,
        therapist_id: str,
        day: date_type,
        start_minutes: int,
        end_minutes: int
    ) -> Optional[OpenInterval]:
        for interval in self.intervals_for(therapist_id, day):
            if interval.start_minutes <= start_minutes and end_minutes <= interval.end_minutes:
                return interval
        return None

    def utilization(self, therapist_id: str) -> float:
        """Booked minutes / open minutes over the indexed range (0.0 - 1.0)."""
        open_min = self.open_minutes.get(therapist_id, 0)
        if open_min <= 0:
            return 1.0
        return min(1.0, self.booked_minutes.get(therapist_id, 0) / open_min)

    def total_open_slots(self) -> int:
        return sum(len(intervals) for days in self._intervals.values() for intervals in days.values())
