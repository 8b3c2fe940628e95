"""
Candidate Slot Generator.

Turns a request (optionally seeded by a template) plus an AvailabilityIndex
into a pool of (date, start, end, therapist) candidates. The pool is
deliberately larger than the number of sessions needed: the assembler will
reject some of them on conflicts and capacity.
"""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type, time as time_type
from itertools import count
from typing import List, Optional, Set, Tuple

from models import ScheduleTemplate, SchedulingRequest, TimeWindow
from .availability import AvailabilityIndex, OpenInterval
from .config import SchedulerConfig
from .utils import date_range, day_of_week, from_minutes, intervals_overlap, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateSlot:
    """One feasible (date, start, end) pairing for a therapist."""
    day: date_type
    start_minutes: int
    end_minutes: int
    therapist_id: str
    buffer_minutes: int = 0
    window_id: Optional[str] = None
    group_id: Optional[int] = None

    @property
    def start_time(self) -> time_type:
        return from_minutes(self.start_minutes)

    @property
    def end_time(self) -> time_type:
        return from_minutes(self.end_minutes)

    @property
    def duration(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def weekday(self) -> int:
        return day_of_week(self.day)


@dataclass
class SlotPreferences:
    """
    Effective preferences after merging a request with its template.
    Request values win; empty request fields fall back to the template.
    """
    session_duration: int
    sessions_per_week: int
    preferred_days: List[int] = field(default_factory=list)
    avoid_days: List[int] = field(default_factory=list)
    preferred_times: List[TimeWindow] = field(default_factory=list)
    avoid_times: List[TimeWindow] = field(default_factory=list)
    preferred_therapist_id: Optional[str] = None
    allow_weekends: bool = True
    allow_evenings: bool = True
    max_sessions_per_day: int = 1
    requires_consecutive: bool = False
    block_size: int = 1
    required_room_type: Optional[str] = None
    required_equipment: List[str] = field(default_factory=list)

    @classmethod
    def resolve(
        cls,
        request: SchedulingRequest,
        template: Optional[ScheduleTemplate],
        config: SchedulerConfig
    ) -> "SlotPreferences":
        max_per_day = template.max_sessions_per_day if template else config.default_max_sessions_per_day
        block_size = 1
        if request.requires_consecutive_sessions:
            block_size = max_per_day if max_per_day > 1 else config.consecutive_block_size
            max_per_day = max(max_per_day, block_size)

        per_week = request.sessions_per_week
        if not per_week:
            per_week = template.sessions_per_week if template else config.default_sessions_per_week

        prefs = cls(
            session_duration=request.session_duration or (template.session_duration if template else 0),
            sessions_per_week=max(per_week, block_size),
            preferred_days=list(request.preferred_days),
            avoid_days=list(request.avoid_days),
            preferred_times=list(request.preferred_times),
            avoid_times=list(request.avoid_times),
            preferred_therapist_id=request.preferred_therapist_id,
            max_sessions_per_day=max_per_day,
            requires_consecutive=request.requires_consecutive_sessions,
            block_size=block_size,
            required_room_type=request.required_room_type,
            required_equipment=list(request.required_equipment),
        )

        if template:
            if not prefs.preferred_days:
                prefs.preferred_days = list(template.preferred_days)
            if not prefs.preferred_times:
                prefs.preferred_times = list(template.preferred_times)
            if not prefs.preferred_therapist_id:
                prefs.preferred_therapist_id = template.preferred_therapist_id
            if not prefs.required_room_type:
                prefs.required_room_type = template.required_room_type
            if not prefs.required_equipment:
                prefs.required_equipment = list(template.required_equipment)
            prefs.allow_weekends = template.allow_weekends
            prefs.allow_evenings = template.allow_evenings

        return prefs

    @property
    def needs_room(self) -> bool:
        return bool(self.required_room_type or self.required_equipment)


class CandidateSlotGenerator:

    def __init__(self, config: Optional[SchedulerConfig] = None):
        self.config = config or SchedulerConfig()
        self._group_ids = count(1)

    def generate(
        self,
        prefs: SlotPreferences,
        index: AvailabilityIndex,
        start_date: date_type,
        end_date: date_type,
        therapist_ids: Optional[List[str]] = None
    ) -> List[CandidateSlot]:
        """
        Walk every date in range and emit candidates inside the open
        intervals of each therapist. Consecutive requests emit grouped slots.
        """
        if prefs.session_duration <= 0 or start_date > end_date:
            return []

        therapists = therapist_ids if therapist_ids is not None else index.known_therapists
        if prefs.preferred_therapist_id:
            therapists = [t for t in therapists if t == prefs.preferred_therapist_id]

        candidates: List[CandidateSlot] = []
        seen: Set[Tuple[str, date_type, int]] = set()

        for day in date_range(start_date, end_date):
            if not self._is_day_allowed(day, prefs):
                continue

            for therapist_id in therapists:
                for interval in index.intervals_for(therapist_id, day):
                    for piece_start, piece_end in self._usable_ranges(interval, prefs):
                        if prefs.requires_consecutive:
                            new = self._grouped_slots(interval, piece_start, piece_end, prefs)
                        else:
                            new = self._single_slots(interval, piece_start, piece_end, prefs)

                        for slot in new:
                            key = (slot.therapist_id, slot.day, slot.start_minutes)
                            if slot.group_id is None and key in seen:
                                continue
                            seen.add(key)
                            candidates.append(slot)

        if not candidates:
            logger.warning(f"No candidate slots between {start_date} and {end_date}")
        else:
            logger.debug(f"Generated {len(candidates)} candidate slots")
        return candidates

    def _is_day_allowed(self, day: date_type, prefs: SlotPreferences) -> bool:
        weekday = day_of_week(day)
        if prefs.preferred_days and weekday not in prefs.preferred_days:
            return False
        if weekday in prefs.avoid_days:
            return False
        if not prefs.allow_weekends and weekday in self.config.weekend_days:
            return False
        return True

    def _usable_ranges(self, interval: OpenInterval, prefs: SlotPreferences) -> List[Tuple[int, int]]:
        """Clip an open interval to the preferred windows (whole interval when none)."""
        ranges = [(interval.start_minutes, interval.end_minutes)]
        if prefs.preferred_times:
            clipped = []
            for window in prefs.preferred_times:
                lo = max(interval.start_minutes, to_minutes(window.start_time))
                hi = min(interval.end_minutes, to_minutes(window.end_time))
                if lo < hi:
                    clipped.append((lo, hi))
            ranges = sorted(set(clipped))
        return ranges

    def _accepts(self, start: int, end: int, prefs: SlotPreferences) -> bool:
        if not prefs.allow_evenings and start >= to_minutes(self.config.evening_start):
            return False
        for window in prefs.avoid_times:
            if intervals_overlap(start, end, to_minutes(window.start_time), to_minutes(window.end_time)):
                return False
        return True

    def _single_slots(
        self,
        interval: OpenInterval,
        range_start: int,
        range_end: int,
        prefs: SlotPreferences
    ) -> List[CandidateSlot]:
        slots = []
        step = self.config.candidate_step_minutes
        duration = prefs.session_duration
        start = range_start
        # Session plus its buffer must fit inside the open interval
        while start + duration <= range_end and start + duration + interval.buffer_minutes <= interval.end_minutes:
            end = start + duration
            if self._accepts(start, end, prefs):
                slots.append(CandidateSlot(
                    day=interval.day,
                    start_minutes=start,
                    end_minutes=end,
                    therapist_id=interval.therapist_id,
                    buffer_minutes=interval.buffer_minutes,
                    window_id=interval.window_id
                ))
            start += step
        return slots

    def _grouped_slots(
        self,
        interval: OpenInterval,
        range_start: int,
        range_end: int,
        prefs: SlotPreferences
    ) -> List[CandidateSlot]:
        """Back-to-back blocks of `block_size` sessions separated by the buffer."""
        slots = []
        step = self.config.candidate_step_minutes
        duration = prefs.session_duration
        stride = duration + interval.buffer_minutes
        block_span = prefs.block_size * stride

        start = range_start
        while start + block_span - interval.buffer_minutes <= range_end and start + block_span <= interval.end_minutes:
            members = [(start + i * stride, start + i * stride + duration) for i in range(prefs.block_size)]
            if all(self._accepts(s, e, prefs) for s, e in members):
                group_id = next(self._group_ids)
                for s, e in members:
                    slots.append(CandidateSlot(
                        day=interval.day,
                        start_minutes=s,
                        end_minutes=e,
                        therapist_id=interval.therapist_id,
                        buffer_minutes=interval.buffer_minutes,
                        window_id=interval.window_id,
                        group_id=group_id
                    ))
            start += step
        return slots
