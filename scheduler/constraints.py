"""
Hard Constraint Validation Logic.

This module answers the binary question: "Can this slot be booked for
therapist T, room R and student S?"
It keeps a date-indexed interval set per resource, pre-loaded once per run,
so a single check is a handful of comparisons rather than a storage query.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date as date_type
from typing import Dict, Iterable, List, Optional, Tuple

from models import (
    ConflictSeverity,
    ConflictType,
    ScheduledSession,
    SchedulingConflict,
    localized
)
from .utils import from_minutes

logger = logging.getLogger(__name__)


THERAPIST = "therapist"
ROOM = "room"
STUDENT = "student"

_CONFLICT_KIND = {
    THERAPIST: (ConflictType.THERAPIST_DOUBLE_BOOKING, ConflictSeverity.HIGH, "therapist_double_booking"),
    ROOM: (ConflictType.ROOM_UNAVAILABLE, ConflictSeverity.MEDIUM, "room_unavailable"),
    STUDENT: (ConflictType.STUDENT_UNAVAILABLE, ConflictSeverity.HIGH, "student_unavailable"),
}


@dataclass
class BookedInterval:
    """One occupied stretch of a resource's day."""
    start_minutes: int
    end_minutes: int
    buffer_minutes: int
    session_id: Optional[str] = None


class ConflictDetector:
    """
    Symmetric buffered overlap:
        cand.start < other.end + other.buffer  and  cand.end + cand.buffer > other.start
    Student intervals ignore buffers (buffers are therapist/room rest time).
    """

    def __init__(self, sessions: Iterable[ScheduledSession] = ()):
        self._index: Dict[Tuple[str, str], Dict[date_type, List[BookedInterval]]] = \
            defaultdict(lambda: defaultdict(list))
        for session in sessions:
            if session.is_active:
                self.add(session)

    def add(self, session: ScheduledSession) -> None:
        """Mark therapist, room and student busy for the session's interval."""
        entry = BookedInterval(
            start_minutes=session.start_minutes,
            end_minutes=session.end_minutes,
            buffer_minutes=session.buffer_minutes,
            session_id=session.id
        )
        self._index[(THERAPIST, session.therapist_id)][session.session_date].append(entry)
        self._index[(STUDENT, session.student_id)][session.session_date].append(entry)
        if session.room_id:
            self._index[(ROOM, session.room_id)][session.session_date].append(entry)

    def remove(self, session_id: str) -> None:
        for by_date in self._index.values():
            for day, entries in by_date.items():
                by_date[day] = [e for e in entries if e.session_id != session_id]

    def find_overlap(
        self,
        kind: str,
        resource_id: str,
        day: date_type,
        start_minutes: int,
        end_minutes: int,
        buffer_minutes: int = 0
    ) -> Optional[BookedInterval]:
        entries = self._index.get((kind, resource_id), {}).get(day, [])
        use_buffers = kind != STUDENT
        cand_buffer = buffer_minutes if use_buffers else 0
        for other in entries:
            other_buffer = other.buffer_minutes if use_buffers else 0
            if start_minutes < other.end_minutes + other_buffer and end_minutes + cand_buffer > other.start_minutes:
                return other
        return None

    def check(
        self,
        day: date_type,
        start_minutes: int,
        end_minutes: int,
        therapist_id: str,
        student_id: Optional[str] = None,
        room_id: Optional[str] = None,
        buffer_minutes: int = 0
    ) -> List[SchedulingConflict]:
        """Return every conflict for the slot; empty list means free."""
        targets = [(THERAPIST, therapist_id)]
        if room_id:
            targets.append((ROOM, room_id))
        if student_id:
            targets.append((STUDENT, student_id))

        conflicts = []
        for kind, resource_id in targets:
            other = self.find_overlap(kind, resource_id, day, start_minutes, end_minutes, buffer_minutes)
            if other is None:
                continue
            conflict_type, severity, message_code = _CONFLICT_KIND[kind]
            conflicts.append(SchedulingConflict(
                conflict_type=conflict_type,
                severity=severity,
                session_date=day,
                start_time=from_minutes(start_minutes),
                end_time=from_minutes(end_minutes),
                therapist_id=therapist_id,
                resource_id=resource_id,
                conflicting_session_id=other.session_id,
                message=localized(message_code)
            ))
        return conflicts

    def is_free(self, kind: str, resource_id: str, day: date_type, start_minutes: int, end_minutes: int,
                buffer_minutes: int = 0) -> bool:
        return self.find_overlap(kind, resource_id, day, start_minutes, end_minutes, buffer_minutes) is None


def find_overlapping_pairs(sessions: List[ScheduledSession]) -> List[Tuple[str, str]]:
    """
    Audit helper: pairs of active sessions sharing a therapist whose buffered
    intervals overlap. A valid schedule returns an empty list.
    """
    by_key: Dict[Tuple[str, date_type], List[ScheduledSession]] = defaultdict(list)
    for s in sessions:
        if s.is_active:
            by_key[(s.therapist_id, s.session_date)].append(s)

    pairs = []
    for day_sessions in by_key.values():
        day_sessions.sort(key=lambda s: s.start_minutes)
        for i, a in enumerate(day_sessions):
            for b in day_sessions[i + 1:]:
                if a.start_minutes < b.end_minutes + b.buffer_minutes and \
                        a.end_minutes + a.buffer_minutes > b.start_minutes:
                    pairs.append((a.id, b.id))
    return pairs
