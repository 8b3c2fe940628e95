"""
The Therapy Scheduling Engine.

This module implements the core "Solver" logic.
It combines three strategies:
1. Bulk Indexing - availability and committed sessions are loaded once per run
   so every later check is an in-memory lookup.
2. Multi-Criteria Ranking - candidates are scored by a pure function
   (scoring.rank_candidates) before any placement happens.
3. Greedy Assembly - the best non-conflicting candidates are committed until
   the requested count is met; near misses become suggestions.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date as date_type, time as time_type, timedelta
from typing import Dict, List, Optional

from models import (
    ConflictType,
    NotificationEvent,
    NotificationType,
    PriorityLevel,
    ScheduledSession,
    SchedulingConflict,
    SchedulingRequest,
    SchedulingResult,
    SessionCategory,
    localized
)
from stores.base import StoreBundle, StoreError
from .availability import AvailabilityIndex
from .candidates import CandidateSlotGenerator, SlotPreferences
from .capacity import CapacityCheck, CapacityManager, week_start
from .config import SchedulerConfig
from .constraints import ConflictDetector
from .errors import NotFoundError, PartialScheduleWarning, ProcessingError, ValidationError
from .locks import KeyedLockRegistry, default_registry
from .scoring import RankingContext, ScoredCandidate, rank_candidates
from .state import NearMiss, SchedulerState
from .utils import to_minutes
from .validation import ValidationResult, validate_scheduling_request

logger = logging.getLogger(__name__)


@dataclass
class AssemblyOutcome:
    sessions: List[ScheduledSession]
    conflicts: List[SchedulingConflict]
    state: SchedulerState
    candidates_tried: int = 0


@dataclass
class _Unit:
    """One assembly step: a single slot, or a consecutive group committed atomically."""
    members: List[ScoredCandidate] = field(default_factory=list)

    @property
    def score(self) -> float:
        return sum(m.score for m in self.members) / len(self.members)

    @property
    def sort_key(self):
        first = self.members[0].slot
        return (-self.score, first.day, first.start_minutes, first.therapist_id)


def _build_units(ranked: List[ScoredCandidate]) -> List[_Unit]:
    units: List[_Unit] = []
    groups: Dict[int, _Unit] = {}
    for cand in ranked:
        gid = cand.slot.group_id
        if gid is None:
            units.append(_Unit([cand]))
        elif gid in groups:
            groups[gid].members.append(cand)
        else:
            groups[gid] = _Unit([cand])
            units.append(groups[gid])

    for unit in groups.values():
        unit.members.sort(key=lambda m: m.slot.start_minutes)
    units.sort(key=lambda u: u.sort_key)
    return units


def _near_miss_type(check: CapacityCheck) -> ConflictType:
    codes = {r.code for r in check.reasons}
    if codes == {"room_unavailable"}:
        return ConflictType.ROOM_UNAVAILABLE
    if codes == {"no_matching_room"}:
        return ConflictType.EQUIPMENT_CONFLICT
    if "outside_availability" in codes:
        return ConflictType.TIME_CONSTRAINT
    return ConflictType.CAPACITY_EXCEEDED


def assemble_schedule(
    ranked: List[ScoredCandidate],
    total_sessions: int,
    *,
    subscription_id: str,
    student_id: str,
    start_date: date_type,
    prefs: SlotPreferences,
    detector: ConflictDetector,
    capacity: CapacityManager,
    config: SchedulerConfig,
    category: SessionCategory = SessionCategory.THERAPY,
    priority_level: PriorityLevel = PriorityLevel.MEDIUM,
    deadline: Optional[float] = None
) -> AssemblyOutcome:
    """
    Greedy assembly over a score-sorted pool.

    Every commit is visible to the detector and capacity manager for the rest
    of the run, so no two generated sessions can overlap. Consecutive groups
    commit all members or none (a trailing group may be truncated to what is
    still needed).
    """
    state = SchedulerState(start_date, prefs.max_sessions_per_day, prefs.sessions_per_week)
    conflicts: List[SchedulingConflict] = []
    remaining = total_sessions
    tried = 0

    for unit in _build_units(ranked):
        if remaining <= 0:
            break
        if deadline is not None and time.monotonic() > deadline:
            raise ProcessingError(
                localized("time_budget_exceeded", seconds=config.generation_time_budget_s),
                {"placed_before_abort": len(state.booked_sessions)}
            )

        members = unit.members[:remaining]
        day = members[0].slot.day
        # Student caps are policy, not conflicts: skip silently
        if not state.has_room_for(day, len(members)):
            continue

        tried += 1
        planned: List[ScheduledSession] = []
        failed = False

        for cand in members:
            slot = cand.slot
            found = detector.check(
                slot.day, slot.start_minutes, slot.end_minutes, slot.therapist_id,
                student_id=student_id, buffer_minutes=slot.buffer_minutes
            )
            if found:
                for conflict in found:
                    if len(conflicts) < config.max_reported_conflicts:
                        conflicts.append(conflict)
                state.record_failure(NearMiss(
                    candidate=cand,
                    conflict_type=found[0].conflict_type,
                    resource_id=found[0].resource_id,
                    reasons=[found[0].message]
                ))
                failed = True
                break

            check = capacity.check_assignment(
                slot.therapist_id, slot.day, slot.start_minutes, slot.end_minutes,
                room_type=prefs.required_room_type,
                equipment=prefs.required_equipment,
                buffer_minutes=slot.buffer_minutes
            )
            if not check.passed:
                state.record_failure(NearMiss(
                    candidate=cand,
                    conflict_type=_near_miss_type(check),
                    resource_id=slot.therapist_id,
                    reasons=check.reasons
                ))
                failed = True
                break

            session = ScheduledSession(
                subscription_id=subscription_id,
                student_id=student_id,
                therapist_id=slot.therapist_id,
                room_id=check.room_id,
                session_date=slot.day,
                start_time=slot.start_time,
                end_time=slot.end_time,
                duration_minutes=slot.duration,
                buffer_minutes=slot.buffer_minutes,
                category=category,
                priority_level=priority_level,
                equipment_ids=list(prefs.required_equipment),
                optimization_score=round(cand.score, 2)
            )
            # Tentative: later members of the group must see this one
            detector.add(session)
            capacity.record_assignment(session)
            planned.append(session)

        if failed:
            for session in planned:
                detector.remove(session.id)
                capacity.release_assignment(session)
            continue

        for session in planned:
            state.add_booking(session)
        remaining -= len(planned)

    logger.debug(f"Assembly tried {tried} units, placed {len(state.booked_sessions)}")
    return AssemblyOutcome(
        sessions=list(state.booked_sessions),
        conflicts=conflicts,
        state=state,
        candidates_tried=tried
    )


class SchedulingEngine:
    """
    Orchestrates one generation run: fetch -> index -> generate -> rank ->
    assemble -> commit. All I/O goes through the StoreBundle.
    """

    def __init__(
        self,
        stores: StoreBundle,
        config: Optional[SchedulerConfig] = None,
        locks: Optional[KeyedLockRegistry] = None
    ):
        self.stores = stores
        self.config = config or SchedulerConfig()
        self.locks = locks if locks is not None else default_registry
        self.generator = CandidateSlotGenerator(self.config)

    def validate_scheduling_request(self, request: SchedulingRequest) -> ValidationResult:
        return validate_scheduling_request(request)

    def generate_optimized_schedule(self, request: SchedulingRequest, commit: bool = True) -> SchedulingResult:
        """
        Generate and (unless `commit=False`) persist a schedule.

        Raises ValidationError / NotFoundError before any side effect and
        ProcessingError when a store fails or the time budget runs out; in
        those cases nothing has been written.
        """
        validation = validate_scheduling_request(request)
        if not validation.is_valid:
            raise ValidationError(validation.errors)

        with self.locks.hold(request.subscription_id):
            return self._generate(request, commit)

    def _generate(self, request: SchedulingRequest, commit: bool) -> SchedulingResult:
        started = time.monotonic()
        deadline = started + self.config.generation_time_budget_s
        logger.info(
            f"Generating {request.total_sessions} sessions for {request.subscription_id} "
            f"({request.start_date} -> {request.end_date})"
        )

        # --- Phase 1: Fetch (one bulk read per collaborator) ---
        try:
            subscription = self.stores.subscriptions.get_subscription(request.subscription_id)
            if subscription is None:
                raise NotFoundError(localized("subscription_not_found", subscription_id=request.subscription_id))

            template = None
            if request.template_id:
                template = self.stores.templates.get_template(request.template_id)
                if template is None:
                    raise NotFoundError(localized("template_not_found", template_id=request.template_id))

            prefs = SlotPreferences.resolve(request, template, self.config)
            if prefs.preferred_therapist_id:
                therapist_ids = [prefs.preferred_therapist_id]
            else:
                therapist_ids = self.stores.availability.list_therapist_ids()

            rows = self.stores.availability.list_availability(therapist_ids, request.start_date, request.end_date)
            capacities = self.stores.availability.list_capacities(therapist_ids)
            rooms = self.stores.availability.list_rooms()
            # Week boundaries need the surrounding days for weekly-hour limits
            existing = self.stores.sessions.list_sessions(
                start_date=week_start(request.start_date),
                end_date=request.end_date + timedelta(days=6)
            )
            rules = self.stores.rules.list_active_rules()
        except StoreError as e:
            logger.error(f"Store failure while loading scheduling inputs: {e}")
            raise ProcessingError(localized("store_failure", detail=str(e))) from e

        student_id = subscription.student_id
        student_sessions = [s for s in existing if s.student_id == student_id]

        # --- Phase 2: Index & Generate ---
        index = AvailabilityIndex.build(therapist_ids, rows, existing, request.start_date, request.end_date)
        warnings = list(index.warnings)

        candidates = self.generator.generate(prefs, index, request.start_date, request.end_date, therapist_ids)
        if len(candidates) < request.total_sessions:
            warnings.append(localized("small_candidate_pool", pool=len(candidates), total=request.total_sessions))

        # --- Phase 3: Rank (pure) ---
        utilization = {t: index.utilization(t) for t in index.known_therapists}
        context = RankingContext(
            preferences=prefs,
            start_date=request.start_date,
            end_date=request.end_date,
            student_id=student_id,
            subscription_id=request.subscription_id,
            priority_level=request.priority_level,
            flexibility_score=request.flexibility_score,
            therapist_utilization=utilization,
            weights=self.config.weights
        )
        ranked = rank_candidates(candidates, student_sessions, rules, context)

        # --- Phase 4: Assemble ---
        detector = ConflictDetector(existing)
        capacity = CapacityManager(rows, capacities, rooms, existing, self.config, detector)
        outcome = assemble_schedule(
            ranked,
            request.total_sessions,
            subscription_id=request.subscription_id,
            student_id=student_id,
            start_date=request.start_date,
            prefs=prefs,
            detector=detector,
            capacity=capacity,
            config=self.config,
            category=request.session_category,
            priority_level=request.priority_level,
            deadline=deadline
        )

        if time.monotonic() > deadline:
            raise ProcessingError(localized("time_budget_exceeded", seconds=self.config.generation_time_budget_s))

        result = self._build_result(request, outcome, ranked, index, warnings, started)

        # --- Phase 5: Commit (single atomic write) ---
        if commit and outcome.sessions:
            try:
                self.stores.sessions.insert_sessions(outcome.sessions)
            except StoreError as e:
                logger.error(f"Commit of {len(outcome.sessions)} sessions failed: {e}")
                raise ProcessingError(localized("store_failure", detail=str(e))) from e

            self._notify(NotificationEvent(
                type=NotificationType.SCHEDULE_GENERATED,
                payload={
                    "subscription_id": request.subscription_id,
                    "student_id": student_id,
                    "sessions_count": len(outcome.sessions),
                    "unscheduled_sessions": result.unscheduled_sessions,
                }
            ))

        logger.info(
            f"Generated {len(result.generated_sessions)}/{request.total_sessions} sessions "
            f"in {result.generation_time_ms:.1f} ms (score {result.optimization_score:.1f})"
        )
        return result

    def _build_result(
        self,
        request: SchedulingRequest,
        outcome: AssemblyOutcome,
        ranked: List[ScoredCandidate],
        index: AvailabilityIndex,
        warnings: List,
        started: float
    ) -> SchedulingResult:
        sessions = outcome.sessions
        state = outcome.state
        unscheduled = request.total_sessions - len(sessions)

        by_slot = {(c.slot.therapist_id, c.slot.day, c.slot.start_minutes): c for c in ranked}
        placed = [by_slot[(s.therapist_id, s.session_date, s.start_minutes)] for s in sessions
                  if (s.therapist_id, s.session_date, s.start_minutes) in by_slot]

        optimization = sum(c.score for c in placed) / len(placed) if placed else 0.0
        preference = sum(c.preference_score for c in placed) / len(placed) if placed else 0.0

        run_minutes: Dict[str, int] = defaultdict(int)
        for s in sessions:
            run_minutes[s.therapist_id] += s.duration_minutes
        utilization = {}
        for therapist_id in index.known_therapists:
            open_min = index.open_minutes.get(therapist_id, 0)
            booked = index.booked_minutes.get(therapist_id, 0) + run_minutes.get(therapist_id, 0)
            utilization[therapist_id] = round(min(100.0, booked / open_min * 100), 2) if open_min else 0.0

        suggestions = []
        if unscheduled > 0:
            logger.warning(f"Partial schedule for {request.subscription_id}: {unscheduled} unscheduled")
            warnings.append(localized(
                PartialScheduleWarning.code,
                scheduled=len(sessions), total=request.total_sessions, unscheduled=unscheduled
            ))
            suggestions = state.get_suggestions(self.config.max_suggestions)

        if outcome.conflicts:
            warnings.append(localized("conflicts_detected", count=len(outcome.conflicts)))

        if request.max_gap_between_sessions:
            largest = state.max_gap_days()
            if largest > request.max_gap_between_sessions:
                warnings.append(localized("max_gap_exceeded", gap=largest, limit=request.max_gap_between_sessions))

        return SchedulingResult(
            success=len(sessions) > 0,
            total_sessions=request.total_sessions,
            generated_sessions=sorted(sessions, key=lambda s: (s.session_date, s.start_time)),
            unscheduled_sessions=unscheduled,
            conflicts=outcome.conflicts,
            suggestions=suggestions,
            optimization_score=round(optimization, 2),
            preference_match_score=round(preference, 2),
            therapist_utilization=utilization,
            average_gap_days=state.average_gap_days(),
            statistics=state.get_statistics(),
            warnings=warnings,
            candidate_pool_size=len(ranked),
            generation_time_ms=round((time.monotonic() - started) * 1000, 2)
        )

    def check_assignment_capacity(
        self,
        therapist_id: str,
        session_date: date_type,
        start_time: time_type,
        end_time: time_type,
        room_type: Optional[str] = None,
        equipment: Optional[List[str]] = None
    ) -> CapacityCheck:
        """Standalone pre-check for one proposed assignment."""
        week = week_start(session_date)
        try:
            rows = self.stores.availability.list_availability([therapist_id], session_date, session_date)
            capacities = self.stores.availability.list_capacities([therapist_id])
            rooms = self.stores.availability.list_rooms()
            existing = self.stores.sessions.list_sessions(start_date=week, end_date=week + timedelta(days=6))
        except StoreError as e:
            raise ProcessingError(localized("store_failure", detail=str(e))) from e

        detector = ConflictDetector([s for s in existing if s.session_date == session_date])
        therapist_sessions = [s for s in existing if s.therapist_id == therapist_id]
        capacity = CapacityManager(rows, capacities, rooms, therapist_sessions, self.config, detector)
        return capacity.check_assignment(
            therapist_id, session_date, to_minutes(start_time), to_minutes(end_time),
            room_type=room_type, equipment=equipment
        )

    def _notify(self, event: NotificationEvent) -> int:
        """Fire-and-forget; a dispatcher failure never fails the operation."""
        try:
            self.stores.notifications.dispatch(event)
            return 1
        except Exception as e:
            logger.warning(f"Notification {event.type.value} could not be dispatched: {e}")
            return 0
