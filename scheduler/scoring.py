"""
Multi-Criteria Scoring Engine.

This module determines the 'Quality' of a feasible candidate slot.
Unlike hard constraints (binary Yes/No), this provides a gradient (0.0 - 100.0)
built from four weighted criteria:
1. Preference Match - requested days / time windows, softened by flexibility.
2. Gap - distance from the ideal spacing between sessions.
3. Utilization Balance - therapists with a lighter book score higher.
4. Priority - urgent requests pull towards the start of the range.

Optimization rules then adjust the weighted score. `rank_candidates` is a pure
function over (candidates, existing sessions, rules) with no storage access.
"""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Any, Dict, Iterable, List, Optional

from models import (
    OptimizationRule,
    PriorityLevel,
    RuleActionType,
    RuleCondition,
    RuleField,
    RuleOperator,
    RuleScope,
    ScheduledSession
)
from .candidates import CandidateSlot, SlotPreferences
from .config import ScoringWeights
from .utils import to_minutes

logger = logging.getLogger(__name__)

DEFAULT_IMPACT = 10.0
DEFAULT_PREFER_IMPACT = 20.0
NEUTRAL_SCORE = 75.0


def clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


@dataclass
class RankingContext:
    """Everything the optimizer needs besides the candidates themselves."""
    preferences: SlotPreferences
    start_date: date_type
    end_date: date_type
    student_id: str = ""
    subscription_id: str = ""
    priority_level: PriorityLevel = PriorityLevel.MEDIUM
    flexibility_score: float = 50.0
    therapist_utilization: Dict[str, float] = field(default_factory=dict)
    weights: ScoringWeights = field(default_factory=ScoringWeights)


@dataclass
class ScoredCandidate:
    slot: CandidateSlot
    score: float
    preference_score: float = 0.0
    gap_score: float = 0.0
    utilization_score: float = 0.0
    priority_score: float = 0.0
    rule_adjustment: float = 0.0
    applied_rules: List[str] = field(default_factory=list)

    @property
    def sort_key(self):
        # Deterministic: best score first, then earliest date/time, then therapist
        return (-self.score, self.slot.day, self.slot.start_minutes, self.slot.therapist_id)


# --- Rule Interpreter ---

def candidate_facts(slot: CandidateSlot, context: RankingContext, room_id: Optional[str] = None) -> Dict[RuleField, Any]:
    """The closed set of attributes a rule condition may inspect."""
    return {
        RuleField.DAY_OF_WEEK: slot.weekday,
        RuleField.START_HOUR: slot.start_minutes // 60,
        RuleField.START_MINUTES: slot.start_minutes,
        RuleField.DURATION_MINUTES: slot.duration,
        RuleField.THERAPIST_ID: slot.therapist_id,
        RuleField.ROOM_ID: room_id,
        RuleField.THERAPIST_UTILIZATION: round(context.therapist_utilization.get(slot.therapist_id, 0.0) * 100, 2),
        RuleField.PRIORITY_LEVEL: int(context.priority_level),
        RuleField.DAYS_FROM_START: (slot.day - context.start_date).days,
    }


def evaluate_condition(condition: RuleCondition, facts: Dict[RuleField, Any]) -> bool:
    """Fixed predicate interpreter. Type mismatches evaluate to False."""
    op = condition.operator
    if op == RuleOperator.ALL:
        return all(evaluate_condition(c, facts) for c in condition.conditions)
    if op == RuleOperator.ANY:
        return any(evaluate_condition(c, facts) for c in condition.conditions)

    actual = facts.get(condition.field)
    expected = condition.value
    try:
        if op == RuleOperator.EQUALS:
            return actual == expected
        if op == RuleOperator.NOT_EQUALS:
            return actual != expected
        if actual is None:
            return False
        if op == RuleOperator.GREATER_THAN:
            return actual > expected
        if op == RuleOperator.LESS_THAN:
            return actual < expected
        if op == RuleOperator.BETWEEN:
            low, high = expected
            return low <= actual <= high
        if op == RuleOperator.IN:
            return actual in expected
    except TypeError:
        logger.debug(f"Rule condition on {condition.field} not comparable: {actual!r} vs {expected!r}")
        return False
    return False


def rule_applies_to(rule: OptimizationRule, slot: CandidateSlot, context: RankingContext) -> bool:
    """Scope filter. A scoped rule with no targets matches nothing."""
    if rule.applies_to == RuleScope.ALL:
        return True
    if rule.applies_to == RuleScope.THERAPIST:
        return slot.therapist_id in rule.target_ids
    if rule.applies_to == RuleScope.STUDENT:
        return context.student_id in rule.target_ids
    if rule.applies_to == RuleScope.SUBSCRIPTION:
        return context.subscription_id in rule.target_ids
    return False


def order_rules(rules: Iterable[OptimizationRule]) -> List[OptimizationRule]:
    """Active rules, priority descending, ties by creation time then input order."""
    active = [r for r in rules if r.is_active]
    return sorted(active, key=lambda r: (-r.priority, r.created_at))


class RuleInterpreter:

    def __init__(self, rules: Iterable[OptimizationRule]):
        self.rules = order_rules(rules)

    def apply(self, score: float, slot: CandidateSlot, context: RankingContext,
              applied: Optional[List[str]] = None) -> Optional[float]:
        """
        Returns the adjusted score, or None when a reject rule matches.
        The score is clamped after every rule.
        """
        if not self.rules:
            return score
        facts = candidate_facts(slot, context)
        for rule in self.rules:
            if not rule_applies_to(rule, slot, context):
                continue
            if not evaluate_condition(rule.condition, facts):
                continue

            action = rule.action
            if action.type == RuleActionType.REJECT:
                logger.debug(f"Rule {rule.id} rejected {slot.day} {slot.start_time}")
                return None

            if action.score_impact is not None:
                impact = abs(action.score_impact)
            elif action.type == RuleActionType.PREFER:
                impact = DEFAULT_PREFER_IMPACT
            else:
                impact = DEFAULT_IMPACT
            delta = impact * rule.weight
            if action.type == RuleActionType.PENALIZE_SCORE:
                delta = -delta

            score = clamp(score + delta)
            if applied is not None:
                applied.append(rule.id)
        return score


class MultiCriteriaOptimizer:
    """
    Evaluates candidate slots on the four criteria and ranks them.
    """

    def __init__(self, context: RankingContext, existing_sessions: Iterable[ScheduledSession] = (),
                 rules: Iterable[OptimizationRule] = ()):
        self.context = context
        self.interpreter = RuleInterpreter(rules)
        # Student's own committed dates drive the gap criterion
        self.student_dates = sorted({
            s.session_date for s in existing_sessions
            if s.is_active and (not context.student_id or s.student_id == context.student_id)
        })
        per_week = max(1, context.preferences.sessions_per_week)
        self.ideal_spacing = 7.0 / per_week
        self.range_days = max(1, (context.end_date - context.start_date).days)

    def score(self, slot: CandidateSlot) -> Optional[ScoredCandidate]:
        """Master scoring function. Returns None for rule-rejected candidates."""
        weights = self.context.weights

        preference = self.score_preference(slot)
        gap = self.score_gap(slot)
        utilization = self.score_utilization(slot)
        priority = self.score_priority(slot)

        weighted = (
            preference * weights.preference
            + gap * weights.gap
            + utilization * weights.utilization
            + priority * weights.priority
        ) / weights.total
        base = clamp(weighted)

        applied: List[str] = []
        final = self.interpreter.apply(base, slot, self.context, applied)
        if final is None:
            return None

        return ScoredCandidate(
            slot=slot,
            score=round(final, 4),
            preference_score=preference,
            gap_score=gap,
            utilization_score=utilization,
            priority_score=priority,
            rule_adjustment=round(final - base, 4),
            applied_rules=applied
        )

    def score_preference(self, slot: CandidateSlot) -> float:
        prefs = self.context.preferences

        if prefs.preferred_days:
            day_score = 100.0 if slot.weekday in prefs.preferred_days else 40.0
        else:
            day_score = NEUTRAL_SCORE

        time_score = self._score_time_window_fit(slot)
        raw = day_score * 0.4 + time_score * 0.6

        # Flexible students care less where exactly a session lands
        flexibility = max(0.0, min(100.0, self.context.flexibility_score)) / 100.0
        return clamp(raw * (1 - flexibility / 2) + 100.0 * (flexibility / 2))

    def _score_time_window_fit(self, slot: CandidateSlot) -> float:
        """
        Parabolic scoring to prefer the center of the preferred windows;
        outside every window the score decays with distance.
        """
        windows = self.context.preferences.preferred_times
        if not windows:
            return NEUTRAL_SCORE

        best = 0.0
        for window in windows:
            w_start = to_minutes(window.start_time)
            w_end = to_minutes(window.end_time)
            length = w_end - w_start
            if length <= 0:
                continue
            if w_start <= slot.start_minutes <= w_end:
                pos = (slot.start_minutes - w_start) / length
                # Peak (1.0) at the center, 0.0 at the edges
                fit_quality = 1.0 - 4.0 * ((pos - 0.5) ** 2)
                best = max(best, 60.0 + 40.0 * fit_quality)
            else:
                distance = min(abs(slot.start_minutes - w_start), abs(slot.start_minutes - w_end))
                best = max(best, max(0.0, 50.0 - distance / 6.0))
        return best

    def score_gap(self, slot: CandidateSlot) -> float:
        """
        Closeness to the ideal spacing (7 / sessions_per_week days), both
        against the student's committed sessions and the ideal cadence from
        the start date.
        """
        spacing = self.ideal_spacing
        if spacing <= 1.0:
            return 100.0

        offset = (slot.day - self.context.start_date).days % spacing
        distance = min(offset, spacing - offset)
        cadence = 100.0 * (1 - distance / (spacing / 2))

        if self.student_dates:
            nearest = min(abs((slot.day - d).days) for d in self.student_dates)
            if nearest < spacing:
                cadence = min(cadence, 100.0 * nearest / spacing)

        return clamp(cadence)

    def score_utilization(self, slot: CandidateSlot) -> float:
        ratio = self.context.therapist_utilization.get(slot.therapist_id, 0.0)
        return clamp(100.0 * (1 - ratio))

    def score_priority(self, slot: CandidateSlot) -> float:
        level = int(self.context.priority_level)
        base = level / 5.0 * 100.0
        if level >= PriorityLevel.HIGH:
            progress = (slot.day - self.context.start_date).days / self.range_days
            base *= 1 - 0.3 * progress
        return clamp(base)


def rank_candidates(
    candidates: Iterable[CandidateSlot],
    existing_sessions: Iterable[ScheduledSession],
    rules: Iterable[OptimizationRule],
    context: RankingContext
) -> List[ScoredCandidate]:
    """Pure ranking: (candidates, existing sessions, rules) -> ranked candidates."""
    optimizer = MultiCriteriaOptimizer(context, existing_sessions, rules)
    ranked = []
    rejected = 0
    for slot in candidates:
        scored = optimizer.score(slot)
        if scored is None:
            rejected += 1
            continue
        ranked.append(scored)

    ranked.sort(key=lambda c: c.sort_key)
    if rejected:
        logger.info(f"Optimization rules rejected {rejected} candidates")
    return ranked
