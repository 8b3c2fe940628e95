"""Thread-safe in-memory implementations of the store interfaces"""

import threading
from datetime import date
from typing import Dict, Iterable, List, Optional, Set
import logging

from models import (
    BillingAdjustment,
    FreezeRecord,
    NotificationEvent,
    OptimizationRule,
    Room,
    ScheduledSession,
    ScheduleTemplate,
    Subscription,
    TherapistAvailability,
    TherapistCapacity
)
from .base import (
    AvailabilityStore,
    BillingGateway,
    FreezeHistoryStore,
    NotificationDispatcher,
    RuleStore,
    SessionStore,
    SlotAlreadyBookedError,
    StoreBundle,
    StoreError,
    SubscriptionStore,
    TemplateStore
)

logger = logging.getLogger(__name__)


class InMemorySubscriptionStore(SubscriptionStore):

    def __init__(self, subscriptions: Iterable[Subscription] = ()):
        self._lock = threading.Lock()
        self._rows: Dict[str, Subscription] = {s.id: s.model_copy(deep=True) for s in subscriptions}

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            row = self._rows.get(subscription_id)
            return row.model_copy(deep=True) if row else None

    def update_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription.id not in self._rows:
                raise StoreError(f"Subscription {subscription.id} does not exist")
            self._rows[subscription.id] = subscription.model_copy(deep=True)

    def add(self, subscription: Subscription) -> None:
        with self._lock:
            self._rows[subscription.id] = subscription.model_copy(deep=True)


def _clashes(a: ScheduledSession, b: ScheduledSession) -> bool:
    return a.start_minutes < b.end_minutes + b.buffer_minutes and \
        a.end_minutes + a.buffer_minutes > b.start_minutes


class InMemorySessionStore(SessionStore):
    """
    Rows are kept by id. Commits enforce therapist+date+start uniqueness and
    buffered overlap per therapist and per room, like a DB constraint would.
    """

    def __init__(self, sessions: Iterable[ScheduledSession] = ()):
        self._lock = threading.Lock()
        self._rows: Dict[str, ScheduledSession] = {s.id: s.model_copy(deep=True) for s in sessions}

    def list_sessions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        therapist_ids: Optional[Iterable[str]] = None,
        student_id: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[ScheduledSession]:
        wanted = set(therapist_ids) if therapist_ids is not None else None
        with self._lock:
            rows = list(self._rows.values())

        result = []
        for s in rows:
            if not include_inactive and not s.is_active:
                continue
            if start_date and s.session_date < start_date:
                continue
            if end_date and s.session_date > end_date:
                continue
            if wanted is not None and s.therapist_id not in wanted:
                continue
            if student_id and s.student_id != student_id:
                continue
            result.append(s.model_copy(deep=True))

        result.sort(key=lambda s: (s.session_date, s.start_time, s.therapist_id))
        return result

    def get_session(self, session_id: str) -> Optional[ScheduledSession]:
        with self._lock:
            row = self._rows.get(session_id)
            return row.model_copy(deep=True) if row else None

    def _check_batch(self, sessions: List[ScheduledSession], moving: Set[str]) -> None:
        """Raise on the first session that clashes with a stored row or an earlier batch member.

        Rows whose ids are in `moving` are being replaced and do not block.
        Caller holds the lock.
        """
        active = [s for s in self._rows.values() if s.is_active and s.id not in moving]
        pending: List[ScheduledSession] = []
        for new in sessions:
            if not new.is_active:
                continue
            for other in active + pending:
                if other.session_date != new.session_date:
                    continue
                same_therapist = other.therapist_id == new.therapist_id
                same_room = new.room_id is not None and other.room_id == new.room_id
                if not (same_therapist or same_room):
                    continue
                if (same_therapist and other.start_time == new.start_time) or _clashes(new, other):
                    raise SlotAlreadyBookedError(
                        f"Slot {new.session_date} {new.start_time} already booked "
                        f"(clashes with {other.id})",
                        new.id
                    )
            pending.append(new)

    def insert_sessions(self, sessions: List[ScheduledSession]) -> None:
        with self._lock:
            for new in sessions:
                if new.id in self._rows:
                    raise SlotAlreadyBookedError(f"Session {new.id} already exists", new.id)
            self._check_batch(sessions, set())

            # Validation passed for the whole batch: apply
            for new in sessions:
                self._rows[new.id] = new.model_copy(deep=True)
        logger.debug(f"Inserted {len(sessions)} sessions")

    def reschedule_sessions(self, sessions: List[ScheduledSession]) -> None:
        with self._lock:
            for moved in sessions:
                if moved.id not in self._rows:
                    raise StoreError(f"Session {moved.id} does not exist")
            self._check_batch(sessions, {s.id for s in sessions})

            for moved in sessions:
                self._rows[moved.id] = moved.model_copy(deep=True)
        logger.debug(f"Rescheduled {len(sessions)} sessions")

    def update_session(self, session: ScheduledSession) -> None:
        with self._lock:
            if session.id not in self._rows:
                raise StoreError(f"Session {session.id} does not exist")
            self._rows[session.id] = session.model_copy(deep=True)


class InMemoryAvailabilityStore(AvailabilityStore):

    def __init__(
        self,
        availability: Iterable[TherapistAvailability] = (),
        capacities: Iterable[TherapistCapacity] = (),
        rooms: Iterable[Room] = (),
        therapist_ids: Optional[Iterable[str]] = None,
    ):
        self._availability = [a.model_copy(deep=True) for a in availability]
        self._capacities = {c.therapist_id: c.model_copy(deep=True) for c in capacities}
        self._rooms = [r.model_copy(deep=True) for r in rooms]
        if therapist_ids is None:
            therapist_ids = sorted({a.therapist_id for a in self._availability} | set(self._capacities))
        self._therapist_ids = list(therapist_ids)

    def list_therapist_ids(self) -> List[str]:
        return list(self._therapist_ids)

    def list_availability(self, therapist_ids: Iterable[str], start_date: date, end_date: date) -> List[TherapistAvailability]:
        wanted = set(therapist_ids)
        rows = []
        for row in self._availability:
            if row.therapist_id not in wanted:
                continue
            if not row.is_recurring and not (start_date <= row.specific_date <= end_date):
                continue
            rows.append(row.model_copy(deep=True))
        return rows

    def list_capacities(self, therapist_ids: Iterable[str]) -> List[TherapistCapacity]:
        return [self._capacities[t].model_copy(deep=True) for t in therapist_ids if t in self._capacities]

    def list_rooms(self) -> List[Room]:
        return [r.model_copy(deep=True) for r in self._rooms]


class InMemoryRuleStore(RuleStore):

    def __init__(self, rules: Iterable[OptimizationRule] = ()):
        self._rules = list(rules)

    def list_active_rules(self) -> List[OptimizationRule]:
        return [r.model_copy(deep=True) for r in self._rules if r.is_active]


class InMemoryTemplateStore(TemplateStore):

    def __init__(self, templates: Iterable[ScheduleTemplate] = ()):
        self._templates = {t.id: t for t in templates}

    def get_template(self, template_id: str) -> Optional[ScheduleTemplate]:
        template = self._templates.get(template_id)
        if template is None or not template.is_active:
            return None
        return template.model_copy(deep=True)


class InMemoryFreezeHistoryStore(FreezeHistoryStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._records: List[FreezeRecord] = []

    def append(self, record: FreezeRecord) -> None:
        with self._lock:
            self._records.append(record)

    def list_for_subscription(self, subscription_id: str) -> List[FreezeRecord]:
        with self._lock:
            return [r for r in self._records if r.subscription_id == subscription_id]


class InMemoryBillingGateway(BillingGateway):

    def __init__(self):
        self.adjustments: List[BillingAdjustment] = []

    def record_adjustment(self, adjustment: BillingAdjustment) -> None:
        self.adjustments.append(adjustment.model_copy(deep=True))


class InMemoryNotificationDispatcher(NotificationDispatcher):

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)
        logger.info(f"Notification queued: {event.type.value}")


def in_memory_bundle(
    subscriptions: Iterable[Subscription] = (),
    sessions: Iterable[ScheduledSession] = (),
    availability: Iterable[TherapistAvailability] = (),
    capacities: Iterable[TherapistCapacity] = (),
    rooms: Iterable[Room] = (),
    rules: Iterable[OptimizationRule] = (),
    templates: Iterable[ScheduleTemplate] = (),
    therapist_ids: Optional[Iterable[str]] = None,
) -> StoreBundle:
    return StoreBundle(
        subscriptions=InMemorySubscriptionStore(subscriptions),
        sessions=InMemorySessionStore(sessions),
        availability=InMemoryAvailabilityStore(availability, capacities, rooms, therapist_ids),
        rules=InMemoryRuleStore(rules),
        templates=InMemoryTemplateStore(templates),
        freeze_history=InMemoryFreezeHistoryStore(),
        billing=InMemoryBillingGateway(),
        notifications=InMemoryNotificationDispatcher(),
    )
