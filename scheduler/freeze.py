"""
Freeze / Reschedule Coordinator.

State machine on Subscription.status:
    active --freeze--> frozen --resume--> active

A freeze:
1. Validates the window and checks the freeze-day allowance (the only hard
   precondition; failure leaves everything untouched).
2. Moves every affected session to the first workable slot after the window,
   reusing the availability index, candidate generator and conflict detector.
   Sessions that cannot be moved become PendingConflicts.
3. Extends the subscription end date, appends a FreezeRecord, records a
   pro-rated billing credit and emits a notification.
"""

import logging
from datetime import date as date_type, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from models import (
    BillingAdjustment,
    FreezeOperation,
    FreezePreview,
    FreezeRecord,
    FreezeResult,
    NotificationEvent,
    NotificationType,
    PendingConflict,
    RescheduledSession,
    ScheduledSession,
    SessionStatus,
    Subscription,
    SubscriptionStatus,
    localized
)
from stores.base import StoreBundle, StoreError
from .availability import AvailabilityIndex
from .candidates import CandidateSlot, CandidateSlotGenerator, SlotPreferences
from .capacity import CapacityManager, week_start
from .config import SchedulerConfig
from .constraints import ConflictDetector
from .errors import InsufficientAllowanceError, NotFoundError, ProcessingError, ValidationError
from .locks import KeyedLockRegistry, default_registry
from .utils import day_of_week, inclusive_days

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def prorated_credit(subscription: Subscription, freeze_days: int) -> BillingAdjustment:
    """total_amount * freeze_days / subscription length, rounded half-up to cents."""
    length = max(1, subscription.length_days)
    daily_rate = (subscription.total_amount / Decimal(length)).quantize(CENTS, rounding=ROUND_HALF_UP)
    amount = (subscription.total_amount * Decimal(freeze_days) / Decimal(length)).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )
    return BillingAdjustment(
        subscription_id=subscription.id,
        freeze_days=freeze_days,
        daily_rate=daily_rate,
        amount=-amount,
        currency=subscription.currency
    )


class FreezeCoordinator:

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

    # --- Public API ---

    def preview_freeze(self, subscription_id: str, start: date_type, end: date_type) -> FreezePreview:
        """Dry run: what a freeze would touch. Nothing is written."""
        subscription = self._load_subscription(subscription_id)
        self._validate_window(subscription, start, end)
        freeze_days = inclusive_days(start, end)

        affected = self._affected_sessions(subscription, start, end)
        _, pending = self._plan_reschedules(subscription, affected, end)

        return FreezePreview(
            subscription_id=subscription_id,
            freeze_days=freeze_days,
            affected_sessions_count=len(affected),
            new_end_date=subscription.end_date + timedelta(days=freeze_days),
            conflicts_count=len(pending),
            remaining_freeze_days=subscription.remaining_freeze_days - freeze_days
        )

    def freeze_subscription(
        self,
        subscription_id: str,
        start: date_type,
        end: date_type,
        reason: str = "",
        actor_id: Optional[str] = None
    ) -> FreezeResult:
        with self.locks.hold(subscription_id):
            subscription = self._load_subscription(subscription_id)
            self._validate_window(subscription, start, end)

            freeze_days = inclusive_days(start, end)
            if subscription.freeze_days_used + freeze_days > subscription.freeze_days_allowed:
                logger.info(
                    f"Freeze rejected for {subscription_id}: requested {freeze_days}, "
                    f"available {subscription.remaining_freeze_days}"
                )
                raise InsufficientAllowanceError(subscription.remaining_freeze_days, freeze_days)

            affected = self._affected_sessions(subscription, start, end)
            moves, pending = self._plan_reschedules(subscription, affected, end)

            updated = subscription.model_copy(update={
                "end_date": subscription.end_date + timedelta(days=freeze_days),
                "freeze_days_used": subscription.freeze_days_used + freeze_days,
                "status": SubscriptionStatus.FROZEN,
                "current_freeze_start": start,
                "current_freeze_end": end,
            })
            record = FreezeRecord(
                subscription_id=subscription_id,
                operation_type=FreezeOperation.FREEZE,
                freeze_start_date=start,
                freeze_end_date=end,
                freeze_days=freeze_days,
                reason=reason,
                affected_sessions=len(affected),
                rescheduled_sessions=len(moves),
                pending_conflicts=len(pending),
                original_end_date=subscription.end_date,
                new_end_date=updated.end_date,
                actor_id=actor_id
            )

            self._commit(subscription, updated, moves, record)

            adjustment = prorated_credit(subscription, freeze_days)
            try:
                self.stores.billing.record_adjustment(adjustment)
            except StoreError as e:
                # The freeze itself stands; billing is reconciled separately
                logger.error(f"Billing adjustment for {subscription_id} not recorded: {e}")

            sent = self._notify(NotificationEvent(
                type=NotificationType.SUBSCRIPTION_FROZEN,
                payload={
                    "subscription_id": subscription_id,
                    "student_id": subscription.student_id,
                    "freeze_start": start.isoformat(),
                    "freeze_end": end.isoformat(),
                    "new_end_date": updated.end_date.isoformat(),
                    "affected_sessions": len(affected),
                    "pending_conflicts": len(pending),
                }
            ))

            logger.info(
                f"Froze {subscription_id} for {freeze_days} days: {len(moves)} rescheduled, "
                f"{len(pending)} pending, new end date {updated.end_date}"
            )
            return FreezeResult(
                success=True,
                subscription=updated,
                freeze_record=record,
                freeze_days=freeze_days,
                new_end_date=updated.end_date,
                affected_sessions_count=len(affected),
                rescheduled=[self._describe_move(original, moved) for original, moved in moves],
                pending_conflicts=pending,
                billing_adjustment=adjustment,
                notifications_sent=sent
            )

    def resume_subscription(self, subscription_id: str, actor_id: Optional[str] = None) -> Subscription:
        """frozen -> active. Dates and freeze counters are left as the freeze set them."""
        with self.locks.hold(subscription_id):
            subscription = self._load_subscription(subscription_id)
            if subscription.status != SubscriptionStatus.FROZEN:
                raise ValidationError([localized("subscription_not_frozen")])

            resumed = subscription.model_copy(update={
                "status": SubscriptionStatus.ACTIVE,
                "current_freeze_start": None,
                "current_freeze_end": None,
            })
            record = FreezeRecord(
                subscription_id=subscription_id,
                operation_type=FreezeOperation.UNFREEZE,
                freeze_start_date=subscription.current_freeze_start or date_type.today(),
                freeze_end_date=subscription.current_freeze_end or date_type.today(),
                freeze_days=0,
                original_end_date=subscription.end_date,
                new_end_date=subscription.end_date,
                actor_id=actor_id
            )
            self._commit(subscription, resumed, [], record)
            self._notify(NotificationEvent(
                type=NotificationType.SUBSCRIPTION_RESUMED,
                payload={"subscription_id": subscription_id, "student_id": subscription.student_id}
            ))
            logger.info(f"Resumed subscription {subscription_id}")
            return resumed

    def freeze_history(self, subscription_id: str) -> List[FreezeRecord]:
        try:
            records = self.stores.freeze_history.list_for_subscription(subscription_id)
        except StoreError as e:
            raise ProcessingError(localized("store_failure", detail=str(e))) from e
        return sorted(records, key=lambda r: r.created_at)

    # --- Validation ---

    def _load_subscription(self, subscription_id: str) -> Subscription:
        try:
            subscription = self.stores.subscriptions.get_subscription(subscription_id)
        except StoreError as e:
            raise ProcessingError(localized("store_failure", detail=str(e))) from e
        if subscription is None:
            raise NotFoundError(localized("subscription_not_found", subscription_id=subscription_id))
        return subscription

    def _validate_window(self, subscription: Subscription, start: date_type, end: date_type) -> None:
        errors = []
        if end < start:
            errors.append(localized("invalid_freeze_range"))
        if subscription.status != SubscriptionStatus.ACTIVE:
            errors.append(localized("subscription_not_active", status=subscription.status.value))
        limit = self.config.max_freeze_days_per_request
        if limit and end >= start and inclusive_days(start, end) > limit:
            errors.append(localized("freeze_too_long", limit=limit))
        if errors:
            raise ValidationError(errors)

    # --- Rescheduling ---

    def _affected_sessions(self, subscription: Subscription, start: date_type, end: date_type) -> List[ScheduledSession]:
        try:
            sessions = self.stores.sessions.list_sessions(
                start_date=start, end_date=end, student_id=subscription.student_id
            )
        except StoreError as e:
            raise ProcessingError(localized("store_failure", detail=str(e))) from e
        return sorted(sessions, key=lambda s: (s.session_date, s.start_time))

    def _plan_reschedules(
        self,
        subscription: Subscription,
        affected: List[ScheduledSession],
        freeze_end: date_type
    ) -> Tuple[List[Tuple[ScheduledSession, ScheduledSession]], List[PendingConflict]]:
        """
        Pure planning against a snapshot of the horizon after the freeze.
        Returns (original, moved) pairs and the sessions that could not move.
        """
        if not affected:
            return [], []

        search_start = freeze_end + timedelta(days=1)
        search_end = freeze_end + timedelta(days=self.config.reschedule_horizon_days)
        therapist_ids = sorted({s.therapist_id for s in affected})

        try:
            rows = self.stores.availability.list_availability(therapist_ids, search_start, search_end)
            capacities = self.stores.availability.list_capacities(therapist_ids)
            rooms = self.stores.availability.list_rooms()
            existing = self.stores.sessions.list_sessions(
                start_date=week_start(search_start), end_date=search_end + timedelta(days=6)
            )
        except StoreError as e:
            raise ProcessingError(localized("store_failure", detail=str(e))) from e

        # Sessions being moved no longer occupy their old slots
        moving = {s.id for s in affected}
        existing = [s for s in existing if s.id not in moving]

        index = AvailabilityIndex.build(therapist_ids, rows, existing, search_start, search_end)
        detector = ConflictDetector(existing)
        capacity = CapacityManager(rows, capacities, rooms, existing, self.config, detector)

        moves = []
        pending = []
        for session in affected:
            found = self._find_slot(session, index, detector, capacity, search_start, search_end)
            if found is None:
                logger.warning(
                    f"Session {session.id} on {session.session_date} left as pending conflict "
                    f"(no slot within {self.config.reschedule_horizon_days} days)"
                )
                pending.append(PendingConflict(
                    session_id=session.id,
                    therapist_id=session.therapist_id,
                    session_date=session.session_date,
                    start_time=session.start_time,
                    reason=localized("no_reschedule_slot", horizon=self.config.reschedule_horizon_days)
                ))
                continue

            slot, room_id = found
            moved = session.model_copy(update={
                "session_date": slot.day,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "room_id": room_id,
                "status": SessionStatus.RESCHEDULED,
                "reschedule_count": session.reschedule_count + 1,
                "rescheduled_from_date": session.session_date,
            })
            detector.add(moved)
            capacity.record_assignment(moved)
            moves.append((session, moved))

        return moves, pending

    def _find_slot(
        self,
        session: ScheduledSession,
        index: AvailabilityIndex,
        detector: ConflictDetector,
        capacity: CapacityManager,
        search_start: date_type,
        search_end: date_type
    ) -> Optional[Tuple[CandidateSlot, Optional[str]]]:
        """
        Earliest workable slot for the session's therapist, with the room it
        would use. Within each week after the freeze the original weekday
        wins; the original start time is preferred on any given day. When
        rooms are managed the old room is kept if it is open and free, else
        another room of the same type is picked.
        """
        prefs = SlotPreferences(
            session_duration=session.duration_minutes,
            sessions_per_week=1,
            preferred_therapist_id=session.therapist_id,
        )
        candidates = self.generator.generate(prefs, index, search_start, search_end, [session.therapist_id])
        original_weekday = day_of_week(session.session_date)
        original_start = session.start_minutes

        old_room = next((r for r in capacity.rooms if r.id == session.room_id), None)
        room_type = old_room.room_type if old_room else None

        def preference(slot: CandidateSlot):
            week = (slot.day - search_start).days // 7
            return (
                week,
                0 if slot.weekday == original_weekday else 1,
                slot.day,
                abs(slot.start_minutes - original_start),
                slot.start_minutes,
            )

        for slot in sorted(candidates, key=preference):
            # Unmanaged rooms are only checked for occupancy
            fixed_room = None if capacity.rooms else session.room_id
            if detector.check(slot.day, slot.start_minutes, slot.end_minutes, slot.therapist_id,
                              student_id=session.student_id, room_id=fixed_room,
                              buffer_minutes=slot.buffer_minutes):
                continue
            check = capacity.check_assignment(
                slot.therapist_id, slot.day, slot.start_minutes, slot.end_minutes,
                room_type=room_type,
                equipment=session.equipment_ids,
                buffer_minutes=slot.buffer_minutes,
                preferred_room_id=session.room_id
            )
            if not check.passed:
                continue
            return slot, (check.room_id if capacity.rooms else session.room_id)
        return None

    def _describe_move(self, original: ScheduledSession, moved: ScheduledSession) -> RescheduledSession:
        return RescheduledSession(
            session_id=original.id,
            therapist_id=original.therapist_id,
            original_date=original.session_date,
            original_start_time=original.start_time,
            new_date=moved.session_date,
            new_start_time=moved.start_time,
            new_end_time=moved.end_time
        )

    # --- Commit ---

    def _commit(
        self,
        original: Subscription,
        updated: Subscription,
        moves: List[Tuple[ScheduledSession, ScheduledSession]],
        record: FreezeRecord
    ) -> None:
        """
        Apply session moves, the subscription update and the history record.
        On a store failure every write already applied is restored.
        """
        applied: List[ScheduledSession] = []
        subscription_written = False
        try:
            if moves:
                # Re-checked against the live store; a slot claimed since planning aborts the freeze
                self.stores.sessions.reschedule_sessions([after for _, after in moves])
                applied = [before for before, _ in moves]
            self.stores.subscriptions.update_subscription(updated)
            subscription_written = True
            self.stores.freeze_history.append(record)
        except StoreError as e:
            logger.error(f"Freeze commit for {original.id} failed, compensating: {e}")
            self._compensate(original, applied, subscription_written)
            raise ProcessingError(localized("store_failure", detail=str(e))) from e

    def _compensate(self, original: Subscription, applied: List[ScheduledSession], subscription_written: bool) -> None:
        for session in reversed(applied):
            try:
                self.stores.sessions.update_session(session)
            except StoreError as e:
                logger.critical(f"Could not restore session {session.id}: {e}")
        if subscription_written:
            try:
                self.stores.subscriptions.update_subscription(original)
            except StoreError as e:
                logger.critical(f"Could not restore subscription {original.id}: {e}")

    def _notify(self, event: NotificationEvent) -> int:
        try:
            self.stores.notifications.dispatch(event)
            return 1
        except Exception as e:
            logger.warning(f"Notification {event.type.value} could not be dispatched: {e}")
            return 0
