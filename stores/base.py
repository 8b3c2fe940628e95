"""Abstract collaborator interfaces consumed by the scheduling engine"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional
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

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Any failure of a backing store (connection, constraint, timeout)"""
    pass


class SlotAlreadyBookedError(StoreError):
    """Commit-time uniqueness / overlap violation on therapist or room"""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class SubscriptionStore(ABC):

    @abstractmethod
    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        """Read one subscription by id"""
        pass

    @abstractmethod
    def update_subscription(self, subscription: Subscription) -> None:
        """Persist end_date / status / freeze counters"""
        pass


class SessionStore(ABC):

    @abstractmethod
    def list_sessions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        therapist_ids: Optional[Iterable[str]] = None,
        student_id: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[ScheduledSession]:
        """Sessions filtered by date range, therapists and/or student"""
        pass

    @abstractmethod
    def insert_sessions(self, sessions: List[ScheduledSession]) -> None:
        """All-or-nothing insert; raises SlotAlreadyBookedError on a clash"""
        pass

    @abstractmethod
    def update_session(self, session: ScheduledSession) -> None:
        """Replace an existing session row (reschedule / cancel)"""
        pass

    @abstractmethod
    def reschedule_sessions(self, sessions: List[ScheduledSession]) -> None:
        """All-or-nothing move of existing rows; raises SlotAlreadyBookedError on a clash"""
        pass


class AvailabilityStore(ABC):

    @abstractmethod
    def list_therapist_ids(self) -> List[str]:
        pass

    @abstractmethod
    def list_availability(
        self,
        therapist_ids: Iterable[str],
        start_date: date,
        end_date: date,
    ) -> List[TherapistAvailability]:
        """Recurring rows plus dated exceptions falling inside the range"""
        pass

    @abstractmethod
    def list_capacities(self, therapist_ids: Iterable[str]) -> List[TherapistCapacity]:
        pass

    @abstractmethod
    def list_rooms(self) -> List[Room]:
        pass


class RuleStore(ABC):

    @abstractmethod
    def list_active_rules(self) -> List[OptimizationRule]:
        pass


class TemplateStore(ABC):

    @abstractmethod
    def get_template(self, template_id: str) -> Optional[ScheduleTemplate]:
        pass


class FreezeHistoryStore(ABC):

    @abstractmethod
    def append(self, record: FreezeRecord) -> None:
        """Append-only; records are never updated"""
        pass

    @abstractmethod
    def list_for_subscription(self, subscription_id: str) -> List[FreezeRecord]:
        pass


class BillingGateway(ABC):

    @abstractmethod
    def record_adjustment(self, adjustment: BillingAdjustment) -> None:
        pass


class NotificationDispatcher(ABC):

    @abstractmethod
    def dispatch(self, event: NotificationEvent) -> None:
        """Fire-and-forget; delivery is not awaited"""
        pass


@dataclass
class StoreBundle:
    """Every collaborator the engine and freeze coordinator talk to"""
    subscriptions: SubscriptionStore
    sessions: SessionStore
    availability: AvailabilityStore
    rules: RuleStore
    templates: TemplateStore
    freeze_history: FreezeHistoryStore
    billing: BillingGateway
    notifications: NotificationDispatcher
