"""
Subscription and Freeze data models.

A Subscription is mutated only by the freeze coordinator; every freeze or
resume appends an immutable FreezeRecord.
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .messages import LocalizedMessage


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Subscription(BaseModel):
    """A student's enrollment with its freeze-day allowance."""
    id: str
    student_id: str
    therapy_program_id: Optional[str] = Field(default=None)

    start_date: date
    end_date: date
    original_end_date: date

    freeze_days_allowed: int = Field(default=0, ge=0)
    freeze_days_used: int = Field(default=0, ge=0)
    current_freeze_start: Optional[date] = Field(default=None)
    current_freeze_end: Optional[date] = Field(default=None)

    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    sessions_total: int = Field(default=0, ge=0)
    sessions_completed: int = Field(default=0, ge=0)

    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="SAR")

    @model_validator(mode='after')
    def validate_allowance(self):
        if self.freeze_days_used > self.freeze_days_allowed:
            raise ValueError("freeze_days_used cannot exceed freeze_days_allowed")
        if self.end_date < self.start_date:
            raise ValueError("Subscription end date cannot be before its start date")
        return self

    @property
    def remaining_freeze_days(self) -> int:
        return max(0, self.freeze_days_allowed - self.freeze_days_used)

    @property
    def length_days(self) -> int:
        """Inclusive length of the originally purchased period."""
        return (self.original_end_date - self.start_date).days + 1

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "sub-123",
            "student_id": "student-456",
            "start_date": "2024-01-01",
            "end_date": "2024-12-31",
            "original_end_date": "2024-12-31",
            "freeze_days_allowed": 30,
            "freeze_days_used": 0,
            "status": "active",
            "sessions_total": 48,
            "total_amount": "12000.00"
        }
    })


class FreezeOperation(str, Enum):
    FREEZE = "freeze"
    UNFREEZE = "unfreeze"


class FreezeRecord(BaseModel):
    """Immutable audit entry for one freeze or resume operation."""
    id: str = Field(default_factory=lambda: f"freeze_{uuid4().hex[:12]}")
    subscription_id: str
    operation_type: FreezeOperation = Field(default=FreezeOperation.FREEZE)
    freeze_start_date: date
    freeze_end_date: date
    freeze_days: int = Field(ge=0)
    reason: str = Field(default="")
    affected_sessions: int = Field(default=0, ge=0)
    rescheduled_sessions: int = Field(default=0, ge=0)
    pending_conflicts: int = Field(default=0, ge=0)
    original_end_date: date
    new_end_date: date
    actor_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)


class PendingConflict(BaseModel):
    """A session the freeze could not move; requires manual follow-up."""
    session_id: str
    therapist_id: str
    session_date: date
    start_time: time
    reason: LocalizedMessage


class RescheduledSession(BaseModel):
    session_id: str
    therapist_id: str
    original_date: date
    original_start_time: time
    new_date: date
    new_start_time: time
    new_end_time: time


class BillingAdjustment(BaseModel):
    """Pro-rated credit for a frozen period (negative amount = credit)."""
    subscription_id: str
    freeze_days: int = Field(ge=0)
    daily_rate: Decimal
    amount: Decimal
    currency: str = Field(default="SAR")
    reason: str = Field(default="subscription_freeze")


class FreezePreview(BaseModel):
    subscription_id: str
    freeze_days: int
    affected_sessions_count: int
    new_end_date: date
    conflicts_count: int
    remaining_freeze_days: int


class FreezeResult(BaseModel):
    success: bool
    subscription: Subscription
    freeze_record: FreezeRecord
    freeze_days: int
    new_end_date: date
    affected_sessions_count: int
    rescheduled: List[RescheduledSession] = Field(default_factory=list)
    pending_conflicts: List[PendingConflict] = Field(default_factory=list)
    billing_adjustment: Optional[BillingAdjustment] = Field(default=None)
    notifications_sent: int = Field(default=0, ge=0)


class NotificationType(str, Enum):
    SUBSCRIPTION_FROZEN = "subscription_frozen"
    SUBSCRIPTION_RESUMED = "subscription_resumed"
    SCHEDULE_GENERATED = "schedule_generated"


class NotificationEvent(BaseModel):
    """Fire-and-forget event handed to the notification dispatcher."""
    type: NotificationType
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
