"""
Schedule data models for the Therapy Scheduling Engine.

This module defines the 'Output' of the scheduling engine:
committed sessions, detected conflicts, suggestions and the result aggregate.
"""

from datetime import date as date_type, time as time_type
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .messages import LocalizedMessage
from .request import PriorityLevel, SessionCategory


class SessionStatus(str, Enum):
    """Lifecycle of a session. Sessions are never deleted, only transitioned."""
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that still occupy a therapist / room / student
ACTIVE_STATUSES = (SessionStatus.SCHEDULED, SessionStatus.RESCHEDULED)


class ConflictType(str, Enum):
    THERAPIST_DOUBLE_BOOKING = "therapist_double_booking"
    ROOM_UNAVAILABLE = "room_unavailable"
    STUDENT_UNAVAILABLE = "student_unavailable"
    EQUIPMENT_CONFLICT = "equipment_conflict"
    TIME_CONSTRAINT = "time_constraint"
    CAPACITY_EXCEEDED = "capacity_exceeded"


class ConflictSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def new_session_id() -> str:
    return f"session_{uuid4().hex[:12]}"


class ScheduledSession(BaseModel):
    """
    A committed unit of work for one therapist, room and student.
    """

    # --- Core Scheduling Data ---
    id: str = Field(default_factory=new_session_id)
    subscription_id: str = Field(description="Subscription this session belongs to")
    student_id: str = Field(description="Student attending")
    therapist_id: str = Field(description="Assigned therapist")
    room_id: Optional[str] = Field(default=None, description="Assigned room")

    session_date: date_type = Field(description="Calendar date")
    start_time: time_type = Field(description="Start of the session itself")
    end_time: time_type = Field(description="End of the session itself")
    duration_minutes: int = Field(ge=5, le=480)

    # Persist the buffer calculated during scheduling
    buffer_minutes: int = Field(
        default=0,
        ge=0,
        description="Minutes the therapist/room stay blocked after end_time"
    )

    category: SessionCategory = Field(default=SessionCategory.THERAPY)
    priority_level: PriorityLevel = Field(default=PriorityLevel.MEDIUM)
    equipment_ids: List[str] = Field(default_factory=list)

    status: SessionStatus = Field(default=SessionStatus.SCHEDULED)
    has_conflicts: bool = Field(default=False)
    conflict_flags: List[str] = Field(default_factory=list)

    # --- Rescheduling History ---
    reschedule_count: int = Field(default=0, ge=0)
    rescheduled_from_date: Optional[date_type] = Field(default=None)

    optimization_score: Optional[float] = Field(default=None, ge=0, le=100)

    @model_validator(mode='after')
    def validate_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("Session end time must be after start time")
        return self

    @property
    def start_minutes(self) -> int:
        return self.start_time.hour * 60 + self.start_time.minute

    @property
    def end_minutes(self) -> int:
        return self.end_time.hour * 60 + self.end_time.minute

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "session_3f9a1c2b7d10",
            "subscription_id": "sub_001",
            "student_id": "stu_001",
            "therapist_id": "ther_01",
            "room_id": "room_speech_1",
            "session_date": "2024-06-03",
            "start_time": "09:00:00",
            "end_time": "09:45:00",
            "duration_minutes": 45,
            "buffer_minutes": 15,
            "status": "scheduled"
        }
    })


class SchedulingConflict(BaseModel):
    """A detected clash between a candidate slot and committed work."""
    conflict_type: ConflictType
    severity: ConflictSeverity = Field(default=ConflictSeverity.MEDIUM)
    session_date: date_type
    start_time: time_type
    end_time: time_type
    therapist_id: str
    resource_id: Optional[str] = Field(default=None, description="Therapist, room or student that is busy")
    conflicting_session_id: Optional[str] = Field(default=None)
    message: LocalizedMessage


class SchedulingSuggestion(BaseModel):
    """
    A near-miss slot that was rejected, with the blocking resource identified,
    so a coordinator can resolve it manually.
    """
    session_date: date_type
    start_time: time_type
    end_time: time_type
    therapist_id: str
    confidence_score: float = Field(ge=0, le=100, description="Score the slot had before rejection")
    blocking_conflict: ConflictType
    blocking_resource_id: Optional[str] = Field(default=None)
    reasons: List[LocalizedMessage] = Field(default_factory=list)


class SchedulingResult(BaseModel):
    """Output aggregate of one generation run."""
    success: bool
    total_sessions: int = Field(ge=0)
    generated_sessions: List[ScheduledSession] = Field(default_factory=list)
    unscheduled_sessions: int = Field(default=0, ge=0)
    conflicts: List[SchedulingConflict] = Field(default_factory=list)
    suggestions: List[SchedulingSuggestion] = Field(default_factory=list)

    # --- Quality Metrics (0-100) ---
    optimization_score: float = Field(default=0.0, ge=0, le=100)
    preference_match_score: float = Field(default=0.0, ge=0, le=100)
    therapist_utilization: Dict[str, float] = Field(default_factory=dict)
    average_gap_days: Optional[float] = Field(default=None)
    statistics: Dict[str, Any] = Field(
        default_factory=dict,
        description="Run counters: date range, busiest day, sessions per therapist, near misses"
    )

    warnings: List[LocalizedMessage] = Field(default_factory=list)
    errors: List[LocalizedMessage] = Field(default_factory=list)
    candidate_pool_size: int = Field(default=0, ge=0)
    algorithm_used: str = Field(default="greedy_multi_criteria")
    generation_time_ms: float = Field(default=0.0, ge=0)

    @property
    def total_conflicts(self) -> int:
        return len(self.conflicts)
