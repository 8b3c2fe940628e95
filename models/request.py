"""
Request and Template data models for the Therapy Scheduling Engine.

This module defines the 'Demand' side of the scheduler:
1. SchedulingRequest (what a caller asks for)
2. ScheduleTemplate (administrator-owned reusable patterns)
"""

from datetime import date, time
from enum import Enum, IntEnum
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class PriorityLevel(IntEnum):
    """Urgency of a request. Numeric so it can be weighted directly."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4
    CRITICAL = 5


class SessionCategory(str, Enum):
    """Kind of therapy session being booked."""
    THERAPY = "therapy"
    ASSESSMENT = "assessment"
    CONSULTATION = "consultation"
    GROUP_SESSION = "group_session"
    EVALUATION = "evaluation"


class TimeWindow(BaseModel):
    """A daily time-of-day window (e.g. 'mornings 09:00-12:00')."""
    start_time: time
    end_time: time

    @property
    def is_valid(self) -> bool:
        return self.end_time > self.start_time


class ScheduleTemplate(BaseModel):
    """
    Reusable day/time/duration pattern used to seed candidate generation.
    Read-only to the engine.
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1)
    name_ar: str = Field(default="", description="Arabic display name")
    is_active: bool = Field(default=True)

    session_duration: int = Field(ge=5, le=480, description="Minutes per session")
    sessions_per_week: int = Field(default=2, ge=1, le=14)

    preferred_days: List[int] = Field(
        default_factory=list,
        description="Days of the week (0=Sunday, 6=Saturday)"
    )
    preferred_times: List[TimeWindow] = Field(default_factory=list)

    allow_weekends: bool = Field(default=True, description="May sessions land on weekend days?")
    allow_evenings: bool = Field(default=True, description="May sessions start after evening start?")
    max_sessions_per_day: int = Field(default=1, ge=1, le=8)

    required_room_type: Optional[str] = Field(default=None)
    required_equipment: List[str] = Field(default_factory=list)
    preferred_therapist_id: Optional[str] = Field(default=None)

    @model_validator(mode='after')
    def validate_pattern(self):
        if any(d < 0 or d > 6 for d in self.preferred_days):
            raise ValueError("preferred_days must be within 0-6")
        if any(not w.is_valid for w in self.preferred_times):
            raise ValueError("Window end time must be after start time")
        return self

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "tpl_speech_2x",
            "name": "Speech therapy, twice weekly",
            "name_ar": "علاج النطق مرتين أسبوعياً",
            "session_duration": 45,
            "sessions_per_week": 2,
            "preferred_days": [1, 3],
            "preferred_times": [{"start_time": "09:00:00", "end_time": "12:00:00"}],
            "allow_weekends": False,
            "allow_evenings": False,
            "max_sessions_per_day": 1
        }
    })


class SchedulingRequest(BaseModel):
    """
    Ephemeral input to schedule generation.

    Deliberately lenient: value checks live in `validate_scheduling_request`
    so every problem comes back as a bilingual message instead of an exception.
    """

    # --- Identity ---
    subscription_id: str = Field(default="", description="Student subscription to schedule for")
    template_id: Optional[str] = Field(default=None)

    # --- Range & Volume ---
    start_date: Optional[date] = Field(default=None)
    end_date: Optional[date] = Field(default=None)
    total_sessions: int = Field(default=0, description="Sessions to place")
    session_duration: int = Field(default=0, description="Minutes per session")
    sessions_per_week: Optional[int] = Field(
        default=None,
        description="Upper bound per 7-day block; unset falls back to the template, then the configured default"
    )

    # --- Preferences ---
    preferred_days: List[int] = Field(default_factory=list, description="0=Sunday, 6=Saturday")
    avoid_days: List[int] = Field(default_factory=list)
    preferred_times: List[TimeWindow] = Field(default_factory=list)
    avoid_times: List[TimeWindow] = Field(default_factory=list)
    preferred_therapist_id: Optional[str] = Field(default=None)

    # --- Priority & Flexibility ---
    priority_level: PriorityLevel = Field(default=PriorityLevel.MEDIUM)
    flexibility_score: float = Field(default=50.0, description="0-100, higher = more flexible")
    session_category: SessionCategory = Field(default=SessionCategory.THERAPY)

    # --- Special Requirements ---
    requires_consecutive_sessions: bool = Field(default=False)
    max_gap_between_sessions: Optional[int] = Field(
        default=None,
        description="Largest allowed gap in days between consecutive sessions (checked after assembly)"
    )
    required_room_type: Optional[str] = Field(default=None)
    required_equipment: List[str] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "subscription_id": "sub_001",
            "start_date": "2024-06-02",
            "end_date": "2024-06-29",
            "total_sessions": 8,
            "session_duration": 45,
            "sessions_per_week": 2,
            "preferred_days": [1, 3],
            "avoid_days": [5, 6],
            "preferred_times": [{"start_time": "09:00:00", "end_time": "13:00:00"}],
            "priority_level": 2,
            "flexibility_score": 50
        }
    })
