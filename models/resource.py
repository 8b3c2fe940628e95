"""
Resource and Capacity data models for the Therapy Scheduling Engine.

This module defines the 'Supply' side of the scheduler:
1. Therapist availability (recurring weekly windows + dated time-off exceptions)
2. Therapist workload ceilings
3. Rooms (physical resources with equipment and maintenance)
"""

from datetime import date, time
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class TherapistAvailability(BaseModel):
    """
    One availability row for a therapist.

    Recurring rows repeat every week on `day_of_week`; non-recurring rows apply
    to `specific_date` only. Rows flagged `is_time_off` are exceptions that
    remove time instead of adding it.
    """
    id: str = Field(description="Unique identifier")
    therapist_id: str = Field(description="Owning therapist")

    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="0=Sunday, 6=Saturday")
    specific_date: Optional[date] = Field(default=None, description="Date for non-recurring rows")
    start_time: time = Field(description="Window start")
    end_time: time = Field(description="Window end")

    is_available: bool = Field(default=True)
    is_recurring: bool = Field(default=True)
    is_time_off: bool = Field(default=False)
    time_off_reason: Optional[str] = Field(default=None)

    # Capacity Constraint
    max_sessions_per_slot: int = Field(default=8, ge=1, description="Sessions this window can hold per date")
    current_bookings: int = Field(default=0, ge=0, description="Counter maintained outside the engine")
    buffer_minutes: int = Field(default=0, ge=0, le=120, description="Rest time required after each session")

    @model_validator(mode='after')
    def validate_row(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        if self.is_recurring and self.day_of_week is None:
            raise ValueError("Recurring availability requires day_of_week")
        if not self.is_recurring and self.specific_date is None:
            raise ValueError("Non-recurring availability requires specific_date")
        return self

    def applies_to(self, day: date, weekday: int) -> bool:
        """Does this row cover the given calendar date?"""
        if self.is_recurring:
            return self.day_of_week == weekday
        return self.specific_date == day

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "avail_t01_sun",
            "therapist_id": "ther_01",
            "day_of_week": 0,
            "start_time": "08:00:00",
            "end_time": "16:00:00",
            "max_sessions_per_slot": 6,
            "buffer_minutes": 15
        }
    })


class TherapistCapacity(BaseModel):
    """Workload ceiling for a therapist, checked before a session is committed."""
    therapist_id: str
    max_sessions_per_day: int = Field(default=8, ge=1)
    max_daily_hours: float = Field(default=8.0, gt=0)
    max_weekly_hours: float = Field(default=40.0, gt=0)
    specializations: List[str] = Field(default_factory=list)


class MaintenanceWindow(BaseModel):
    """Date range when a room is closed."""
    start_date: date
    end_date: date
    reason: str = Field(default="")

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("Maintenance End Date cannot be before Start Date")
        return self


class Room(BaseModel):
    """
    Physical therapy room. Rooms are exclusive: one session at a time.
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1)
    room_type: str = Field(description="e.g. 'sensory', 'speech', 'physio'")
    equipment: List[str] = Field(default_factory=list, description="Equipment installed in the room")
    is_active: bool = Field(default=True)
    maintenance_windows: List[MaintenanceWindow] = Field(default_factory=list)

    def is_open_on(self, day: date) -> bool:
        if not self.is_active:
            return False
        return not any(w.start_date <= day <= w.end_date for w in self.maintenance_windows)

    def satisfies(self, room_type: Optional[str], equipment: List[str]) -> bool:
        if room_type and self.room_type != room_type:
            return False
        return all(item in self.equipment for item in equipment)
