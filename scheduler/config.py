"""
Scheduler Configuration.

Every tunable of the engine lives here with its default. Deployments override
values through environment variables (SCHEDULER_<FIELD_NAME>).
"""

import json
import logging
import os
from datetime import time as time_type
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class ScoringWeights(BaseModel):
    """Relative weight of each optimizer criterion (normalized at use)."""
    preference: float = Field(default=0.35, ge=0)
    gap: float = Field(default=0.25, ge=0)
    utilization: float = Field(default=0.20, ge=0)
    priority: float = Field(default=0.20, ge=0)

    @property
    def total(self) -> float:
        return self.preference + self.gap + self.utilization + self.priority


class SchedulerConfig(BaseModel):
    weights: ScoringWeights = Field(default_factory=ScoringWeights)

    # --- Candidate Generation ---
    candidate_step_minutes: int = Field(default=30, ge=5, le=240)
    weekend_days: List[int] = Field(default_factory=lambda: [5, 6], description="Friday & Saturday")
    evening_start: time_type = Field(default=time_type(17, 0))
    consecutive_block_size: int = Field(default=2, ge=2, le=8)

    # --- Assembly ---
    default_max_sessions_per_day: int = Field(default=1, ge=1)
    default_sessions_per_week: int = Field(default=2, ge=1)
    max_suggestions: int = Field(default=5, ge=0)
    max_reported_conflicts: int = Field(default=50, ge=0)
    generation_time_budget_s: float = Field(default=30.0, gt=0)

    # --- Capacity Defaults (used when a therapist has no capacity row) ---
    default_max_sessions_per_day_therapist: int = Field(default=8, ge=1)
    default_max_daily_hours: float = Field(default=8.0, gt=0)
    default_max_weekly_hours: float = Field(default=40.0, gt=0)

    # --- Freeze ---
    reschedule_horizon_days: int = Field(default=60, ge=1)
    max_freeze_days_per_request: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode='after')
    def validate_config(self):
        if self.weights.total <= 0:
            raise ValueError("At least one scoring weight must be positive")
        if any(d < 0 or d > 6 for d in self.weekend_days):
            raise ValueError("weekend_days must be within 0-6")
        return self

    @classmethod
    def from_env(cls, prefix: str = "SCHEDULER_") -> "SchedulerConfig":
        """
        Build a config from environment variables.

        Scalars are read as plain strings (pydantic coerces them); list and
        nested values (WEEKEND_DAYS, WEIGHTS) are read as JSON.
        """
        overrides = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is None or raw == "":
                continue
            if name in ("weekend_days", "weights"):
                try:
                    overrides[name] = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring malformed {prefix}{name.upper()}={raw!r}")
                    continue
            else:
                overrides[name] = raw

        if overrides:
            logger.info(f"Scheduler config overrides from environment: {sorted(overrides)}")
        return cls(**overrides)
