"""
Therapy Scheduling Engine.

Pipeline: Availability Index -> Candidate Generator -> Multi-Criteria
Optimizer -> Schedule Assembler (Conflict Detector + Capacity Manager).
The Freeze Coordinator reuses the same pieces to move sessions.
"""

from .config import SchedulerConfig
from .engine import SchedulingEngine, assemble_schedule
from .errors import (
    ConflictError,
    InsufficientAllowanceError,
    NotFoundError,
    OperationInProgressError,
    PartialScheduleWarning,
    ProcessingError,
    SchedulingError,
    ValidationError
)
from .freeze import FreezeCoordinator
from .locks import KeyedLockRegistry, default_registry
from .scoring import rank_candidates
from .validation import ValidationResult, validate_scheduling_request

__all__ = [
    "SchedulerConfig",
    "SchedulingEngine",
    "assemble_schedule",
    "FreezeCoordinator",
    "KeyedLockRegistry",
    "default_registry",
    "rank_candidates",
    "ValidationResult",
    "validate_scheduling_request",
    "ConflictError",
    "InsufficientAllowanceError",
    "NotFoundError",
    "OperationInProgressError",
    "PartialScheduleWarning",
    "ProcessingError",
    "SchedulingError",
    "ValidationError",
]
