"""
Data models package for the Therapy Scheduling Engine.

This package exports the core pillars of the data architecture:
1. Demand (SchedulingRequest, ScheduleTemplate)
2. Supply (TherapistAvailability, TherapistCapacity, Room)
3. Output (ScheduledSession, SchedulingResult)
4. Policy (OptimizationRule)
5. Subscriptions & Freezes
"""

from .messages import (
    LocalizedMessage,
    localized
)

from .request import (
    PriorityLevel,
    SessionCategory,
    TimeWindow,
    ScheduleTemplate,
    SchedulingRequest
)

from .resource import (
    TherapistAvailability,
    TherapistCapacity,
    MaintenanceWindow,
    Room
)

from .schedule import (
    ACTIVE_STATUSES,
    ConflictSeverity,
    ConflictType,
    ScheduledSession,
    SchedulingConflict,
    SchedulingResult,
    SchedulingSuggestion,
    SessionStatus
)

from .rules import (
    OptimizationRule,
    RuleAction,
    RuleActionType,
    RuleCondition,
    RuleField,
    RuleOperator,
    RuleScope
)

from .subscription import (
    BillingAdjustment,
    FreezeOperation,
    FreezePreview,
    FreezeRecord,
    FreezeResult,
    NotificationEvent,
    NotificationType,
    PendingConflict,
    RescheduledSession,
    Subscription,
    SubscriptionStatus
)

__all__ = [
    # --- Messages ---
    "LocalizedMessage",
    "localized",

    # --- Demand Models ---
    "PriorityLevel",
    "SessionCategory",
    "TimeWindow",
    "ScheduleTemplate",
    "SchedulingRequest",

    # --- Resource & Capacity Models ---
    "TherapistAvailability",
    "TherapistCapacity",
    "MaintenanceWindow",
    "Room",

    # --- Output Models ---
    "ACTIVE_STATUSES",
    "ConflictSeverity",
    "ConflictType",
    "ScheduledSession",
    "SchedulingConflict",
    "SchedulingResult",
    "SchedulingSuggestion",
    "SessionStatus",

    # --- Optimization Rules ---
    "OptimizationRule",
    "RuleAction",
    "RuleActionType",
    "RuleCondition",
    "RuleField",
    "RuleOperator",
    "RuleScope",

    # --- Subscriptions & Freezes ---
    "BillingAdjustment",
    "FreezeOperation",
    "FreezePreview",
    "FreezeRecord",
    "FreezeResult",
    "NotificationEvent",
    "NotificationType",
    "PendingConflict",
    "RescheduledSession",
    "Subscription",
    "SubscriptionStatus",
]
