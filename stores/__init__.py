"""
Storage collaborators for the scheduling engine.

`base` holds the abstract interfaces; `memory` the in-memory implementations
used by tests and the demo runner.
"""

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
from .memory import in_memory_bundle

__all__ = [
    "AvailabilityStore",
    "BillingGateway",
    "FreezeHistoryStore",
    "NotificationDispatcher",
    "RuleStore",
    "SessionStore",
    "SlotAlreadyBookedError",
    "StoreBundle",
    "StoreError",
    "SubscriptionStore",
    "TemplateStore",
    "in_memory_bundle",
]
