"""
Error taxonomy of the scheduling subsystem.

Every error carries a bilingual message. Validation and allowance errors are
raised before any side effect; processing errors mean "nothing was written,
the caller may retry".
"""

from typing import Any, Dict, List, Optional

from models import LocalizedMessage, localized


class SchedulingError(Exception):
    """Base class. `message` is always a LocalizedMessage."""
    retryable = False

    def __init__(self, message: LocalizedMessage, details: Optional[Dict[str, Any]] = None):
        super().__init__(message.en)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return self.message.code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.message.code,
            "message": {"ar": self.message.ar, "en": self.message.en},
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(SchedulingError):
    """Bad input. Blocks submission; carries every problem found."""

    def __init__(self, errors: List[LocalizedMessage], details: Optional[Dict[str, Any]] = None):
        super().__init__(errors[0], details)
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.model_dump() for e in self.errors]
        return data


class NotFoundError(SchedulingError):
    pass


class ConflictError(SchedulingError):
    """Non-fatal; recorded into results, never aborts a run."""
    pass


class InsufficientAllowanceError(SchedulingError):
    """Freeze would push freeze_days_used above freeze_days_allowed."""

    def __init__(self, available: int, requested: int):
        super().__init__(
            localized("insufficient_freeze_days", available=available, requested=requested),
            {"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class ProcessingError(SchedulingError):
    """Downstream failure. State was left unchanged; safe to retry."""
    retryable = True


class OperationInProgressError(ProcessingError):
    def __init__(self, subscription_id: str):
        super().__init__(
            localized("operation_in_progress", subscription_id=subscription_id),
            {"subscription_id": subscription_id},
        )


class PartialScheduleWarning(UserWarning):
    """Marks a result where fewer sessions were placed than requested. Never raised."""
    code = "partial_schedule"
