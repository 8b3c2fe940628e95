"""
Request Validation.

Pure, side-effect-free checks run before any lookup or generation.
Every problem is reported (not just the first) as a bilingual message.
"""

from dataclasses import dataclass, field
from typing import List

from models import LocalizedMessage, SchedulingRequest, localized


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[LocalizedMessage] = field(default_factory=list)


def validate_scheduling_request(request: SchedulingRequest) -> ValidationResult:
    errors: List[LocalizedMessage] = []

    # 1. Identity
    if not request.subscription_id or not request.subscription_id.strip():
        errors.append(localized("subscription_required"))

    # 2. Date range
    if request.start_date is None:
        errors.append(localized("start_date_required"))
    if request.end_date is None:
        errors.append(localized("end_date_required"))
    if request.start_date and request.end_date and request.start_date >= request.end_date:
        errors.append(localized("invalid_date_range"))

    # 3. Volume
    if request.total_sessions <= 0:
        errors.append(localized("total_sessions_invalid"))
    if request.session_duration <= 0:
        errors.append(localized("session_duration_invalid"))
    if request.sessions_per_week is not None and request.sessions_per_week <= 0:
        errors.append(localized("sessions_per_week_invalid"))

    # 4. Preferences
    for day in list(request.preferred_days) + list(request.avoid_days):
        if day < 0 or day > 6:
            errors.append(localized("invalid_day", day=day))

    for window in list(request.preferred_times) + list(request.avoid_times):
        if not window.is_valid:
            errors.append(localized(
                "invalid_time_window",
                start=window.start_time.strftime("%H:%M"),
                end=window.end_time.strftime("%H:%M"),
            ))

    if not 0 <= request.flexibility_score <= 100:
        errors.append(localized("flexibility_out_of_range"))

    return ValidationResult(is_valid=not errors, errors=errors)
