"""Tests for request validation."""

from datetime import date, time

import pytest

from models import SchedulingRequest, TimeWindow
from scheduler import ValidationError, validate_scheduling_request


def _codes(result):
    return [e.code for e in result.errors]


class TestValidateSchedulingRequest:
    """Tests for validate_scheduling_request."""

    def test_valid_request(self, basic_request):
        """A complete request passes with no errors."""
        result = validate_scheduling_request(basic_request)

        assert result.is_valid
        assert result.errors == []

    def test_sessions_per_week_optional(self, basic_request):
        """Leaving sessions_per_week unset is not an error."""
        request = basic_request.model_copy(update={"sessions_per_week": None})

        assert validate_scheduling_request(request).is_valid

    def test_zero_sessions_rejected_in_both_languages(self, basic_request):
        """total_sessions = 0 is reported with Arabic and English text."""
        request = basic_request.model_copy(update={"total_sessions": 0})
        result = validate_scheduling_request(request)

        assert not result.is_valid
        assert _codes(result) == ["total_sessions_invalid"]
        assert result.errors[0].ar
        assert result.errors[0].en == "Total sessions must be greater than zero"

    def test_start_equal_to_end_is_invalid(self, basic_request):
        """The range must be strictly increasing."""
        request = basic_request.model_copy(update={"end_date": basic_request.start_date})
        result = validate_scheduling_request(request)

        assert "invalid_date_range" in _codes(result)

    def test_start_after_end_is_invalid(self, basic_request):
        """A reversed range is rejected."""
        request = basic_request.model_copy(update={"start_date": date(2024, 7, 1)})
        result = validate_scheduling_request(request)

        assert "invalid_date_range" in _codes(result)

    def test_all_problems_reported(self):
        """An empty request reports every missing field at once."""
        result = validate_scheduling_request(SchedulingRequest())

        codes = _codes(result)
        assert "subscription_required" in codes
        assert "start_date_required" in codes
        assert "end_date_required" in codes
        assert "total_sessions_invalid" in codes
        assert "session_duration_invalid" in codes

    def test_blank_subscription_id(self, basic_request):
        """Whitespace is not an identifier."""
        request = basic_request.model_copy(update={"subscription_id": "   "})

        assert "subscription_required" in _codes(validate_scheduling_request(request))

    def test_invalid_day_values(self, basic_request):
        """Days must be within 0-6 for both preferred and avoided days."""
        request = basic_request.model_copy(update={"preferred_days": [1, 7], "avoid_days": [-1]})
        result = validate_scheduling_request(request)

        assert _codes(result).count("invalid_day") == 2
        assert "7" in result.errors[0].en

    def test_inverted_time_window(self, basic_request):
        """A preferred window ending before it starts is rejected."""
        window = TimeWindow(start_time=time(14, 0), end_time=time(10, 0))
        request = basic_request.model_copy(update={"preferred_times": [window]})
        result = validate_scheduling_request(request)

        assert _codes(result) == ["invalid_time_window"]
        assert "14:00" in result.errors[0].en

    @pytest.mark.parametrize("flexibility", [-1, 101, 150])
    def test_flexibility_out_of_range(self, basic_request, flexibility):
        """Flexibility score must be within 0-100."""
        request = basic_request.model_copy(update={"flexibility_score": flexibility})

        assert _codes(validate_scheduling_request(request)) == ["flexibility_out_of_range"]

    def test_non_positive_sessions_per_week(self, basic_request):
        """sessions_per_week must be positive."""
        request = basic_request.model_copy(update={"sessions_per_week": 0})

        assert _codes(validate_scheduling_request(request)) == ["sessions_per_week_invalid"]


class TestEngineValidation:
    """Validation as seen through the engine."""

    def test_invalid_request_raises_before_side_effects(self, engine, stores, basic_request):
        """generate_optimized_schedule raises ValidationError and writes nothing."""
        request = basic_request.model_copy(update={"total_sessions": 0})

        with pytest.raises(ValidationError) as exc_info:
            engine.generate_optimized_schedule(request)

        assert exc_info.value.code == "total_sessions_invalid"
        assert exc_info.value.to_dict()["errors"][0]["code"] == "total_sessions_invalid"
        assert stores.sessions.list_sessions() == []
        assert stores.notifications.events == []

    def test_engine_exposes_validation(self, engine, basic_request):
        """The engine delegates to the pure validator."""
        assert engine.validate_scheduling_request(basic_request).is_valid
