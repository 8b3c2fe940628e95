"""
Optimization Rule data models.

Rules are closed condition/action pairs evaluated by a small fixed
interpreter (scheduler/scoring.py). Nothing here is ever executed as code.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class RuleField(str, Enum):
    """Candidate attributes a condition may inspect."""
    DAY_OF_WEEK = "day_of_week"
    START_HOUR = "start_hour"
    START_MINUTES = "start_minutes"
    DURATION_MINUTES = "duration_minutes"
    THERAPIST_ID = "therapist_id"
    ROOM_ID = "room_id"
    THERAPIST_UTILIZATION = "therapist_utilization"
    PRIORITY_LEVEL = "priority_level"
    DAYS_FROM_START = "days_from_start"


class RuleOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"
    IN = "in"
    # Composites over `conditions`
    ALL = "all"
    ANY = "any"


COMPOSITE_OPERATORS = (RuleOperator.ALL, RuleOperator.ANY)


class RuleCondition(BaseModel):
    """
    `{field, operator, value}` predicate, or an `all`/`any` composite over
    nested conditions.
    """
    field: Optional[RuleField] = Field(default=None)
    operator: RuleOperator
    value: Any = Field(default=None)
    conditions: List["RuleCondition"] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_shape(self):
        if self.operator in COMPOSITE_OPERATORS:
            if not self.conditions:
                raise ValueError(f"'{self.operator.value}' condition needs nested conditions")
            return self
        if self.field is None:
            raise ValueError("Leaf condition requires a field")
        if self.operator == RuleOperator.BETWEEN:
            if not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
                raise ValueError("'between' expects a [low, high] pair")
        if self.operator == RuleOperator.IN and not isinstance(self.value, (list, tuple)):
            raise ValueError("'in' expects a list of values")
        return self


class RuleActionType(str, Enum):
    BOOST_SCORE = "boost_score"
    PENALIZE_SCORE = "penalize_score"
    PREFER = "prefer"
    REJECT = "reject"


class RuleAction(BaseModel):
    type: RuleActionType
    score_impact: Optional[float] = Field(
        default=None, ge=-100, le=100,
        description="Magnitude of the delta; defaults to 10 (20 for prefer)"
    )


class RuleScope(str, Enum):
    ALL = "all"
    THERAPIST = "therapist"
    STUDENT = "student"
    SUBSCRIPTION = "subscription"


class OptimizationRule(BaseModel):
    """Weighted condition/action pair adjusting a candidate's score."""
    id: str
    name: str = Field(min_length=1)
    name_ar: str = Field(default="")
    priority: int = Field(default=5, ge=1, le=10, description="Higher runs first")
    is_active: bool = Field(default=True)
    weight: float = Field(default=1.0, ge=0, le=5)

    condition: RuleCondition
    action: RuleAction

    applies_to: RuleScope = Field(default=RuleScope.ALL)
    target_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "rule_no_late_thursday",
            "name": "Avoid late Thursday sessions",
            "name_ar": "تجنب الجلسات المتأخرة يوم الخميس",
            "priority": 7,
            "condition": {
                "operator": "all",
                "conditions": [
                    {"field": "day_of_week", "operator": "equals", "value": 4},
                    {"field": "start_hour", "operator": "greater_than", "value": 14}
                ]
            },
            "action": {"type": "penalize_score", "score_impact": 25}
        }
    })
