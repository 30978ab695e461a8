"""Journey task contracts (Pydantic v2 models)."""

from __future__ import annotations

import hashlib
import math
from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ConditionType(str, Enum):
    FIRST_WEIGH_IN = "FIRST_WEIGH_IN"
    LOG_MEALS_TODAY = "LOG_MEALS_TODAY"
    HIT_PROTEIN_GOAL = "HIT_PROTEIN_GOAL"
    STREAK_DAYS = "STREAK_DAYS"
    WEEKLY_DEFICIT = "WEEKLY_DEFICIT"
    WEEKLY_SURPLUS = "WEEKLY_SURPLUS"
    WEEKLY_BALANCED = "WEEKLY_BALANCED"
    TOTAL_MEALS_LOGGED = "TOTAL_MEALS_LOGGED"
    TOTAL_WEIGH_INS = "TOTAL_WEIGH_INS"


class TargetSource(str, Enum):
    live = "live"
    frozen = "frozen"
    default = "default"


class TaskCondition(BaseModel):
    """Declarative completion rule stored on a task (condition_json).

    `type` stays a plain string so rows with a type this service does not
    know yet still parse and evaluate to "not completable". Stored rows use
    snake_case keys, API callers may send camelCase; both populate.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: str
    target: float | None = None
    operator: Literal["gte", "lte", "eq", "between"] | None = None
    range: tuple[float, float] | None = None
    lookback_days: int | None = Field(default=None, alias="lookbackDays")
    use_user_target: bool = Field(default=False, alias="useUserTarget")
    buffer_kcal: float | None = Field(default=None, alias="bufferKcal")


class UserNutritionTargets(BaseModel):
    """Snapshot of the user's live plan (profiles.nutrition_plan.dailyTargets)."""

    calories: float = 0.0
    protein_grams: float = 0.0
    tdee: float = 0.0


class MealRecord(BaseModel):
    date: date
    calories: float = 0.0
    protein_grams: float = 0.0


class WeighInRecord(BaseModel):
    date: date
    weight_kg: float


class TaskEvaluation(BaseModel):
    """Result of evaluating one condition (or a set of them).

    `progress` is always inside [0, 1]; `can_complete` is decided per
    condition type and is not simply `progress == 1`.
    """

    can_complete: bool = False
    progress: float = 0.0
    current: float | None = None
    target: float | None = None
    details: str | None = None
    target_source: TargetSource | None = None

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value):
        if value is None:
            return 0.0
        value = float(value)
        if math.isnan(value) or math.isinf(value):
            return 0.0
        return min(max(value, 0.0), 1.0)


class JourneyTask(BaseModel):
    """A stored task row joined with its stage."""

    id: str
    stage_id: str
    key_code: str = ""
    condition: TaskCondition
    is_completed: bool = False
    stage_is_unlocked: bool = False
    stage_unlocked_at: datetime | None = None


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class EvaluateRequest(BaseModel):
    user_id: str
    condition: TaskCondition | None = None
    conditions: list[TaskCondition] | None = None
    stage_unlocked_at: datetime | None = None
    task_id: str | None = None

    @model_validator(mode="after")
    def _one_of_condition_or_conditions(self):
        if self.condition is not None and self.conditions is not None:
            raise ValueError("Pass either 'condition' or 'conditions', not both")
        return self

    def fingerprint(self) -> str:
        """Stable digest of everything that shapes the evaluation result."""
        payload = self.model_dump_json(include={"condition", "conditions", "stage_unlocked_at"})
        return hashlib.sha256(payload.encode()).hexdigest()[:16]


class CompleteRequest(BaseModel):
    user_id: str


class CompletionResult(BaseModel):
    ok: bool
    can_complete: bool = False
    already_completed: bool = False
    satisfied: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    evaluation: TaskEvaluation | None = None
    error: str | None = None


class BatchRequest(BaseModel):
    user_id: str
    task_ids: list[str] | None = None


class BatchResult(BaseModel):
    results: dict[str, bool] = Field(default_factory=dict)


class InvalidateRequest(BaseModel):
    user_id: str
