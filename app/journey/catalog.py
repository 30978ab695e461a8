"""Static condition catalog: defaults per condition type, config only.

Each ConditionSpec records what a bare condition (no target, no lookback)
falls back to. Strategies read their defaults from here so the table that
the journey UI renders and the numbers the evaluator uses cannot drift.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.config import settings
from app.journey.models import ConditionType


@dataclass(frozen=True, slots=True)
class ConditionSpec:
    type: ConditionType
    label: str
    default_target: float | None = None  # count / days threshold
    default_lookback_days: int | None = None
    target_kind: str | None = None  # "protein" | "calories" when the target comes from the plan
    mission: str | None = None  # "deficit" | "surplus" | "balanced"
    unit: str | None = None


CONDITIONS: dict[ConditionType, ConditionSpec] = {
    ConditionType.FIRST_WEIGH_IN: ConditionSpec(
        type=ConditionType.FIRST_WEIGH_IN,
        label="First weigh-in",
        default_target=1,
        unit="weigh-ins",
    ),
    ConditionType.LOG_MEALS_TODAY: ConditionSpec(
        type=ConditionType.LOG_MEALS_TODAY,
        label="Log meals today",
        default_target=3,
        unit="meals",
    ),
    ConditionType.HIT_PROTEIN_GOAL: ConditionSpec(
        type=ConditionType.HIT_PROTEIN_GOAL,
        label="Hit protein goal",
        target_kind="protein",
        unit="g",
    ),
    ConditionType.STREAK_DAYS: ConditionSpec(
        type=ConditionType.STREAK_DAYS,
        label="Meal logging streak",
        default_target=7,
        unit="days",
    ),
    ConditionType.WEEKLY_DEFICIT: ConditionSpec(
        type=ConditionType.WEEKLY_DEFICIT,
        label="Calorie deficit window",
        default_lookback_days=7,
        target_kind="calories",
        mission="deficit",
        unit="days",
    ),
    ConditionType.WEEKLY_SURPLUS: ConditionSpec(
        type=ConditionType.WEEKLY_SURPLUS,
        label="Calorie surplus window",
        default_lookback_days=7,
        target_kind="calories",
        mission="surplus",
        unit="days",
    ),
    ConditionType.WEEKLY_BALANCED: ConditionSpec(
        type=ConditionType.WEEKLY_BALANCED,
        label="Balanced calories window",
        default_lookback_days=7,
        target_kind="calories",
        mission="balanced",
        unit="days",
    ),
    ConditionType.TOTAL_MEALS_LOGGED: ConditionSpec(
        type=ConditionType.TOTAL_MEALS_LOGGED,
        label="Total meals logged",
        default_target=50,
        unit="meals",
    ),
    ConditionType.TOTAL_WEIGH_INS: ConditionSpec(
        type=ConditionType.TOTAL_WEIGH_INS,
        label="Total weigh-ins",
        default_target=10,
        unit="weigh-ins",
    ),
}


def list_condition_specs() -> list[ConditionSpec]:
    return list(CONDITIONS.values())


def default_buffer_kcal(mission: str | None) -> float:
    """Tolerance band around the daily calorie target when the condition sets none."""
    if mission == "balanced":
        return settings.journey_balanced_buffer_kcal
    return settings.journey_weekly_buffer_kcal


def default_calories(mission: str | None) -> float:
    if mission == "deficit":
        return settings.journey_default_calories_deficit
    if mission == "surplus":
        return settings.journey_default_calories_surplus
    return settings.journey_default_calories_balanced
