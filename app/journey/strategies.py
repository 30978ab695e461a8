"""Condition strategies: one class per condition type, registered by type.

Adding a condition type means adding a class here with `@register(...)`;
nothing else in the evaluator changes. Strategies read through
`ctx.reader` and let query errors propagate; the evaluator owns degradation.
"""

from __future__ import annotations

import logging
import math

from app.journey import catalog, features
from app.journey.context import EvaluationContext
from app.journey.models import ConditionType, TaskEvaluation, UserNutritionTargets
from app.journey.targets import live_allowed, resolve_target

logger = logging.getLogger(__name__)


class ConditionStrategy:
    """Base strategy. Subclasses implement `evaluate`."""

    def __init__(self, condition_type: ConditionType) -> None:
        self.condition_type = condition_type
        spec = catalog.CONDITIONS.get(condition_type)
        if spec is None:
            raise ValueError(f"No catalog entry for {condition_type.value}")
        self.spec = spec

    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        raise NotImplementedError

    def count_target(self, ctx: EvaluationContext) -> float:
        return features.positive_or_default(ctx.condition.target, self.spec.default_target or 1)

    async def live_targets(self, ctx: EvaluationContext) -> UserNutritionTargets | None:
        # Skip the profile read entirely when the policy would ignore it.
        if not live_allowed(ctx.condition):
            return None
        return await ctx.reader.nutrition_targets()


STRATEGIES: dict[str, ConditionStrategy] = {}


def register(*condition_types: ConditionType):
    """Class decorator: instantiate the strategy once per listed type."""

    def decorator(cls: type[ConditionStrategy]) -> type[ConditionStrategy]:
        for ct in condition_types:
            if ct.value in STRATEGIES:
                raise ValueError(f"Strategy already registered for {ct.value}")
            STRATEGIES[ct.value] = cls(ct)
        return cls

    return decorator


def get_strategy(condition_type: str) -> ConditionStrategy | None:
    return STRATEGIES.get(condition_type)


def count_evaluation(current: float, target: float, **extra) -> TaskEvaluation:
    """Shared shape for "reach N of something" conditions."""
    return TaskEvaluation(
        can_complete=current >= target,
        progress=features.progress_ratio(current, target),
        current=current,
        target=target,
        **extra,
    )


def not_started(target: float) -> TaskEvaluation:
    return TaskEvaluation(
        can_complete=False,
        progress=0.0,
        current=0,
        target=target,
        details="stage not unlocked",
    )


# ---------------------------------------------------------------------------
# Instantaneous conditions
# ---------------------------------------------------------------------------


@register(ConditionType.FIRST_WEIGH_IN)
class FirstWeighIn(ConditionStrategy):
    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        weigh_ins = await ctx.reader.weigh_ins(limit=1)
        return count_evaluation(1 if weigh_ins else 0, 1)


@register(ConditionType.LOG_MEALS_TODAY)
class LogMealsToday(ConditionStrategy):
    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        target = self.count_target(ctx)
        meals = await ctx.reader.meals(start=ctx.today, end=ctx.today)
        return count_evaluation(len(meals), target)


@register(ConditionType.HIT_PROTEIN_GOAL)
class HitProteinGoal(ConditionStrategy):
    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        live = await self.live_targets(ctx)
        resolved = resolve_target("protein", ctx.condition, live)
        meals = await ctx.reader.meals(start=ctx.today, end=ctx.today)
        total = sum(m.protein_grams for m in meals)
        return TaskEvaluation(
            can_complete=total >= resolved.value,
            progress=features.progress_ratio(total, resolved.value),
            current=round(total, 1),
            target=resolved.value,
            target_source=resolved.source,
        )


# ---------------------------------------------------------------------------
# Streak and cumulative conditions (floored at stage unlock)
# ---------------------------------------------------------------------------


@register(ConditionType.STREAK_DAYS)
class StreakDays(ConditionStrategy):
    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        target = self.count_target(ctx)
        floor = ctx.floor_date
        if floor is None:
            return not_started(target)

        required = math.ceil(target)
        start = max(floor, features.window_start(ctx.today, required))
        meals = await ctx.reader.meals(start=start, end=ctx.today)
        streak = features.consecutive_days({m.date for m in meals}, required, ctx.today, floor)
        return count_evaluation(streak, target)


@register(ConditionType.TOTAL_MEALS_LOGGED)
class TotalMealsLogged(ConditionStrategy):
    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        target = self.count_target(ctx)
        if ctx.floor_date is None:
            return not_started(target)
        return count_evaluation(await ctx.reader.meal_count(since=ctx.floor_date), target)


@register(ConditionType.TOTAL_WEIGH_INS)
class TotalWeighIns(ConditionStrategy):
    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        target = self.count_target(ctx)
        if ctx.floor_date is None:
            return not_started(target)
        return count_evaluation(await ctx.reader.weigh_in_count(since=ctx.floor_date), target)


# ---------------------------------------------------------------------------
# Weekly calorie windows
# ---------------------------------------------------------------------------


@register(ConditionType.WEEKLY_DEFICIT, ConditionType.WEEKLY_SURPLUS, ConditionType.WEEKLY_BALANCED)
class WeeklyCalorieWindow(ConditionStrategy):
    """Every day of the lookback window must land inside target ± buffer.

    Progress is the share of qualifying days, but completion needs all of
    them: 6 of 7 days is progress 0.857 and still not completable.
    """

    def lookback_days(self, ctx: EvaluationContext) -> int:
        default = self.spec.default_lookback_days or 7
        lookback = ctx.condition.lookback_days
        if lookback is None or lookback <= 0:
            return default
        return lookback

    def buffer_kcal(self, ctx: EvaluationContext) -> float:
        condition = ctx.condition
        if condition.buffer_kcal is not None and condition.buffer_kcal > 0:
            return condition.buffer_kcal
        # Balanced tasks author their tolerance as the condition target.
        if self.spec.mission == "balanced" and condition.target is not None and condition.target > 0:
            return condition.target
        return catalog.default_buffer_kcal(self.spec.mission)

    async def evaluate(self, ctx: EvaluationContext) -> TaskEvaluation:
        lookback = self.lookback_days(ctx)
        buffer = self.buffer_kcal(ctx)

        live = await self.live_targets(ctx)
        resolved = resolve_target(
            "calories",
            ctx.condition,
            live,
            # Balanced tasks store their tolerance in `target`, not a calorie number.
            frozen_from_condition=self.spec.mission != "balanced",
            mission=self.spec.mission,
        )

        meals = await ctx.reader.meals(start=features.window_start(ctx.today, lookback), end=ctx.today)
        totals = features.daily_totals(((m.date, m.calories) for m in meals), lookback, ctx.today)
        days = features.window_days(ctx.today, lookback)
        success_days = features.days_within_band(
            totals, days, resolved.value - buffer, resolved.value + buffer
        )

        logger.debug(
            "%s window: %d/%d days within %.0f±%.0f kcal",
            self.condition_type.value,
            success_days,
            lookback,
            resolved.value,
            buffer,
            extra={"user_id": ctx.user_id, "target_source": resolved.source.value},
        )

        return TaskEvaluation(
            can_complete=success_days == lookback,
            progress=success_days / lookback,
            current=success_days,
            target=lookback,
            details=f"{success_days} of {lookback} days in range",
            target_source=resolved.source,
        )
