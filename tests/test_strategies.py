"""Per-condition-type evaluation against an in-memory activity store."""

from __future__ import annotations

import pytest

from app.journey.evaluator import UNAVAILABLE, evaluate_condition
from app.journey.models import ConditionType, MealRecord, TargetSource, TaskCondition, UserNutritionTargets
from app.journey.strategies import STRATEGIES
from tests.conftest import TODAY, make_meal, make_weigh_in, unlocked_days_ago


async def _evaluate(condition: dict, **kwargs):
    return await evaluate_condition(
        None, "user-1", TaskCondition.model_validate(condition), today=TODAY, **kwargs
    )


class TestRegistry:
    def test_every_condition_type_registered(self):
        assert set(STRATEGIES) == {ct.value for ct in ConditionType}

    @pytest.mark.asyncio
    async def test_unknown_type_not_completable(self, store):
        result = await _evaluate({"type": "RUN_A_MARATHON", "target": 1})
        assert result.can_complete is False
        assert result.progress == 0.0
        assert store.calls == []


class TestFirstWeighIn:
    @pytest.mark.asyncio
    async def test_no_weigh_ins(self, store):
        result = await _evaluate({"type": "FIRST_WEIGH_IN"})
        assert result.can_complete is False
        assert result.progress == 0.0

    @pytest.mark.asyncio
    async def test_any_weigh_in(self, store):
        store.weigh_ins = [make_weigh_in(30)]
        result = await _evaluate({"type": "FIRST_WEIGH_IN"})
        assert result.can_complete is True
        assert result.progress == 1.0


class TestLogMealsToday:
    @pytest.mark.asyncio
    async def test_partial(self, store):
        store.meals = [make_meal(0), make_meal(1), make_meal(1)]
        result = await _evaluate({"type": "LOG_MEALS_TODAY", "target": 3})
        assert result.can_complete is False
        assert result.current == 1
        assert result.progress == pytest.approx(1 / 3)

    @pytest.mark.asyncio
    async def test_met(self, store):
        store.meals = [make_meal(0) for _ in range(4)]
        result = await _evaluate({"type": "LOG_MEALS_TODAY", "target": 3})
        assert result.can_complete is True
        assert result.progress == 1.0

    @pytest.mark.asyncio
    async def test_default_target(self, store):
        store.meals = [make_meal(0)]
        result = await _evaluate({"type": "LOG_MEALS_TODAY"})
        assert result.target == 3


class TestHitProteinGoal:
    @pytest.mark.asyncio
    async def test_live_plan_target(self, store):
        store.targets = UserNutritionTargets(calories=2000, protein_grams=150)
        store.meals = [make_meal(0, protein=60), make_meal(0, protein=70)]
        result = await _evaluate({"type": "HIT_PROTEIN_GOAL", "target": 120})
        assert result.target == 150
        assert result.target_source == TargetSource.live
        assert result.current == 130
        assert result.can_complete is False

    @pytest.mark.asyncio
    async def test_frozen_target_without_plan(self, store):
        store.meals = [make_meal(0, protein=60), make_meal(0, protein=70)]
        result = await _evaluate({"type": "HIT_PROTEIN_GOAL", "target": 120})
        assert result.target == 120
        assert result.target_source == TargetSource.frozen
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_default_target(self, store):
        store.meals = [make_meal(0, protein=60)]
        result = await _evaluate({"type": "HIT_PROTEIN_GOAL"})
        assert result.target == 120.0
        assert result.target_source == TargetSource.default
        assert result.progress == 0.5

    @pytest.mark.asyncio
    async def test_yesterday_does_not_count(self, store):
        store.meals = [make_meal(1, protein=200)]
        result = await _evaluate({"type": "HIT_PROTEIN_GOAL", "target": 100})
        assert result.current == 0
        assert result.can_complete is False


class TestStreakDays:
    @pytest.mark.asyncio
    async def test_streak_met(self, store):
        store.meals = [make_meal(i) for i in range(7)]
        result = await _evaluate(
            {"type": "STREAK_DAYS", "target": 7}, stage_unlocked_at=unlocked_days_ago(10)
        )
        assert result.can_complete is True
        assert result.current == 7

    @pytest.mark.asyncio
    async def test_streak_floored_at_unlock(self, store):
        store.meals = [make_meal(i) for i in range(10)]
        result = await _evaluate(
            {"type": "STREAK_DAYS", "target": 7}, stage_unlocked_at=unlocked_days_ago(2)
        )
        assert result.current == 3
        assert result.can_complete is False
        assert result.progress == pytest.approx(3 / 7)

    @pytest.mark.asyncio
    async def test_gap_resets(self, store):
        store.meals = [make_meal(0), make_meal(1), make_meal(3), make_meal(4)]
        result = await _evaluate(
            {"type": "STREAK_DAYS", "target": 5}, stage_unlocked_at=unlocked_days_ago(10)
        )
        assert result.current == 2

    @pytest.mark.asyncio
    async def test_not_unlocked(self, store):
        store.meals = [make_meal(i) for i in range(7)]
        result = await _evaluate({"type": "STREAK_DAYS", "target": 7})
        assert result.can_complete is False
        assert result.progress == 0.0
        assert store.calls == []


class TestTotals:
    @pytest.mark.asyncio
    async def test_meals_since_unlock(self, store):
        store.meals = [make_meal(i) for i in range(20)]
        result = await _evaluate(
            {"type": "TOTAL_MEALS_LOGGED", "target": 10}, stage_unlocked_at=unlocked_days_ago(4)
        )
        assert result.current == 5
        assert result.progress == 0.5
        assert result.can_complete is False

    @pytest.mark.asyncio
    async def test_weigh_ins_since_unlock(self, store):
        store.weigh_ins = [make_weigh_in(i) for i in range(0, 20, 2)]
        result = await _evaluate(
            {"type": "TOTAL_WEIGH_INS", "target": 3}, stage_unlocked_at=unlocked_days_ago(5)
        )
        assert result.current == 3
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_default_targets(self, store):
        result = await _evaluate({"type": "TOTAL_MEALS_LOGGED"}, stage_unlocked_at=unlocked_days_ago(1))
        assert result.target == 50
        result = await _evaluate({"type": "TOTAL_WEIGH_INS"}, stage_unlocked_at=unlocked_days_ago(1))
        assert result.target == 10

    @pytest.mark.asyncio
    async def test_not_unlocked(self, store):
        store.meals = [make_meal(0)]
        result = await _evaluate({"type": "TOTAL_MEALS_LOGGED", "target": 1})
        assert result.can_complete is False


class TestWeeklyWindows:
    @pytest.mark.asyncio
    async def test_all_days_in_range(self, store):
        store.meals = [make_meal(i, calories=c) for i, c in enumerate([1900, 2000, 2100, 1950, 2050, 2000, 1990])]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 2000, "lookbackDays": 7})
        assert result.current == 7
        assert result.progress == 1.0
        assert result.can_complete is True
        assert result.details == "7 of 7 days in range"

    @pytest.mark.asyncio
    async def test_one_day_over(self, store):
        calories = [1900, 2000, 2500, 1950, 2050, 2000, 1990]
        store.meals = [make_meal(i, calories=c) for i, c in enumerate(calories)]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 2000, "lookbackDays": 7})
        assert result.current == 6
        assert result.progress == pytest.approx(6 / 7)
        assert result.can_complete is False

    @pytest.mark.asyncio
    async def test_meals_summed_per_day(self, store):
        store.meals = [make_meal(i, calories=1000) for i in range(7)] * 2
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 2000})
        assert result.current == 7

    @pytest.mark.asyncio
    async def test_missing_day_fails(self, store):
        store.meals = [make_meal(i, calories=2000) for i in range(6)]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 2000})
        assert result.current == 6
        assert result.can_complete is False

    @pytest.mark.asyncio
    async def test_default_lookback_for_non_positive(self, store):
        store.meals = [make_meal(i, calories=2000) for i in range(7)]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "lookbackDays": 0})
        assert result.target == 7
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_custom_lookback(self, store):
        store.meals = [make_meal(i, calories=2500) for i in range(3)]
        result = await _evaluate({"type": "WEEKLY_SURPLUS", "lookbackDays": 3})
        assert result.target == 3
        assert result.can_complete is True
        assert result.target_source == TargetSource.default

    @pytest.mark.asyncio
    async def test_deficit_uses_task_target_without_plan(self, store):
        store.meals = [make_meal(i, calories=1800) for i in range(7)]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 1800})
        assert result.target_source == TargetSource.frozen
        assert result.current == 7
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_surplus_uses_task_target_without_plan(self, store):
        store.meals = [make_meal(i, calories=2800) for i in range(7)]
        result = await _evaluate({"type": "WEEKLY_SURPLUS", "target": 2800})
        assert result.target_source == TargetSource.frozen
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_live_plan_calories(self, store):
        store.targets = UserNutritionTargets(calories=1800, protein_grams=140)
        store.meals = [make_meal(i, calories=1800) for i in range(7)]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 2000})
        assert result.target_source == TargetSource.live
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_balanced_target_is_tolerance(self, store):
        store.meals = [make_meal(i, calories=2450) for i in range(7)]
        result = await _evaluate({"type": "WEEKLY_BALANCED", "target": 300})
        assert result.target_source == TargetSource.default
        assert result.can_complete is True

    @pytest.mark.asyncio
    async def test_explicit_buffer(self, store):
        store.meals = [make_meal(i, calories=2150) for i in range(7)]
        result = await _evaluate({"type": "WEEKLY_DEFICIT", "target": 2000, "bufferKcal": 200})
        assert result.can_complete is True


class TestDegradation:
    @pytest.mark.asyncio
    async def test_query_failure_is_safe_default(self, store):
        store.fail = True
        store.meals = [make_meal(0) for _ in range(5)]
        result = await _evaluate({"type": "LOG_MEALS_TODAY", "target": 3})
        assert result.can_complete is False
        assert result.progress == 0.0
        assert result.details == UNAVAILABLE

    @pytest.mark.asyncio
    async def test_idempotent(self, store):
        store.meals = [make_meal(i, calories=2000) for i in range(5)]
        first = await _evaluate({"type": "WEEKLY_DEFICIT"})
        second = await _evaluate({"type": "WEEKLY_DEFICIT"})
        assert first == second

    @pytest.mark.asyncio
    async def test_malformed_row_is_safe_default(self, store, monkeypatch):
        async def fetch_meals(*args, **kwargs):
            return [MealRecord(date="yesterday-ish", calories=500)]

        monkeypatch.setattr("app.journey.connector.fetch_meals", fetch_meals)
        result = await _evaluate({"type": "LOG_MEALS_TODAY", "target": 1})
        assert result.can_complete is False
        assert result.details == UNAVAILABLE
