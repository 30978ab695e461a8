"""Database connector: read-only async access to journey activity tables.

Tables (dates are UTC calendar dates):
  meals(user_id, date, calories, protein)
  weigh_ins(user_id, date, weight_kg)
  profiles(id, nutrition_plan JSONB)       -- dailyTargets.{calories, protein_g, tdee}
  user_stages(id, user_id, is_unlocked, unlocked_at)
  user_stage_tasks(id, user_stage_id, order_index, key_code, condition_json, is_completed)

Nothing here writes. Query errors propagate to the evaluator, which decides
how to degrade.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.journey.models import JourneyTask, MealRecord, TaskCondition, UserNutritionTargets, WeighInRecord

logger = logging.getLogger(__name__)


def _rows(result) -> list[dict[str, Any]]:
    columns = result.keys()
    return [dict(zip(columns, r)) for r in result.fetchall()]


def _as_dict(value: Any) -> dict[str, Any]:
    # JSONB comes back decoded from asyncpg, but text columns / fixtures may hold strings.
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return value if isinstance(value, dict) else {}


def _number(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


async def fetch_meals(
    session: AsyncSession,
    user_id: str,
    start: date | None = None,
    end: date | None = None,
) -> list[MealRecord]:
    """Meals for a user with start <= date <= end (either bound optional)."""
    query = "SELECT date, calories, protein FROM meals WHERE user_id = :user_id"
    params: dict[str, Any] = {"user_id": user_id}
    if start is not None:
        query += " AND date >= :start"
        params["start"] = start
    if end is not None:
        query += " AND date <= :end"
        params["end"] = end
    query += " ORDER BY date"

    result = await session.execute(text(query), params)
    return [
        MealRecord(date=row["date"], calories=_number(row.get("calories")), protein_grams=_number(row.get("protein")))
        for row in _rows(result)
    ]


async def fetch_weigh_ins(
    session: AsyncSession,
    user_id: str,
    start: date | None = None,
    limit: int | None = None,
) -> list[WeighInRecord]:
    query = "SELECT date, weight_kg FROM weigh_ins WHERE user_id = :user_id"
    params: dict[str, Any] = {"user_id": user_id}
    if start is not None:
        query += " AND date >= :start"
        params["start"] = start
    query += " ORDER BY date DESC"
    if limit is not None:
        query += " LIMIT :limit"
        params["limit"] = limit

    result = await session.execute(text(query), params)
    return [WeighInRecord(date=row["date"], weight_kg=_number(row.get("weight_kg"))) for row in _rows(result)]


async def count_meals(session: AsyncSession, user_id: str, since: date | None = None) -> int:
    return await _count(session, "meals", user_id, since)


async def count_weigh_ins(session: AsyncSession, user_id: str, since: date | None = None) -> int:
    return await _count(session, "weigh_ins", user_id, since)


async def _count(session: AsyncSession, table: str, user_id: str, since: date | None) -> int:
    # `table` is one of two literals above, never user input.
    query = f"SELECT COUNT(*) FROM {table} WHERE user_id = :user_id"
    params: dict[str, Any] = {"user_id": user_id}
    if since is not None:
        query += " AND date >= :since"
        params["since"] = since
    result = await session.execute(text(query), params)
    return int(result.scalar() or 0)


async def fetch_nutrition_targets(session: AsyncSession, user_id: str) -> UserNutritionTargets | None:
    """Live daily targets from profiles.nutrition_plan. None when no plan exists yet."""
    result = await session.execute(
        text("SELECT nutrition_plan FROM profiles WHERE id = :user_id"),
        {"user_id": user_id},
    )
    row = result.fetchone()
    if row is None:
        logger.debug("No profile for user %s", user_id)
        return None

    daily = _as_dict(_as_dict(row[0]).get("dailyTargets"))
    if not daily:
        logger.debug("No dailyTargets in nutrition plan for user %s", user_id)
        return None

    calories = _number(daily.get("calories"))
    return UserNutritionTargets(
        calories=calories,
        protein_grams=_number(daily.get("protein_g")),
        tdee=_number(daily.get("tdee")) or calories,
    )


_TASK_SELECT = (
    "SELECT t.id, t.user_stage_id, t.key_code, t.condition_json, t.is_completed, "
    "s.is_unlocked, s.unlocked_at "
    "FROM user_stage_tasks t JOIN user_stages s ON s.id = t.user_stage_id "
    "WHERE s.user_id = :user_id"
)


def _task_from_row(row: dict[str, Any]) -> JourneyTask:
    try:
        condition = TaskCondition.model_validate(_as_dict(row.get("condition_json")))
    except ValidationError:
        # Unparseable rules evaluate like an unknown type: never completable.
        logger.warning("Malformed condition_json on task %s", row.get("id"))
        condition = TaskCondition(type="")
    return JourneyTask(
        id=str(row["id"]),
        stage_id=str(row["user_stage_id"]),
        key_code=row.get("key_code") or "",
        condition=condition,
        is_completed=bool(row.get("is_completed")),
        stage_is_unlocked=bool(row.get("is_unlocked")),
        stage_unlocked_at=row.get("unlocked_at"),
    )


async def fetch_task(session: AsyncSession, user_id: str, task_id: str) -> JourneyTask | None:
    """One task owned by the user. None when missing or owned by someone else."""
    result = await session.execute(
        text(_TASK_SELECT + " AND t.id = :task_id"),
        {"user_id": user_id, "task_id": task_id},
    )
    rows = _rows(result)
    if not rows:
        return None
    return _task_from_row(rows[0])


async def fetch_open_tasks(
    session: AsyncSession,
    user_id: str,
    task_ids: list[str] | None = None,
) -> list[JourneyTask]:
    """Incomplete tasks in unlocked stages, optionally limited to `task_ids`."""
    query = _TASK_SELECT + " AND s.is_unlocked AND NOT t.is_completed"
    params: dict[str, Any] = {"user_id": user_id}
    if task_ids:
        query += " AND t.id = ANY(:task_ids)"
        params["task_ids"] = task_ids
    query += " ORDER BY t.order_index"

    result = await session.execute(text(query), params)
    return [_task_from_row(row) for row in _rows(result)]
