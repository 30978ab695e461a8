"""Condition evaluation: strategy dispatch, safe degradation and condition sets.

Graceful degradation: a failed read never raises out of `evaluate_condition`;
the condition reports not completable with zero progress. Callers that must
report failures explicitly (the completion gate) pass `strict=True` and get
`EvaluationError` instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import date, datetime

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.journey.context import ActivityReader, EvaluationContext, today_in_tz
from app.journey.models import TaskCondition, TaskEvaluation
from app.journey.strategies import get_strategy

logger = logging.getLogger(__name__)

# Connection failures surface from asyncpg as OSError; bad rows as ValidationError.
QUERY_ERRORS = (SQLAlchemyError, OSError, ValidationError)
UNAVAILABLE = "evaluation unavailable"


class EvaluationError(Exception):
    """A condition could not be evaluated because its data could not be read."""

    def __init__(self, condition_type: str, message: str = "") -> None:
        self.condition_type = condition_type
        super().__init__(message or f"Could not evaluate {condition_type}")


def unavailable() -> TaskEvaluation:
    return TaskEvaluation(can_complete=False, progress=0.0, details=UNAVAILABLE)


async def evaluate_condition(
    session: AsyncSession,
    user_id: str,
    condition: TaskCondition,
    *,
    stage_unlocked_at: datetime | None = None,
    today: date | None = None,
    reader: ActivityReader | None = None,
    strict: bool = False,
) -> TaskEvaluation:
    """Evaluate one condition for one user against current activity."""
    strategy = get_strategy(condition.type)
    if strategy is None:
        logger.warning("Unknown condition type: %r", condition.type, extra={"user_id": user_id})
        return TaskEvaluation(can_complete=False, progress=0.0)

    ctx = EvaluationContext(
        condition=condition,
        reader=reader or ActivityReader(session, user_id),
        today=today or today_in_tz(),
        stage_unlocked_at=stage_unlocked_at,
    )
    try:
        result = await strategy.evaluate(ctx)
    except QUERY_ERRORS as exc:
        logger.exception("Failed to evaluate %s", condition.type, extra={"user_id": user_id})
        if strict:
            raise EvaluationError(condition.type) from exc
        return unavailable()

    logger.debug(
        "Evaluated %s: progress=%.3f can_complete=%s",
        condition.type,
        result.progress,
        result.can_complete,
        extra={"user_id": user_id},
    )
    return result


async def evaluate_each(
    session: AsyncSession,
    user_id: str,
    conditions: Sequence[TaskCondition],
    *,
    stage_unlocked_at: datetime | None = None,
    today: date | None = None,
    strict: bool = False,
) -> list[TaskEvaluation]:
    """Evaluate conditions concurrently against one shared snapshot."""
    reader = ActivityReader(session, user_id)
    today = today or today_in_tz()
    results = await asyncio.gather(
        *(
            evaluate_condition(
                session,
                user_id,
                c,
                stage_unlocked_at=stage_unlocked_at,
                today=today,
                reader=reader,
                strict=strict,
            )
            for c in conditions
        ),
        return_exceptions=True,
    )
    # Join everything before surfacing the first failure so no sibling is left running.
    for r in results:
        if isinstance(r, BaseException):
            raise r
    return list(results)


def combine_evaluations(results: Sequence[TaskEvaluation]) -> TaskEvaluation:
    """AND the completion gates, average the progress.

    The mean deliberately shows partial effort (two done + one at 0.4 reads
    0.8) while a single blocking condition keeps `can_complete` false.
    """
    if not results:
        return TaskEvaluation(can_complete=True, progress=1.0)

    details = ", ".join(r.details for r in results if r.details)
    return TaskEvaluation(
        can_complete=all(r.can_complete for r in results),
        progress=sum(r.progress for r in results) / len(results),
        details=details or None,
    )


async def evaluate_conditions(
    session: AsyncSession,
    user_id: str,
    conditions: Sequence[TaskCondition],
    *,
    stage_unlocked_at: datetime | None = None,
    today: date | None = None,
    strict: bool = False,
) -> TaskEvaluation:
    """Evaluate a task's conditions with AND semantics."""
    if not conditions:
        return combine_evaluations([])
    results = await evaluate_each(
        session,
        user_id,
        conditions,
        stage_unlocked_at=stage_unlocked_at,
        today=today,
        strict=strict,
    )
    return combine_evaluations(results)
