"""Task-level operations: cached progress, the completion gate, batch checks."""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from app.journey import connector
from app.journey.cache import ProgressCache, journey_key, progress_cache, progress_key
from app.journey.context import ActivityReader, today_in_tz
from app.journey.evaluator import (
    QUERY_ERRORS,
    UNAVAILABLE,
    EvaluationError,
    combine_evaluations,
    evaluate_condition,
    evaluate_each,
)
from app.journey.models import CompletionResult, JourneyTask, TaskEvaluation

logger = logging.getLogger(__name__)


async def evaluate_task(
    session: AsyncSession,
    user_id: str,
    task: JourneyTask,
    *,
    today: date | None = None,
    reader: ActivityReader | None = None,
    cache: ProgressCache | None = None,
) -> TaskEvaluation:
    """Progress for a stored task, memoized under progress:{user}:{task}."""
    cache = cache if cache is not None else progress_cache
    key = progress_key(user_id, task.id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = await evaluate_condition(
        session,
        user_id,
        task.condition,
        stage_unlocked_at=task.stage_unlocked_at,
        today=today,
        reader=reader,
    )
    # Degraded results are not cached; the next read retries the query.
    if result.details != UNAVAILABLE:
        cache.set(key, result)
    return result


async def check_completion(
    session: AsyncSession,
    user_id: str,
    task_id: str,
    *,
    today: date | None = None,
) -> CompletionResult | None:
    """Authoritative gate run before a task is marked done and points awarded.

    Always re-evaluates (never served from cache). Returns None when the
    task does not exist for this user.
    """
    try:
        task = await connector.fetch_task(session, user_id, task_id)
    except QUERY_ERRORS:
        logger.exception("Could not load task %s", task_id, extra={"user_id": user_id})
        return CompletionResult(ok=False, error="evaluation_failed")

    if task is None:
        return None

    if task.is_completed:
        return CompletionResult(ok=True, can_complete=True, already_completed=True)

    if not task.stage_is_unlocked:
        return CompletionResult(ok=False, error="stage_locked")

    conditions = [task.condition]
    try:
        results = await evaluate_each(
            session,
            user_id,
            conditions,
            stage_unlocked_at=task.stage_unlocked_at,
            today=today,
            strict=True,
        )
    except EvaluationError as exc:
        logger.warning("Completion check failed for task %s: %s", task_id, exc, extra={"user_id": user_id})
        return CompletionResult(ok=False, error="evaluation_failed")

    satisfied = [c.type for c, r in zip(conditions, results) if r.can_complete]
    missing = [c.type for c, r in zip(conditions, results) if not r.can_complete]
    evaluation = combine_evaluations(results) if len(results) > 1 else results[0]

    if not evaluation.can_complete:
        logger.info(
            "Task %s not completable: progress=%.3f",
            task_id,
            evaluation.progress,
            extra={"user_id": user_id, "missing": missing},
        )

    return CompletionResult(
        ok=True,
        can_complete=evaluation.can_complete,
        satisfied=satisfied,
        missing=missing,
        evaluation=evaluation,
    )


async def evaluate_batch(
    session: AsyncSession,
    user_id: str,
    task_ids: list[str] | None = None,
    *,
    today: date | None = None,
    cache: ProgressCache | None = None,
) -> dict[str, bool]:
    """Completion flag per open task. The full (unfiltered) map is cached under journey:{user}."""
    cache = cache if cache is not None else progress_cache
    whole_journey = not task_ids
    if whole_journey:
        cached = cache.get(journey_key(user_id))
        if cached is not None:
            return dict(cached)

    try:
        tasks = await connector.fetch_open_tasks(session, user_id, task_ids)
    except QUERY_ERRORS:
        logger.exception("Could not load open tasks", extra={"user_id": user_id})
        return {task_id: False for task_id in task_ids or []}

    reader = ActivityReader(session, user_id)
    today = today or today_in_tz()
    evaluations = await asyncio.gather(
        *(evaluate_task(session, user_id, t, today=today, reader=reader, cache=cache) for t in tasks)
    )
    results = {task.id: evaluation.can_complete for task, evaluation in zip(tasks, evaluations)}

    if whole_journey and all(e.details != UNAVAILABLE for e in evaluations):
        cache.set(journey_key(user_id), dict(results))
    return results

