"""Journey HTTP router: task evaluation, the completion gate and cache control."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import verify_api_key
from app.db import get_session
from app.journey import evaluator, tasks
from app.journey.cache import progress_cache, request_key
from app.journey.catalog import list_condition_specs
from app.journey.models import (
    BatchRequest,
    BatchResult,
    CompleteRequest,
    CompletionResult,
    EvaluateRequest,
    InvalidateRequest,
    TaskEvaluation,
)

router = APIRouter(prefix="/journey", tags=["journey"])

NO_CACHE_HEADERS = {"Cache-Control": "no-store"}


# ---------------------------------------------------------------------------
# /journey/evaluate
# ---------------------------------------------------------------------------


@router.post("/evaluate", response_model=TaskEvaluation)
async def evaluate(
    body: EvaluateRequest,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
) -> TaskEvaluation:
    if body.condition is None and body.conditions is None:
        raise HTTPException(status_code=422, detail="Provide 'condition' or 'conditions'")

    # Keyed on the inputs too: a caller-supplied condition must not shadow the stored task.
    key = request_key(body.user_id, body.task_id, body.fingerprint()) if body.task_id else None
    if key is not None:
        cached = progress_cache.get(key)
        if cached is not None:
            return cached

    if body.condition is not None:
        result = await evaluator.evaluate_condition(
            session, body.user_id, body.condition, stage_unlocked_at=body.stage_unlocked_at
        )
    else:
        result = await evaluator.evaluate_conditions(
            session, body.user_id, body.conditions or [], stage_unlocked_at=body.stage_unlocked_at
        )

    if key is not None and result.details != evaluator.UNAVAILABLE:
        progress_cache.set(key, result)
    return result


# ---------------------------------------------------------------------------
# /journey/tasks
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/complete", response_model=CompletionResult)
async def complete_task(
    task_id: str,
    body: CompleteRequest,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    result = await tasks.check_completion(session, body.user_id, task_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Unknown task: {task_id}")

    status = 200
    if result.error == "stage_locked":
        status = 403
    elif result.error is not None:
        status = 503
    return JSONResponse(result.model_dump(mode="json"), status_code=status, headers=NO_CACHE_HEADERS)


@router.post("/tasks/batch", response_model=BatchResult)
async def batch_evaluate(
    body: BatchRequest,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
) -> BatchResult:
    return BatchResult(results=await tasks.evaluate_batch(session, body.user_id, body.task_ids))


# ---------------------------------------------------------------------------
# /journey/cache
# ---------------------------------------------------------------------------


@router.post("/cache/invalidate")
async def invalidate_cache(
    body: InvalidateRequest,
    _: str = Depends(verify_api_key),
) -> dict:
    """Called by write paths (new meal, weigh-in, plan change) for the affected user."""
    return {"user_id": body.user_id, "invalidated": progress_cache.invalidate_user(body.user_id)}


# ---------------------------------------------------------------------------
# /journey/condition-types
# ---------------------------------------------------------------------------


@router.get("/condition-types")
async def condition_types(
    _: str = Depends(verify_api_key),
) -> list[dict]:
    return [
        {
            "type": spec.type.value,
            "label": spec.label,
            "default_target": spec.default_target,
            "default_lookback_days": spec.default_lookback_days,
            "target_kind": spec.target_kind,
            "mission": spec.mission,
            "unit": spec.unit,
        }
        for spec in list_condition_specs()
    ]
