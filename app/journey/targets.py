"""Effective nutrition target resolution.

One function decides which number a protein or calorie task is measured
against. Priority, first usable value wins:

1. the user's live plan (`UserNutritionTargets`), when greater than zero and
   the personalization policy allows it;
2. the value frozen on the task when it was authored;
3. a hard default (protein 120 g; calories 2000/2500/2200 for
   deficit/surplus/balanced missions).

Policy `always` (default) applies the live plan to every task of the kind,
so a plan change updates all open tasks. Policy `flag` applies it only to
conditions with `use_user_target` set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from app.config import settings
from app.journey import catalog
from app.journey.models import TargetSource, TaskCondition, UserNutritionTargets

logger = logging.getLogger(__name__)

TargetKind = Literal["protein", "calories"]

POLICY_ALWAYS = "always"
POLICY_FLAG = "flag"


@dataclass(frozen=True, slots=True)
class ResolvedTarget:
    value: float
    source: TargetSource


def live_value(kind: TargetKind, live_targets: UserNutritionTargets | None) -> float | None:
    if live_targets is None:
        return None
    if kind == "protein":
        return live_targets.protein_grams
    return live_targets.calories


def default_value(kind: TargetKind, mission: str | None = None) -> float:
    if kind == "protein":
        return settings.journey_default_protein_g
    return catalog.default_calories(mission)


def live_allowed(condition: TaskCondition, policy: str | None = None) -> bool:
    policy = policy or settings.journey_live_target_policy
    if policy == POLICY_FLAG:
        return condition.use_user_target
    return True


def resolve_target(
    kind: TargetKind,
    condition: TaskCondition,
    live_targets: UserNutritionTargets | None,
    *,
    frozen: float | None = None,
    frozen_from_condition: bool = True,
    default: float | None = None,
    mission: str | None = None,
    policy: str | None = None,
) -> ResolvedTarget:
    """Resolve the effective target for `kind`. Never raises.

    `frozen` overrides `condition.target` as the tier-2 value.
    `WEEKLY_BALANCED` passes `frozen_from_condition=False`: its
    `condition.target` is the ± kcal tolerance, not a calorie target.
    """
    if live_allowed(condition, policy):
        live = live_value(kind, live_targets)
        if live is not None and live > 0:
            logger.debug("Target %s resolved from live plan: %s", kind, live)
            return ResolvedTarget(value=float(live), source=TargetSource.live)

    frozen_value = frozen
    if frozen_value is None and frozen_from_condition:
        frozen_value = condition.target
    if frozen_value is not None and frozen_value > 0:
        logger.debug("Target %s resolved from task: %s", kind, frozen_value)
        return ResolvedTarget(value=float(frozen_value), source=TargetSource.frozen)

    fallback = default if default is not None else default_value(kind, mission)
    logger.debug("Target %s resolved from default: %s", kind, fallback)
    return ResolvedTarget(value=float(fallback), source=TargetSource.default)
