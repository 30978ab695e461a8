"""Per-evaluation state: who, what, when, and a memoized activity reader."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.journey import connector
from app.journey.models import MealRecord, TaskCondition, UserNutritionTargets, WeighInRecord


def today_in_tz(tz_name: str | None = None) -> date:
    return datetime.now(ZoneInfo(tz_name or settings.default_tz)).date()


def local_date(ts: datetime, tz_name: str | None = None) -> date:
    """Calendar date of `ts` in the evaluation timezone. Naive values are UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(ZoneInfo(tz_name or settings.default_tz)).date()


class ActivityReader:
    """Read-through view of one user's activity for a single evaluation pass.

    An AsyncSession cannot run two statements at once, so reads are
    serialized behind a lock; concurrent conditions still fan out and join.
    Identical reads are answered once, which keeps every condition in a set
    looking at the same snapshot.
    """

    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self._session = session
        self.user_id = user_id
        self._lock = asyncio.Lock()
        self._memo: dict[tuple, Any] = {}

    async def _read(self, key: tuple, fetch: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            if key not in self._memo:
                self._memo[key] = await fetch()
            return self._memo[key]

    async def meals(self, start: date | None = None, end: date | None = None) -> list[MealRecord]:
        return await self._read(
            ("meals", start, end),
            lambda: connector.fetch_meals(self._session, self.user_id, start, end),
        )

    async def weigh_ins(self, start: date | None = None, limit: int | None = None) -> list[WeighInRecord]:
        return await self._read(
            ("weigh_ins", start, limit),
            lambda: connector.fetch_weigh_ins(self._session, self.user_id, start, limit),
        )

    async def meal_count(self, since: date | None = None) -> int:
        return await self._read(
            ("meal_count", since),
            lambda: connector.count_meals(self._session, self.user_id, since),
        )

    async def weigh_in_count(self, since: date | None = None) -> int:
        return await self._read(
            ("weigh_in_count", since),
            lambda: connector.count_weigh_ins(self._session, self.user_id, since),
        )

    async def nutrition_targets(self) -> UserNutritionTargets | None:
        return await self._read(
            ("nutrition_targets",),
            lambda: connector.fetch_nutrition_targets(self._session, self.user_id),
        )


@dataclass
class EvaluationContext:
    condition: TaskCondition
    reader: ActivityReader
    today: date
    stage_unlocked_at: datetime | None = None
    tz_name: str = field(default_factory=lambda: settings.default_tz)

    @property
    def user_id(self) -> str:
        return self.reader.user_id

    @property
    def floor_date(self) -> date | None:
        """First countable day for streak/cumulative conditions."""
        if self.stage_unlocked_at is None:
            return None
        return local_date(self.stage_unlocked_at, self.tz_name)
