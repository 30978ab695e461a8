"""Shared fixtures for the test suite."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.db import get_session
from app.journey import connector
from app.journey.cache import progress_cache
from app.journey.models import JourneyTask, MealRecord, TaskCondition, UserNutritionTargets, WeighInRecord
from app.main import app

TODAY = date(2026, 2, 15)


# ---------------------------------------------------------------------------
# Fake DB session (no real Postgres needed)
# ---------------------------------------------------------------------------

class FakeSession:
    """Minimal stand-in for AsyncSession used in connector and endpoint tests."""

    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self._rows = rows or []
        self.statements: list[str] = []

    async def execute(self, stmt, params=None):
        self.statements.append(str(stmt))
        return FakeResult(self._rows)

    async def rollback(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class FakeResult:
    def __init__(self, rows: list[dict[str, Any]]):
        self._rows = rows
        self._keys = list(rows[0].keys()) if rows else []

    def keys(self):
        return self._keys

    def fetchall(self):
        return [tuple(r[k] for k in self._keys) for r in self._rows]

    def fetchone(self):
        rows = self.fetchall()
        return rows[0] if rows else None

    def scalar(self):
        row = self.fetchone()
        return row[0] if row else None


# ---------------------------------------------------------------------------
# Fake activity store (patched over app.journey.connector)
# ---------------------------------------------------------------------------

class FakeActivityStore:
    """In-memory meals / weigh-ins / plan / tasks answering like the real queries."""

    def __init__(self):
        self.meals: list[MealRecord] = []
        self.weigh_ins: list[WeighInRecord] = []
        self.targets: UserNutritionTargets | None = None
        self.tasks: list[JourneyTask] = []
        self.calls: list[str] = []
        self.fail = False

    def _hit(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    async def fetch_meals(self, session, user_id, start=None, end=None):
        self._hit("meals")
        return [
            m for m in self.meals
            if (start is None or m.date >= start) and (end is None or m.date <= end)
        ]

    async def fetch_weigh_ins(self, session, user_id, start=None, limit=None):
        self._hit("weigh_ins")
        rows = sorted(
            (w for w in self.weigh_ins if start is None or w.date >= start),
            key=lambda w: w.date,
            reverse=True,
        )
        return rows[:limit] if limit is not None else rows

    async def count_meals(self, session, user_id, since=None):
        self._hit("meal_count")
        return sum(1 for m in self.meals if since is None or m.date >= since)

    async def count_weigh_ins(self, session, user_id, since=None):
        self._hit("weigh_in_count")
        return sum(1 for w in self.weigh_ins if since is None or w.date >= since)

    async def fetch_nutrition_targets(self, session, user_id):
        self._hit("nutrition_targets")
        return self.targets

    async def fetch_task(self, session, user_id, task_id):
        self._hit("task")
        return next((t for t in self.tasks if t.id == task_id), None)

    async def fetch_open_tasks(self, session, user_id, task_ids=None):
        self._hit("open_tasks")
        return [
            t for t in self.tasks
            if t.stage_is_unlocked and not t.is_completed and (not task_ids or t.id in task_ids)
        ]


@pytest.fixture()
def store(monkeypatch):
    """Patch every connector read with an in-memory store and pin today."""
    fake = FakeActivityStore()
    for name in (
        "fetch_meals",
        "fetch_weigh_ins",
        "count_meals",
        "count_weigh_ins",
        "fetch_nutrition_targets",
        "fetch_task",
        "fetch_open_tasks",
    ):
        monkeypatch.setattr(connector, name, getattr(fake, name))
    monkeypatch.setattr("app.journey.evaluator.today_in_tz", lambda tz_name=None: TODAY)
    monkeypatch.setattr("app.journey.tasks.today_in_tz", lambda tz_name=None: TODAY)
    return fake


@pytest.fixture(autouse=True)
def _clear_progress_cache():
    progress_cache.clear()
    yield
    progress_cache.clear()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_session():
    return FakeSession()


@pytest.fixture()
def override_session(fake_session):
    """Override the FastAPI dependency so no real DB is needed."""
    async def _override():
        yield fake_session

    app.dependency_overrides[get_session] = _override
    yield fake_session
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(override_session):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_meal(days_ago: int = 0, calories: float = 500.0, protein: float = 30.0) -> MealRecord:
    return MealRecord(date=TODAY - timedelta(days=days_ago), calories=calories, protein_grams=protein)


def make_weigh_in(days_ago: int = 0, weight_kg: float = 80.0) -> WeighInRecord:
    return WeighInRecord(date=TODAY - timedelta(days=days_ago), weight_kg=weight_kg)


def unlocked_days_ago(days: int) -> datetime:
    """Stage unlock timestamp `days` before TODAY, mid-morning UTC."""
    return datetime.combine(TODAY - timedelta(days=days), datetime.min.time(), tzinfo=timezone.utc) + timedelta(hours=9)


def make_task(
    task_id: str = "task-1",
    condition: dict[str, Any] | None = None,
    is_completed: bool = False,
    stage_is_unlocked: bool = True,
    stage_unlocked_at: datetime | None = None,
) -> JourneyTask:
    return JourneyTask(
        id=task_id,
        stage_id="stage-1",
        key_code=task_id.upper(),
        condition=TaskCondition.model_validate(condition or {"type": "LOG_MEALS_TODAY", "target": 3}),
        is_completed=is_completed,
        stage_is_unlocked=stage_is_unlocked,
        stage_unlocked_at=stage_unlocked_at,
    )
