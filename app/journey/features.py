"""Pure stateless feature functions, math only, never raises."""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import date, timedelta


def clamp01(value: float) -> float:
    """Clamp to [0, 1]. NaN and infinities become 0."""
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def progress_ratio(current: float, target: float) -> float:
    """min(current / target, 1). A non-positive target yields 0."""
    if target <= 0:
        return 0.0
    return clamp01(current / target)


def positive_or_default(value: float | None, default: float) -> float:
    """Return `value` when it is a usable positive number, else `default`."""
    if value is None or value <= 0:
        return default
    return value


# ---------------------------------------------------------------------------
# Window aggregation
# ---------------------------------------------------------------------------

def window_start(today: date, lookback_days: int) -> date:
    return today - timedelta(days=lookback_days)


def window_days(today: date, days: int) -> list[date]:
    """The `days` calendar days ending at (and including) today, newest first."""
    return [today - timedelta(days=i) for i in range(max(days, 0))]


def daily_totals(
    records: Iterable[tuple[date, float]],
    lookback_days: int,
    today: date,
) -> dict[date, float]:
    """Sum values per calendar day over the lookback window.

    Records strictly older than `today - lookback_days` are dropped, as are
    records dated after `today`. Days with no records have no entry.
    """
    cutoff = window_start(today, lookback_days)
    totals: dict[date, float] = {}
    for day, value in records:
        if day < cutoff or day > today:
            continue
        totals[day] = totals.get(day, 0.0) + (value or 0.0)
    # Insertion order follows input order; sort so output never depends on it.
    return dict(sorted(totals.items()))


def days_within_band(
    totals: dict[date, float],
    days: list[date],
    lower: float,
    upper: float,
) -> int:
    """Count days whose total is inside [lower, upper]. Missing days count as 0."""
    return sum(1 for d in days if lower <= totals.get(d, 0.0) <= upper)


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------

def consecutive_days(
    record_dates: set[date],
    required_days: int,
    today: date,
    floor_date: date | None = None,
) -> int:
    """Consecutive days with a record, walking back from today.

    Stops at the first missing day, before crossing `floor_date`, or after
    `required_days` steps. No record today means no active streak.
    """
    streak = 0
    check_date = today
    while streak < required_days:
        if floor_date is not None and check_date < floor_date:
            break
        if check_date not in record_dates:
            break
        streak += 1
        check_date -= timedelta(days=1)
    return streak
