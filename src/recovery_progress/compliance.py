"""Compliance rates over trailing calendar windows.

A compliance rate is the share of days in the window with at least one
qualifying event. Each category is computed independently from its own day
set, so a missing assignment feed never drags down the check-in rate.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from .dates import day_range
from .models import CheckInRecord, ComplianceResult
from .utils import clamp_percentage, round_half_up

WEEKLY_WINDOW_DAYS = 7
MONTHLY_WINDOW_DAYS = 30
SUPPORTED_WINDOWS: tuple[int, ...] = (WEEKLY_WINDOW_DAYS, MONTHLY_WINDOW_DAYS)

CATEGORY_CHECK_IN = "checkIn"
CATEGORY_ASSIGNMENT = "assignment"

_SUCCESSFUL_GOAL_STATUSES = frozenset({"yes", "almost"})


@dataclass(frozen=True)
class WeeklyStats:
    check_rate: int
    avg_mood: float
    check_in_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_rate": self.check_rate,
            "avg_mood": self.avg_mood,
            "check_in_count": self.check_in_count,
        }


@dataclass(frozen=True)
class GoalStats:
    completion_rate: int
    current_streak: int
    best_streak: int
    total_goals: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "completion_rate": self.completion_rate,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "total_goals": self.total_goals,
        }


def effective_window(window_days: int, today: date, joined_on: date | None = None) -> int:
    """Shrink the window to the days since joining when the user is newer than it."""
    if window_days <= 0:
        return 0
    if joined_on is None:
        return window_days
    if joined_on > today:
        return 0
    return min(window_days, (today - joined_on).days + 1)


def compliance_rate(
    days: Iterable[date],
    today: date,
    window_days: int,
    *,
    category: str = CATEGORY_CHECK_IN,
) -> ComplianceResult:
    """Rate of days in the ``window_days`` ending today with a qualifying event."""
    if window_days <= 0:
        return ComplianceResult(category=category, rate=0, window_days=0, qualifying_days=0)
    window = set(day_range(today, window_days))
    qualifying = len(window.intersection(days))
    return ComplianceResult(
        category=category,
        rate=clamp_percentage(qualifying / window_days * 100),
        window_days=window_days,
        qualifying_days=qualifying,
    )


def compliance_rates(
    days_by_category: Mapping[str, Iterable[date]],
    today: date,
    window_days: int = MONTHLY_WINDOW_DAYS,
    joined_on: date | None = None,
) -> dict[str, ComplianceResult]:
    """Compliance per named category over the same trailing window."""
    window = effective_window(window_days, today, joined_on)
    return {
        category: compliance_rate(days, today, window, category=category)
        for category, days in days_by_category.items()
    }


def completion_ratio(completed: int, total: int) -> int:
    """Plain completed/total percentage; 0 when there is nothing to complete."""
    if total <= 0:
        return 0
    return clamp_percentage(completed / total * 100)


def weekly_stats(records: Iterable[CheckInRecord], today: date) -> WeeklyStats:
    """Seven-day summary: day coverage, average morning mood, record count."""
    window_start = today - timedelta(days=WEEKLY_WINDOW_DAYS - 1)
    in_window = [r for r in records if window_start <= r.calendar_day <= today]
    if not in_window:
        return WeeklyStats(check_rate=0, avg_mood=0.0, check_in_count=0)

    check_days = {r.calendar_day for r in in_window if r.kind == "morning"}
    rate = compliance_rate(check_days, today, WEEKLY_WINDOW_DAYS).rate

    moods = [
        r.metrics["mood"]
        for r in in_window
        if r.kind == "morning" and r.metrics.get("mood") is not None
    ]
    avg_mood = round_half_up(sum(moods) / len(moods) * 10) / 10 if moods else 0.0
    return WeeklyStats(check_rate=rate, avg_mood=avg_mood, check_in_count=len(in_window))


def goal_stats(statuses: Iterable[str]) -> GoalStats:
    """Completion rate and success streaks over goal outcomes, most recent first.

    ``yes`` and ``almost`` both count as success.
    """
    history = [str(s).strip().lower() for s in statuses]
    if not history:
        return GoalStats(completion_rate=0, current_streak=0, best_streak=0, total_goals=0)

    successes = [status in _SUCCESSFUL_GOAL_STATUSES for status in history]

    current = 0
    for success in successes:
        if not success:
            break
        current += 1

    best = 0
    run = 0
    for success in successes:
        run = run + 1 if success else 0
        best = max(best, run)

    return GoalStats(
        completion_rate=completion_ratio(sum(successes), len(history)),
        current_streak=current,
        best_streak=best,
        total_goals=len(history),
    )
