"""Pure composition of every derived metric into one snapshot.

Recomputed from scratch on each call: same inputs, same snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from .compliance import (
    CATEGORY_ASSIGNMENT,
    CATEGORY_CHECK_IN,
    MONTHLY_WINDOW_DAYS,
    GoalStats,
    WeeklyStats,
    compliance_rates,
    goal_stats,
    weekly_stats,
)
from .dates import sobriety_day_count
from .milestones import DEFAULT_MILESTONES, milestone_progress
from .models import (
    CheckInRecord,
    ComplianceResult,
    Milestone,
    MilestoneProgress,
    PatternResult,
    StreakResult,
    UserProfile,
)
from .patterns import (
    PATTERN_WINDOW_DAYS,
    WeekdayPattern,
    detect_pattern,
    detect_time_of_day_pattern,
    detect_weekday_pattern,
)
from .savings import money_saved, savings_projection
from .streaks import days_for_kind, streak_for_kind


@dataclass(frozen=True)
class Insights:
    """Softer signals shown next to the headline metrics."""

    weekday_pattern: WeekdayPattern | None = None
    time_of_day_pattern: PatternResult | None = None
    goals: GoalStats | None = None
    savings_projection: dict[str, float] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekday_pattern": self.weekday_pattern.to_dict() if self.weekday_pattern else None,
            "time_of_day_pattern": (
                self.time_of_day_pattern.to_dict() if self.time_of_day_pattern else None
            ),
            "goals": self.goals.to_dict() if self.goals else None,
            "savings_projection": self.savings_projection,
        }


@dataclass(frozen=True)
class ProgressSnapshot:
    today: date
    sobriety_days: int
    money_saved: float
    check_in_streak: StreakResult
    reflection_streak: StreakResult
    compliance: dict[str, ComplianceResult]
    milestone: MilestoneProgress
    pattern: PatternResult | None
    weekly: WeeklyStats
    insights: Insights = Insights()
    total_check_ins: int = 0
    timezone: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "today": self.today.isoformat(),
            "timezone": self.timezone,
            "sobriety_days": self.sobriety_days,
            "money_saved": self.money_saved,
            "check_in_streak": self.check_in_streak.to_dict(),
            "reflection_streak": self.reflection_streak.to_dict(),
            "compliance": {name: result.to_dict() for name, result in self.compliance.items()},
            "milestone": self.milestone.to_dict(),
            "pattern": self.pattern.to_dict() if self.pattern else None,
            "weekly": self.weekly.to_dict(),
            "insights": self.insights.to_dict(),
            "total_check_ins": self.total_check_ins,
        }


def build_snapshot(
    records: Iterable[CheckInRecord],
    profile: UserProfile,
    today: date,
    *,
    milestones: Sequence[Milestone] = DEFAULT_MILESTONES,
    compliance_window_days: int = MONTHLY_WINDOW_DAYS,
    pattern_window_days: int = PATTERN_WINDOW_DAYS,
    assignment_days: Iterable[date] = (),
    joined_on: date | None = None,
    goal_statuses: Sequence[str] | None = None,
) -> ProgressSnapshot:
    """Derive every progress metric for ``profile`` as of local day ``today``.

    ``records`` must already be normalized (see ``ingest``); records owned by
    other users are ignored. ``goal_statuses`` (most recent first) feeds the
    goal insight; without it the insight is left empty.
    """
    own = [r for r in records if r.user_id == profile.user_id]
    sobriety_days = sobriety_day_count(profile.sobriety_date, today, profile.timezone)

    compliance = compliance_rates(
        {
            CATEGORY_CHECK_IN: days_for_kind(own, "morning"),
            CATEGORY_ASSIGNMENT: set(assignment_days),
        },
        today,
        compliance_window_days,
        joined_on=joined_on,
    )

    insights = Insights(
        weekday_pattern=detect_weekday_pattern(own, today, window_days=pattern_window_days),
        time_of_day_pattern=detect_time_of_day_pattern(own, today),
        goals=goal_stats(goal_statuses) if goal_statuses is not None else None,
        savings_projection=savings_projection(profile.daily_cost),
    )

    return ProgressSnapshot(
        today=today,
        timezone=profile.timezone,
        sobriety_days=sobriety_days,
        money_saved=money_saved(sobriety_days, profile.daily_cost),
        check_in_streak=streak_for_kind(own, "morning", today),
        reflection_streak=streak_for_kind(own, "evening", today),
        compliance=compliance,
        milestone=milestone_progress(milestones, sobriety_days),
        pattern=detect_pattern(own, today, window_days=pattern_window_days),
        weekly=weekly_stats(own, today),
        insights=insights,
        total_check_ins=len(own),
    )


def empty_snapshot(profile: UserProfile, today: date, **kwargs: Any) -> ProgressSnapshot:
    """Zero-value snapshot used when the record feed is unavailable."""
    return build_snapshot((), profile, today, **kwargs)
