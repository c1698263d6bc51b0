"""Sobriety milestones and progress toward the next one."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from .dates import parse_day_key
from .models import Milestone, MilestoneProgress
from .utils import clamp_percentage

DEFAULT_MILESTONES: tuple[Milestone, ...] = (
    Milestone(7, "1 Week", "calendar"),
    Milestone(14, "2 Weeks", "calendar"),
    Milestone(21, "3 Weeks", "calendar"),
    Milestone(30, "1 Month", "award"),
    Milestone(60, "2 Months", "award"),
    Milestone(90, "3 Months", "star"),
    Milestone(180, "6 Months", "star"),
    Milestone(365, "1 Year", "trophy"),
    Milestone(547, "18 Months", "trophy"),
    Milestone(730, "2 Years", "medal"),
    Milestone(1095, "3 Years", "medal"),
    Milestone(1825, "5 Years", "crown"),
    Milestone(3650, "10 Years", "crown"),
)


@dataclass(frozen=True)
class MilestoneStatus:
    milestone: Milestone
    achieved: bool
    days_until: int
    reached_on: date | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "threshold_days": self.milestone.threshold_days,
            "label": self.milestone.label,
            "icon": self.milestone.icon,
            "achieved": self.achieved,
            "days_until": self.days_until,
            "date": self.reached_on.isoformat() if self.reached_on else None,
        }


def normalize_milestones(milestones: Iterable[Milestone]) -> list[Milestone]:
    """Sort ascending by threshold; the first definition of a threshold wins."""
    seen: dict[int, Milestone] = {}
    for milestone in milestones:
        seen.setdefault(milestone.threshold_days, milestone)
    return [seen[threshold] for threshold in sorted(seen)]


def milestone_progress(
    milestones: Iterable[Milestone],
    sobriety_days: int,
) -> MilestoneProgress:
    """Locate the next unmet milestone and the linear progress toward it.

    Progress runs from the previous threshold (0 before the first one) to the
    next threshold. Passing every milestone is a final state, not an error.
    """
    ordered = normalize_milestones(milestones)
    days = max(0, sobriety_days)

    previous_threshold = 0
    for milestone in ordered:
        if milestone.threshold_days > days:
            span = milestone.threshold_days - previous_threshold
            percentage = clamp_percentage((days - previous_threshold) / span * 100)
            return MilestoneProgress(
                achieved=False,
                progress_percentage=percentage,
                sobriety_days=days,
                next_threshold=milestone,
                days_until=milestone.threshold_days - days,
            )
        previous_threshold = milestone.threshold_days

    return MilestoneProgress(achieved=True, progress_percentage=100, sobriety_days=days)


def milestone_timeline(
    milestones: Iterable[Milestone],
    sobriety_date: Any,
    sobriety_days: int,
) -> list[MilestoneStatus]:
    """Every milestone with its status and the calendar day it falls on.

    Day N of sobriety is ``sobriety_date + (N - 1)`` because the sobriety
    date itself is day 1.
    """
    start = parse_day_key(sobriety_date)
    timeline: list[MilestoneStatus] = []
    for milestone in normalize_milestones(milestones):
        reached_on = None
        if start is not None:
            reached_on = start + timedelta(days=milestone.threshold_days - 1)
        timeline.append(
            MilestoneStatus(
                milestone=milestone,
                achieved=sobriety_days >= milestone.threshold_days,
                days_until=max(0, milestone.threshold_days - sobriety_days),
                reached_on=reached_on,
            )
        )
    return timeline
