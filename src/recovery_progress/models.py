"""Typed records consumed and produced by the progress engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

CheckInKind = Literal["morning", "evening"]
MetricName = Literal["mood", "craving", "anxiety", "sleep"]

CHECK_IN_KINDS: tuple[str, ...] = ("morning", "evening")
PATTERN_METRICS: tuple[str, ...] = ("mood", "craving", "anxiety", "sleep")
RECORD_METRICS: tuple[str, ...] = ("mood", "craving", "anxiety", "sleep", "overallDay")

DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_DAILY_COST = 20.0


@dataclass(frozen=True)
class CheckInRecord:
    """One morning check-in or evening reflection on a local calendar day."""

    user_id: str
    calendar_day: date
    kind: CheckInKind
    captured_at: datetime
    metrics: dict[str, int] = field(default_factory=dict)

    def metric(self, name: str) -> int | None:
        return self.metrics.get(name)


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    sobriety_date: date | None = None
    timezone: str = DEFAULT_TIMEZONE
    daily_cost: float = DEFAULT_DAILY_COST


@dataclass(frozen=True)
class Milestone:
    threshold_days: int
    label: str
    icon: str = "calendar"

    def __post_init__(self) -> None:
        if self.threshold_days < 1:
            raise ValueError("threshold_days must be >= 1")


@dataclass(frozen=True)
class StreakRun:
    start_day: date
    end_day: date
    length: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_day": self.start_day.isoformat(),
            "end_day": self.end_day.isoformat(),
            "length": self.length,
        }


@dataclass(frozen=True)
class StreakResult:
    current_streak: int = 0
    longest_streak: int = 0
    all_runs: tuple[StreakRun, ...] = ()

    def notable_runs(self, min_length: int = 2) -> list[StreakRun]:
        """Runs of at least ``min_length`` days, longest (then most recent) first."""
        runs = [run for run in self.all_runs if run.length >= min_length]
        return sorted(runs, key=lambda run: (run.length, run.end_day), reverse=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "all_runs": [run.to_dict() for run in self.all_runs],
        }


@dataclass(frozen=True)
class ComplianceResult:
    category: str
    rate: int = 0
    window_days: int = 0
    qualifying_days: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "rate": self.rate,
            "window_days": self.window_days,
            "qualifying_days": self.qualifying_days,
        }


@dataclass(frozen=True)
class MilestoneProgress:
    achieved: bool
    progress_percentage: int
    sobriety_days: int
    next_threshold: Milestone | None = None
    days_until: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "achieved": self.achieved,
            "progress_percentage": self.progress_percentage,
            "sobriety_days": self.sobriety_days,
        }
        if self.next_threshold is not None:
            result["next_threshold"] = {
                "threshold_days": self.next_threshold.threshold_days,
                "label": self.next_threshold.label,
                "icon": self.next_threshold.icon,
            }
            result["days_until"] = self.days_until
        return result


@dataclass(frozen=True)
class PatternResult:
    metric_type: str
    message: str
    tips: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_type": self.metric_type,
            "message": self.message,
            "tips": list(self.tips),
        }
