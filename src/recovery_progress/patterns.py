"""Heuristic pattern detection over recent check-in metrics.

Threshold rules, not trend statistics. Each metric is reduced to at most one
reading per local calendar day; days without a reading are skipped, never
treated as a low or high value.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from .models import CheckInRecord, PatternResult

logger = logging.getLogger(__name__)

PATTERN_WINDOW_DAYS = 31
PATTERN_SAMPLE_SIZE = 5
PATTERN_MIN_HITS = 3

HIGH_CONCERN_CUTOFF = 7
LOW_CONCERN_CUTOFF = 3


@dataclass(frozen=True)
class MetricRule:
    metric: str
    is_concerning: Callable[[int], bool]
    message: str
    tips: tuple[str, ...]


# Evaluation order is the priority order: the first metric that qualifies wins.
PATTERN_RULES: tuple[MetricRule, ...] = (
    MetricRule(
        metric="craving",
        is_concerning=lambda value: value >= HIGH_CONCERN_CUTOFF,
        message="Cravings have been running high lately. Time for extra support.",
        tips=(
            "Call your accountability partner today",
            "Use the 5-minute rule: delay for 5 minutes, then reassess",
            "Review your relapse prevention plan",
        ),
    ),
    MetricRule(
        metric="mood",
        is_concerning=lambda value: value <= LOW_CONCERN_CUTOFF,
        message="Your mood has been low on most recent check-ins. Let's address this.",
        tips=(
            "Consider reaching out to your coach today",
            "Review your coping strategies: what's working?",
            "Physical activity can help, take a walk today",
        ),
    ),
    MetricRule(
        metric="anxiety",
        is_concerning=lambda value: value >= HIGH_CONCERN_CUTOFF,
        message="Anxiety has been elevated on most recent check-ins.",
        tips=(
            "Practice a grounding exercise this evening",
            "Limit caffeine and social media today",
            "Connect with a supportive friend",
        ),
    ),
    MetricRule(
        metric="sleep",
        is_concerning=lambda value: value <= LOW_CONCERN_CUTOFF,
        message="Sleep quality has been poor on most recent check-ins.",
        tips=(
            "Keep a consistent bedtime this week",
            "Avoid screens for an hour before bed",
            "Mention sleep trouble at your next meeting",
        ),
    ),
)

_RULES_BY_METRIC: dict[str, MetricRule] = {rule.metric: rule for rule in PATTERN_RULES}

_WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)


def daily_readings(
    records: Iterable[CheckInRecord],
    metric: str,
    today: date,
    window_days: int = PATTERN_WINDOW_DAYS,
) -> list[tuple[date, int]]:
    """One reading per day inside the trailing window, oldest first.

    The morning value wins over the evening value on the same day.
    """
    window_start = today - timedelta(days=window_days - 1)
    by_day: dict[date, dict[str, int]] = defaultdict(dict)
    for record in records:
        if not window_start <= record.calendar_day <= today:
            continue
        value = record.metrics.get(metric)
        if value is None:
            continue
        by_day[record.calendar_day][record.kind] = value

    readings: list[tuple[date, int]] = []
    for day in sorted(by_day):
        kinds = by_day[day]
        readings.append((day, kinds["morning"] if "morning" in kinds else kinds["evening"]))
    return readings


def detect_metric_pattern(
    metric: str,
    readings: list[int],
    sample_size: int = PATTERN_SAMPLE_SIZE,
    min_hits: int = PATTERN_MIN_HITS,
) -> PatternResult | None:
    """Flag ``metric`` when ``min_hits`` of the last ``sample_size`` readings are concerning."""
    if sample_size <= 0 or min_hits <= 0:
        raise ValueError("sample_size and min_hits must be positive")
    rule = _RULES_BY_METRIC.get(metric)
    if rule is None:
        raise ValueError(f"Unknown pattern metric: {metric}")

    recent = readings[-sample_size:]
    hits = sum(1 for value in recent if rule.is_concerning(value))
    if hits < min_hits:
        return None
    return PatternResult(metric_type=rule.metric, message=rule.message, tips=rule.tips)


def detect_pattern(
    records: Iterable[CheckInRecord],
    today: date,
    window_days: int = PATTERN_WINDOW_DAYS,
    sample_size: int = PATTERN_SAMPLE_SIZE,
    min_hits: int = PATTERN_MIN_HITS,
) -> PatternResult | None:
    """The single highest-priority pattern, or None.

    Priority: craving, mood, anxiety, sleep.
    """
    records = list(records)
    for rule in PATTERN_RULES:
        readings = [value for _day, value in daily_readings(records, rule.metric, today, window_days)]
        result = detect_metric_pattern(rule.metric, readings, sample_size, min_hits)
        if result is not None:
            logger.debug("Pattern detected for %s over %d readings", rule.metric, len(readings))
            return result
    return None


@dataclass(frozen=True)
class WeekdayPattern:
    metric_type: str
    weekday: str
    average: float
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_type": self.metric_type,
            "weekday": self.weekday,
            "average": self.average,
            "message": self.message,
        }


def detect_weekday_pattern(
    records: Iterable[CheckInRecord],
    today: date,
    window_days: int = PATTERN_WINDOW_DAYS,
    min_days: int = 7,
    min_gap: float = 1.0,
) -> WeekdayPattern | None:
    """Find a weekday whose average stands out from the average of all weekdays.

    Checks, in order, the lowest-mood day, the highest-craving day and the
    highest-anxiety day; a day qualifies when it differs from the mean of the
    weekday averages by at least ``min_gap``.
    """
    checks = (
        ("mood", min, lambda day_avg, overall: overall - day_avg, "Your mood tends to dip on {day}s"),
        ("craving", max, lambda day_avg, overall: day_avg - overall, "Your cravings spike on {day}s"),
        ("anxiety", max, lambda day_avg, overall: day_avg - overall, "Your anxiety is higher on {day}s"),
    )
    records = list(records)
    for metric, pick, gap, template in checks:
        readings = daily_readings(records, metric, today, window_days)
        if len(readings) < min_days:
            continue
        by_weekday: dict[int, list[int]] = defaultdict(list)
        for day, value in readings:
            by_weekday[day.weekday()].append(value)
        averages = {wd: sum(values) / len(values) for wd, values in by_weekday.items()}
        overall = sum(averages.values()) / len(averages)
        # Ties resolve to the earliest weekday.
        weekday = pick(sorted(averages), key=lambda wd: averages[wd])
        if gap(averages[weekday], overall) >= min_gap:
            name = _WEEKDAY_NAMES[weekday]
            return WeekdayPattern(
                metric_type=metric,
                weekday=name,
                average=round(averages[weekday], 1),
                message=template.format(day=name),
            )
    return None


def detect_time_of_day_pattern(
    records: Iterable[CheckInRecord],
    today: date,
    window_days: int = 14,
    min_samples: int = 5,
    min_gap: float = 1.0,
) -> PatternResult | None:
    """Compare morning mood against evening overall-day ratings."""
    window_start = today - timedelta(days=window_days - 1)
    mornings: list[int] = []
    evenings: list[int] = []
    for record in records:
        if not window_start <= record.calendar_day <= today:
            continue
        if record.kind == "morning" and record.metrics.get("mood") is not None:
            mornings.append(record.metrics["mood"])
        elif record.kind == "evening" and record.metrics.get("overallDay") is not None:
            evenings.append(record.metrics["overallDay"])

    if len(mornings) < min_samples or len(evenings) < min_samples:
        return None

    difference = sum(mornings) / len(mornings) - sum(evenings) / len(evenings)
    if difference <= -min_gap:
        return PatternResult(
            metric_type="mood",
            message="Your mornings tend to be more challenging",
            tips=("Establish a consistent morning routine", "Plan something positive for each morning"),
        )
    if difference >= min_gap:
        return PatternResult(
            metric_type="mood",
            message="Your mood dips in the evenings",
            tips=("Avoid isolation in the evenings", "Practice evening reflection to process your day"),
        )
    return None
