"""Streak calculation over per-day presence series.

A streak is a maximal run of consecutive calendar days with a qualifying
event. The current streak may end yesterday: a day is not "missed" until it
has fully elapsed.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from .models import CheckInRecord, StreakResult, StreakRun

GRACE_DAYS = 1


def find_runs(days: Iterable[date]) -> list[StreakRun]:
    """Group days into maximal runs of consecutive calendar days, oldest first."""
    unique_days = sorted(set(days))
    if not unique_days:
        return []

    runs: list[StreakRun] = []
    run_start = unique_days[0]
    run_end = unique_days[0]
    for day in unique_days[1:]:
        if (day - run_end).days == 1:
            run_end = day
            continue
        runs.append(StreakRun(run_start, run_end, (run_end - run_start).days + 1))
        run_start = day
        run_end = day
    runs.append(StreakRun(run_start, run_end, (run_end - run_start).days + 1))
    return runs


def current_streak(days: Iterable[date], today: date, grace_days: int = GRACE_DAYS) -> int:
    """Count consecutive days walking backward from today.

    When today has no event, the walk may start up to ``grace_days`` earlier
    (one day by default: yesterday still counts).
    """
    present = set(days)
    cursor = today
    for _ in range(grace_days):
        if cursor in present:
            break
        cursor -= timedelta(days=1)
    count = 0
    while cursor in present:
        count += 1
        cursor -= timedelta(days=1)
    return count


def compute_streaks(
    days: Iterable[date],
    today: date,
    grace_days: int = GRACE_DAYS,
) -> StreakResult:
    """Current streak, longest streak and every historical run.

    Days after ``today`` are ignored for the current streak but still form
    runs, since they are real entries in the log.
    """
    unique_days = set(days)
    if not unique_days:
        return StreakResult()

    runs = find_runs(unique_days)
    longest = max(run.length for run in runs)
    current = current_streak(unique_days, today, grace_days)
    return StreakResult(
        current_streak=current,
        longest_streak=max(longest, current),
        all_runs=tuple(runs),
    )


def days_for_kind(records: Iterable[CheckInRecord], kind: str) -> set[date]:
    return {record.calendar_day for record in records if record.kind == kind}


def streak_for_kind(
    records: Iterable[CheckInRecord],
    kind: str,
    today: date,
    grace_days: int = GRACE_DAYS,
) -> StreakResult:
    """Streak over one check-in kind: ``morning`` check-ins or ``evening`` reflections."""
    return compute_streaks(days_for_kind(records, kind), today, grace_days)
