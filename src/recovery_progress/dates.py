"""Calendar-day arithmetic in the user's local timezone.

All day-level math runs on ``datetime.date`` values, which carry no clock time
and no UTC offset, so day differences are immune to DST transitions. Instants
are only projected into a timezone at the edges (record ingestion, "today",
midnight scheduling).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000


def normalize_timezone_name(value: Any) -> str | None:
    """Normalize a timezone preference and verify it's a valid IANA name."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.upper() == "UTC":
        return "UTC"
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return raw


def resolve_timezone(value: Any, default: str = DEFAULT_TIMEZONE) -> str:
    """Return a usable IANA name, falling back to ``default`` for absent/invalid input."""
    normalized = normalize_timezone_name(value)
    if normalized:
        return normalized
    if value not in (None, ""):
        logger.warning("Invalid timezone %r; falling back to %s", value, default)
    return default


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def local_date_for_timezone(ts: datetime, timezone_name: str) -> date:
    """Project an instant into its local calendar date (naive instants are UTC)."""
    return as_utc(ts).astimezone(ZoneInfo(resolve_timezone(timezone_name))).date()


def calendar_day_key(ts: datetime, timezone_name: str) -> str:
    """Map an instant to its ``YYYY-MM-DD`` key in ``timezone_name``."""
    return local_date_for_timezone(ts, timezone_name).isoformat()


def parse_day_key(value: Any) -> date | None:
    """Parse a ``YYYY-MM-DD`` key as a local calendar date.

    Accepts ``date`` objects as-is. Returns None for anything malformed; a
    missing day is "no data", not an error.
    """
    if isinstance(value, datetime):
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if len(raw) != 10:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def local_today(now: datetime | None, timezone_name: str) -> date:
    if now is None:
        now = datetime.now(timezone.utc)
    return local_date_for_timezone(now, timezone_name)


def day_range(end: date, days: int) -> list[date]:
    """The ``days`` calendar days ending at ``end`` (inclusive), oldest first."""
    if days <= 0:
        return []
    start = end - timedelta(days=days - 1)
    return [start + timedelta(days=offset) for offset in range(days)]


def sobriety_day_count(
    sobriety_date: Any,
    today: date | datetime,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> int:
    """Number of sober days, counting the sobriety date itself as day 1.

    ``sobriety_date`` is read as a local calendar date. A ``datetime`` ``today``
    is first projected into ``timezone_name``. Both endpoints are then plain
    calendar days, so the difference is whole days regardless of DST. Future
    sobriety dates clamp to 1; a missing or malformed one returns 0.
    """
    start = parse_day_key(sobriety_date)
    if start is None:
        return 0
    if isinstance(today, datetime):
        today = local_date_for_timezone(today, timezone_name)
    diff_days = today.toordinal() - start.toordinal()
    return max(1, diff_days + 1)


def ms_until_next_local_midnight(now: datetime, timezone_name: str) -> int:
    """Milliseconds from ``now`` to the next 00:00:00 in ``timezone_name``.

    ``now`` is truncated to whole seconds, so on an ordinary day this equals
    ``((23-h)*3600 + (59-m)*60 + (60-s)) * 1000``. The target midnight is
    resolved as an instant and differenced in UTC, so a DST shift before the
    next midnight lengthens or shortens the delay by the real amount.
    """
    tz = ZoneInfo(resolve_timezone(timezone_name))
    local_now = as_utc(now).astimezone(tz).replace(microsecond=0)
    next_day = local_now.date() + timedelta(days=1)
    next_midnight = datetime.combine(next_day, time(0, 0), tzinfo=tz)
    delta = as_utc(next_midnight) - as_utc(local_now)
    return max(0, int(delta.total_seconds()) * MS_PER_SECOND)
