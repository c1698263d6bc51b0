"""Validation and normalization of raw store documents.

Check-in documents come in two shapes:

- current: ``{userId, calendarDay, kind, metrics, capturedAt}``
- legacy: ``{userId, createdAt, morningData, eveningData}``, one document per
  day holding both the morning check-in and the evening reflection.

Both are normalized into ``CheckInRecord``s. Malformed metric values are
dropped (the record survives); documents without a resolvable day or kind are
skipped. Neither case raises. Timestamps may also arrive as exported Firestore
``{seconds, nanoseconds}`` maps; they are coerced to aware UTC datetimes.
Assignment documents ``{userId, status, completedAt}`` reduce to the local days
with a completed assignment.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .dates import as_utc, local_date_for_timezone, parse_day_key, resolve_timezone
from .models import (
    DEFAULT_DAILY_COST,
    DEFAULT_TIMEZONE,
    RECORD_METRICS,
    CheckInRecord,
    UserProfile,
)
from .savings import resolve_daily_cost
from .utils import round_half_up

logger = logging.getLogger(__name__)

METRIC_MIN = 0
METRIC_MAX = 10

_METRIC_ALIASES: dict[str, tuple[str, ...]] = {
    "mood": ("mood",),
    "craving": ("craving", "cravings"),
    "anxiety": ("anxiety",),
    "sleep": ("sleep", "sleep_quality", "sleepquality"),
    "overallDay": ("overallday", "overall_day", "overall"),
}


def _normalized_non_empty(value: str, *, field_name: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


def parse_metric(value: Any) -> int | None:
    """Coerce a metric reading to an int on the 0-10 scale, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        raw = value.strip().replace(",", ".")
        if not raw:
            return None
        try:
            number = float(raw)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number):
        return None
    rounded = round_half_up(number)
    if rounded < METRIC_MIN or rounded > METRIC_MAX:
        return None
    return rounded


def normalize_metrics(raw: Mapping[str, Any] | None, *, source: str = "") -> dict[str, int]:
    """Map loosely-keyed metric payloads onto the canonical metric names."""
    if not raw:
        return {}
    keyed = {str(k).strip().lower(): v for k, v in raw.items() if isinstance(k, str)}
    metrics: dict[str, int] = {}
    for name in RECORD_METRICS:
        for alias in _METRIC_ALIASES[name]:
            if alias not in keyed:
                continue
            parsed = parse_metric(keyed[alias])
            if parsed is None:
                logger.warning("Dropping invalid %s value %r (%s)", name, keyed[alias], source)
            else:
                metrics[name] = parsed
            break
    return metrics


def coerce_timestamp(value: Any) -> Any:
    """Turn an exported Firestore ``{seconds, nanoseconds}`` map into an aware UTC datetime.

    The underscored ``_seconds``/``_nanoseconds`` spelling of the admin SDK is
    accepted too. Anything else is returned unchanged for pydantic to judge.
    """
    if not isinstance(value, Mapping):
        return value
    seconds = value.get("seconds", value.get("_seconds"))
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return value
    nanos = value.get("nanoseconds", value.get("_nanoseconds", 0))
    if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
        nanos = 0
    try:
        instant = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return value
    return instant + timedelta(microseconds=nanos // 1000)


class CheckInDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    kind: Literal["morning", "evening"]
    calendar_day: Any = Field(default=None, alias="calendarDay")
    captured_at: datetime | None = Field(default=None, alias="capturedAt")
    metrics: dict[str, Any] | None = None

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, value: str) -> str:
        return _normalized_non_empty(value, field_name="userId")

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("captured_at", mode="before")
    @classmethod
    def coerce_captured_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class LegacyCheckInDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    created_at: datetime = Field(alias="createdAt")
    morning_data: dict[str, Any] | None = Field(default=None, alias="morningData")
    evening_data: dict[str, Any] | None = Field(default=None, alias="eveningData")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, value: str) -> str:
        return _normalized_non_empty(value, field_name="userId")

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class ProfileDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    sobriety_date: Any = Field(default=None, alias="sobrietyDate")
    timezone: Any = None
    daily_cost: Any = Field(default=None, alias="dailyCost")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, value: str) -> str:
        return _normalized_non_empty(value, field_name="userId")

    @field_validator("sobriety_date", mode="before")
    @classmethod
    def coerce_sobriety_date(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class AssignmentDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    status: str = ""
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, value: str) -> str:
        return _normalized_non_empty(value, field_name="userId")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("completed_at", mode="before")
    @classmethod
    def coerce_completed_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)


def _describe(doc: Mapping[str, Any]) -> str:
    return str(doc.get("id") or doc.get("userId") or "<unknown>")


def _normalize_current(doc: Mapping[str, Any], timezone_name: str) -> list[CheckInRecord]:
    parsed = CheckInDocument.model_validate(doc)
    captured_at = as_utc(parsed.captured_at) if parsed.captured_at is not None else None

    day = parse_day_key(parsed.calendar_day)
    if day is None and captured_at is not None:
        day = local_date_for_timezone(captured_at, timezone_name)
    if day is None:
        logger.warning("Skipping check-in %s: no usable calendarDay or capturedAt", _describe(doc))
        return []
    if captured_at is None:
        captured_at = datetime.combine(day, time.min, tzinfo=timezone.utc)

    return [
        CheckInRecord(
            user_id=parsed.user_id,
            calendar_day=day,
            kind=parsed.kind,
            captured_at=captured_at,
            metrics=normalize_metrics(parsed.metrics, source=_describe(doc)),
        )
    ]


def _normalize_legacy(doc: Mapping[str, Any], timezone_name: str) -> list[CheckInRecord]:
    parsed = LegacyCheckInDocument.model_validate(doc)
    captured_at = as_utc(parsed.created_at)
    day = local_date_for_timezone(captured_at, timezone_name)
    records: list[CheckInRecord] = []
    for kind, payload in (("morning", parsed.morning_data), ("evening", parsed.evening_data)):
        if payload is None:
            continue
        records.append(
            CheckInRecord(
                user_id=parsed.user_id,
                calendar_day=day,
                kind=kind,
                captured_at=captured_at,
                metrics=normalize_metrics(payload, source=_describe(doc)),
            )
        )
    return records


def normalize_check_in_document(
    doc: Mapping[str, Any],
    timezone_name: str = DEFAULT_TIMEZONE,
) -> list[CheckInRecord]:
    """Normalize one raw document into zero, one or two records."""
    if not isinstance(doc, Mapping):
        logger.warning("Skipping check-in: expected a mapping, got %s", type(doc).__name__)
        return []
    timezone_name = resolve_timezone(timezone_name)
    try:
        if "morningData" in doc or "eveningData" in doc:
            return _normalize_legacy(doc, timezone_name)
        return _normalize_current(doc, timezone_name)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        logger.warning(
            "Skipping check-in %s: %s at %s",
            _describe(doc),
            first.get("msg", "validation failed"),
            ".".join(str(part) for part in first.get("loc", [])) or "document",
        )
        return []


def dedupe_latest(records: Iterable[CheckInRecord]) -> list[CheckInRecord]:
    """Keep the most recently captured record per ``(user, day, kind)``."""
    latest: dict[tuple[str, date, str], CheckInRecord] = {}
    for record in records:
        key = (record.user_id, record.calendar_day, record.kind)
        existing = latest.get(key)
        if existing is None or record.captured_at > existing.captured_at:
            latest[key] = record
    return sorted(latest.values(), key=lambda r: (r.calendar_day, r.kind, r.user_id))


def normalize_check_in_documents(
    docs: Iterable[Mapping[str, Any]],
    timezone_name: str = DEFAULT_TIMEZONE,
) -> list[CheckInRecord]:
    records: list[CheckInRecord] = []
    for doc in docs:
        records.extend(normalize_check_in_document(doc, timezone_name))
    return dedupe_latest(records)


def normalize_profile(
    doc: Mapping[str, Any],
    *,
    default_timezone: str = DEFAULT_TIMEZONE,
    default_daily_cost: float = DEFAULT_DAILY_COST,
) -> UserProfile | None:
    """Validate a profile document, applying timezone and daily-cost defaults."""
    try:
        parsed = ProfileDocument.model_validate(doc)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        logger.warning("Invalid profile document: %s", first.get("msg", "validation failed"))
        return None

    tz = resolve_timezone(parsed.timezone, default=resolve_timezone(default_timezone))
    raw_sobriety = parsed.sobriety_date
    if isinstance(raw_sobriety, datetime):
        sobriety_date = local_date_for_timezone(raw_sobriety, tz)
    else:
        sobriety_date = parse_day_key(raw_sobriety)
    if sobriety_date is None and raw_sobriety not in (None, ""):
        logger.warning("Ignoring malformed sobrietyDate %r for %s", raw_sobriety, parsed.user_id)

    return UserProfile(
        user_id=parsed.user_id,
        sobriety_date=sobriety_date,
        timezone=tz,
        daily_cost=resolve_daily_cost(parsed.daily_cost, default=default_daily_cost),
    )


def assignment_completion_days(
    docs: Iterable[Mapping[str, Any]],
    timezone_name: str = DEFAULT_TIMEZONE,
) -> list[date]:
    """Distinct local days with at least one completed assignment, oldest first.

    Invalid documents are skipped with a warning; pending assignments and
    completed ones without a ``completedAt`` are ignored.
    """
    timezone_name = resolve_timezone(timezone_name)
    days: set[date] = set()
    for doc in docs:
        if not isinstance(doc, Mapping):
            logger.warning("Skipping assignment: expected a mapping, got %s", type(doc).__name__)
            continue
        try:
            parsed = AssignmentDocument.model_validate(doc)
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            logger.warning(
                "Skipping assignment %s: %s at %s",
                _describe(doc),
                first.get("msg", "validation failed"),
                ".".join(str(part) for part in first.get("loc", [])) or "document",
            )
            continue
        if parsed.status != "completed" or parsed.completed_at is None:
            continue
        days.add(local_date_for_timezone(parsed.completed_at, timezone_name))
    return sorted(days)
