"""Store collaborator boundary.

The engine never talks to a database directly; sessions go through a
``CheckInStore``. Every adapter returns records already normalized by
``ingest``, so the aggregators only ever see typed, deduplicated data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, Protocol

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from .dates import resolve_timezone
from .ingest import assignment_completion_days, normalize_check_in_documents, normalize_profile
from .models import DEFAULT_DAILY_COST, DEFAULT_TIMEZONE, CheckInRecord, UserProfile

logger = logging.getLogger(__name__)

DateRange = tuple[date, date]


class CheckInStore(Protocol):
    async def fetch_check_ins(
        self,
        user_id: str,
        kind: str | None = None,
        date_range: DateRange | None = None,
    ) -> list[CheckInRecord]: ...

    async def fetch_user_profile(self, user_id: str) -> UserProfile | None: ...

    async def fetch_assignment_completion_days(
        self, user_id: str, timezone_name: str
    ) -> list[date]: ...


def _filter_records(
    records: Iterable[CheckInRecord],
    kind: str | None,
    date_range: DateRange | None,
) -> list[CheckInRecord]:
    result = []
    for record in records:
        if kind is not None and record.kind != kind:
            continue
        if date_range is not None and not date_range[0] <= record.calendar_day <= date_range[1]:
            continue
        result.append(record)
    return result


class InMemoryCheckInStore:
    """Holds raw store documents in memory; used by the CLI and tests."""

    def __init__(
        self,
        check_ins: Iterable[Mapping[str, Any]] = (),
        profiles: Iterable[Mapping[str, Any]] = (),
        assignments: Iterable[Mapping[str, Any]] = (),
        *,
        default_timezone: str = DEFAULT_TIMEZONE,
        default_daily_cost: float = DEFAULT_DAILY_COST,
    ) -> None:
        self.check_ins: list[Mapping[str, Any]] = list(check_ins)
        self.profiles: dict[str, Mapping[str, Any]] = {
            str(doc.get("userId")): doc for doc in profiles
        }
        self.assignments: list[Mapping[str, Any]] = list(assignments)
        self.default_timezone = default_timezone
        self.default_daily_cost = default_daily_cost

    def _timezone_for(self, user_id: str) -> str:
        doc = self.profiles.get(user_id) or {}
        return resolve_timezone(doc.get("timezone"), default=self.default_timezone)

    async def fetch_check_ins(
        self,
        user_id: str,
        kind: str | None = None,
        date_range: DateRange | None = None,
    ) -> list[CheckInRecord]:
        docs = [doc for doc in self.check_ins if doc.get("userId") == user_id]
        records = normalize_check_in_documents(docs, self._timezone_for(user_id))
        return _filter_records(records, kind, date_range)

    async def fetch_user_profile(self, user_id: str) -> UserProfile | None:
        doc = self.profiles.get(user_id)
        if doc is None:
            return None
        return normalize_profile(
            doc,
            default_timezone=self.default_timezone,
            default_daily_cost=self.default_daily_cost,
        )

    async def fetch_assignment_completion_days(
        self, user_id: str, timezone_name: str
    ) -> list[date]:
        docs = [doc for doc in self.assignments if doc.get("userId") == user_id]
        return assignment_completion_days(docs, timezone_name)


class PostgresCheckInStore:
    """Reads check-ins, profiles and assignments from PostgreSQL."""

    def __init__(
        self,
        conn: psycopg.AsyncConnection[Any],
        *,
        default_timezone: str = DEFAULT_TIMEZONE,
        default_daily_cost: float = DEFAULT_DAILY_COST,
    ) -> None:
        self._conn = conn
        self.default_timezone = default_timezone
        self.default_daily_cost = default_daily_cost

    async def fetch_check_ins(
        self,
        user_id: str,
        kind: str | None = None,
        date_range: DateRange | None = None,
    ) -> list[CheckInRecord]:
        clauses = [sql.SQL("user_id = %s")]
        params: list[Any] = [user_id]
        if kind is not None:
            clauses.append(sql.SQL("kind = %s"))
            params.append(kind)
        if date_range is not None:
            clauses.append(sql.SQL("calendar_day BETWEEN %s AND %s"))
            params.extend(date_range)

        query = sql.SQL(
            """
            SELECT id, user_id, calendar_day, kind, metrics, captured_at
            FROM check_ins
            WHERE {where}
            ORDER BY calendar_day ASC, captured_at ASC
            """
        ).format(where=sql.SQL(" AND ").join(clauses))

        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, tuple(params))
            rows = await cur.fetchall()

        timezone_name = await self._timezone_for(user_id)
        docs = [
            {
                "id": str(row["id"]),
                "userId": row["user_id"],
                "calendarDay": row["calendar_day"],
                "kind": row["kind"],
                "metrics": row["metrics"] or {},
                "capturedAt": row["captured_at"],
            }
            for row in rows
        ]
        records = normalize_check_in_documents(docs, timezone_name)
        if len(records) < len(docs):
            logger.info(
                "Collapsed %d check-in rows into %d records for %s",
                len(docs),
                len(records),
                user_id,
                extra={"recovery_user_id": user_id},
            )
        return records

    async def _fetch_profile_row(self, user_id: str) -> dict[str, Any] | None:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT user_id, sobriety_date, timezone, daily_cost
                FROM user_profiles
                WHERE user_id = %s
                """,
                (user_id,),
            )
            return await cur.fetchone()

    async def _timezone_for(self, user_id: str) -> str:
        row = await self._fetch_profile_row(user_id)
        value = row["timezone"] if row else None
        return resolve_timezone(value, default=self.default_timezone)

    async def fetch_user_profile(self, user_id: str) -> UserProfile | None:
        row = await self._fetch_profile_row(user_id)
        if row is None:
            return None
        daily_cost = row["daily_cost"]
        return normalize_profile(
            {
                "userId": row["user_id"],
                "sobrietyDate": row["sobriety_date"],
                "timezone": row["timezone"],
                "dailyCost": float(daily_cost) if daily_cost is not None else None,
            },
            default_timezone=self.default_timezone,
            default_daily_cost=self.default_daily_cost,
        )

    async def fetch_assignment_completion_days(
        self, user_id: str, timezone_name: str
    ) -> list[date]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT completed_at
                FROM assignments
                WHERE user_id = %s
                  AND status = 'completed'
                  AND completed_at IS NOT NULL
                """,
                (user_id,),
            )
            rows = await cur.fetchall()
        return assignment_completion_days(
            (
                {"userId": user_id, "status": "completed", "completedAt": row["completed_at"]}
                for row in rows
            ),
            timezone_name,
        )
