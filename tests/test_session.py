"""Tests for the per-user progress session lifecycle."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest

from recovery_progress.config import Config
from recovery_progress.models import UserProfile
from recovery_progress.scheduler import STATE_ARMED, STATE_IDLE
from recovery_progress.session import ProgressSession
from recovery_progress.store import InMemoryCheckInStore

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _clock():
    return NOW


def _store(**profile_overrides) -> InMemoryCheckInStore:
    profile = {"userId": "u1", "sobrietyDate": "2024-01-01", "timezone": "UTC", "dailyCost": 10}
    profile.update(profile_overrides)
    check_ins = [
        {"userId": "u1", "kind": "morning", "calendarDay": f"2024-01-{d:02d}", "metrics": {"mood": 7}}
        for d in (8, 9, 10)
    ]
    check_ins.append({"userId": "u2", "kind": "morning", "calendarDay": "2024-01-10"})
    assignments = [
        {"userId": "u1", "status": "completed", "completedAt": datetime(2024, 1, 9, 15, tzinfo=timezone.utc)},
        {"userId": "u1", "status": "pending", "completedAt": None},
    ]
    return InMemoryCheckInStore(check_ins, [profile], assignments)


class _FailingStore:
    """Profile lookups work; every record fetch raises."""

    async def fetch_user_profile(self, user_id):
        return UserProfile(user_id=user_id, sobriety_date=date(2024, 1, 1), timezone="UTC")

    async def fetch_check_ins(self, user_id, kind=None, date_range=None):
        raise ConnectionError("store offline")

    async def fetch_assignment_completion_days(self, user_id, timezone_name):
        return []


class _AssignmentOutageStore(InMemoryCheckInStore):
    """Check-ins and profiles load; the assignment fetch raises."""

    async def fetch_assignment_completion_days(self, user_id, timezone_name):
        raise ConnectionError("assignments offline")


@pytest.mark.asyncio
async def test_attach_computes_snapshot_and_arms_scheduler():
    session = ProgressSession(_store(), "u1", clock=_clock)
    snapshot = await session.attach()

    assert snapshot.today == date(2024, 1, 10)
    assert snapshot.sobriety_days == 10
    assert snapshot.money_saved == 100.0
    assert snapshot.check_in_streak.current_streak == 3
    assert snapshot.total_check_ins == 3
    assert snapshot.compliance["assignment"].qualifying_days == 1
    assert session.scheduler.state == STATE_ARMED
    assert session.scheduler.timezone == "UTC"

    session.detach()
    assert session.scheduler.state == STATE_IDLE


@pytest.mark.asyncio
async def test_listeners_receive_snapshots_until_detach():
    session = ProgressSession(_store(), "u1", clock=_clock)
    received = []
    session.add_listener(received.append)

    await session.attach()
    await session.refresh()
    assert len(received) == 2

    session.detach()
    await session.refresh()
    assert len(received) == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(caplog):
    session = ProgressSession(_store(), "u1", clock=_clock)
    received = []

    def broken(snapshot):
        raise ValueError("render failed")

    session.add_listener(broken)
    session.add_listener(received.append)
    await session.attach()

    assert len(received) == 1
    assert "Snapshot listener failed" in caplog.text
    session.detach()


@pytest.mark.asyncio
async def test_refresh_before_attach_does_not_arm():
    session = ProgressSession(_store(), "u1", clock=_clock)
    snapshot = await session.refresh()
    assert snapshot.sobriety_days == 10
    assert session.scheduler.state == STATE_IDLE


@pytest.mark.asyncio
async def test_store_failure_yields_zero_value_snapshot(caplog):
    session = ProgressSession(_FailingStore(), "u1", clock=_clock)
    snapshot = await session.attach()

    assert snapshot.sobriety_days == 10
    assert snapshot.check_in_streak.current_streak == 0
    assert snapshot.compliance["checkIn"].rate == 0
    assert snapshot.total_check_ins == 0
    assert "Check-in fetch failed" in caplog.text
    session.detach()


@pytest.mark.asyncio
async def test_missing_profile_keeps_scheduler_idle():
    session = ProgressSession(
        InMemoryCheckInStore(),
        "ghost",
        config=Config(default_timezone="Europe/Berlin"),
        clock=_clock,
    )
    snapshot = await session.attach()

    assert snapshot.sobriety_days == 0
    assert snapshot.timezone == "Europe/Berlin"
    assert snapshot.milestone.progress_percentage == 0
    assert session.scheduler.state == STATE_IDLE
    session.detach()


@pytest.mark.asyncio
async def test_timezone_change_rearms_scheduler():
    store = _store()
    session = ProgressSession(store, "u1", clock=_clock)
    await session.attach()
    assert session.scheduler.timezone == "UTC"

    store.profiles["u1"] = {**store.profiles["u1"], "timezone": "Asia/Tokyo"}
    await session.refresh()

    assert session.scheduler.timezone == "Asia/Tokyo"
    assert session.scheduler.state == STATE_ARMED
    session.detach()


@pytest.mark.asyncio
async def test_rollover_refreshes_and_notifies(monkeypatch):
    delays = iter([10])
    monkeypatch.setattr(
        "recovery_progress.scheduler.ms_until_next_local_midnight",
        lambda now, tz: next(delays, 60_000),
    )
    session = ProgressSession(_store(), "u1", clock=_clock)
    received = []
    session.add_listener(received.append)

    await session.attach()
    await asyncio.sleep(0.1)

    assert len(received) == 2
    assert session.scheduler.fire_count == 1
    assert session.scheduler.state == STATE_ARMED
    session.detach()


@pytest.mark.asyncio
async def test_removed_listener_is_not_notified():
    session = ProgressSession(_store(), "u1", clock=_clock)
    received = []
    session.add_listener(received.append)
    session.add_listener(received.append)
    session.remove_listener(received.append)

    await session.attach()
    assert received == []
    session.detach()


@pytest.mark.asyncio
async def test_string_completed_at_counts_toward_assignments():
    store = InMemoryCheckInStore(
        [
            {"userId": "u1", "kind": "morning", "calendarDay": "2024-01-09"},
            {"userId": "u1", "kind": "morning", "calendarDay": "2024-01-10"},
        ],
        [{"userId": "u1", "sobrietyDate": "2024-01-01", "timezone": "UTC"}],
        [{"userId": "u1", "status": "completed", "completedAt": "2024-01-09T15:00:00Z"}],
    )
    session = ProgressSession(store, "u1", clock=_clock)
    snapshot = await session.refresh()

    assert snapshot.check_in_streak.current_streak == 2
    assert snapshot.compliance["assignment"].qualifying_days == 1


@pytest.mark.asyncio
async def test_assignment_failure_keeps_check_ins(caplog):
    base = _store()
    store = _AssignmentOutageStore(base.check_ins, base.profiles.values(), base.assignments)
    session = ProgressSession(store, "u1", clock=_clock)
    snapshot = await session.refresh()

    assert snapshot.check_in_streak.current_streak == 3
    assert snapshot.total_check_ins == 3
    assert snapshot.compliance["assignment"].qualifying_days == 0
    assert "Assignment fetch failed" in caplog.text
    assert "Check-in fetch failed" not in caplog.text
