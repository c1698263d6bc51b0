"""Per-user progress session.

A session owns everything long-lived for one signed-in user: the latest
snapshot, its listeners and the midnight scheduler. ``attach()`` starts it,
``detach()`` tears it down; nothing is shared between sessions, so two
sessions for the same user simply compute the same snapshot independently.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone
from typing import Any

from .config import Config
from .dates import local_today
from .milestones import DEFAULT_MILESTONES
from .models import CheckInRecord, Milestone, UserProfile
from .progress import ProgressSnapshot, build_snapshot
from .scheduler import STATE_ARMED, MidnightScheduler
from .store import CheckInStore

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[ProgressSnapshot], Any]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressSession:
    def __init__(
        self,
        store: CheckInStore,
        user_id: str,
        *,
        config: Config | None = None,
        milestones: Sequence[Milestone] = DEFAULT_MILESTONES,
        joined_on: date | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._config = config or Config()
        self._milestones = tuple(milestones)
        self._joined_on = joined_on
        self._clock = clock
        self._listeners: list[SnapshotListener] = []
        self._scheduler = MidnightScheduler(self.refresh, clock=clock)
        self.profile: UserProfile | None = None
        self.snapshot: ProgressSnapshot | None = None
        self.attached = False

    @property
    def scheduler(self) -> MidnightScheduler:
        return self._scheduler

    def add_listener(self, listener: SnapshotListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def attach(self) -> ProgressSnapshot:
        """Load the profile, compute the first snapshot and arm the rollover timer."""
        self.attached = True
        snapshot = await self.refresh()
        if self._scheduler.state != STATE_ARMED:
            logger.info(
                "No profile for %s; rollover scheduler stays idle",
                self.user_id,
                extra={"recovery_user_id": self.user_id},
            )
        return snapshot

    def detach(self) -> None:
        """Cancel the scheduler and drop listeners; no callbacks fire afterwards."""
        self.attached = False
        self._scheduler.cancel()
        self._listeners.clear()

    async def refresh(self) -> ProgressSnapshot:
        """Refetch from the store and recompute.

        Each store fetch fails on its own: a failed check-in fetch yields an
        empty record list, a failed assignment fetch only empties the
        assignment days. Failures are logged, never raised to the caller.
        """
        profile = await self._load_profile()
        effective = profile or UserProfile(
            user_id=self.user_id,
            timezone=self._config.default_timezone,
            daily_cost=self._config.default_daily_cost,
        )
        today = local_today(self._clock(), effective.timezone)

        records: list[CheckInRecord] = []
        try:
            records = await self._store.fetch_check_ins(self.user_id)
        except Exception as exc:
            logger.warning(
                "Check-in fetch failed for %s; using empty record list: %s",
                self.user_id,
                exc,
                extra={"recovery_user_id": self.user_id},
            )

        assignment_days: list[date] = []
        try:
            assignment_days = await self._store.fetch_assignment_completion_days(
                self.user_id, effective.timezone
            )
        except Exception as exc:
            logger.warning(
                "Assignment fetch failed for %s; using no completion days: %s",
                self.user_id,
                exc,
                extra={"recovery_user_id": self.user_id},
            )

        snapshot = build_snapshot(
            records,
            effective,
            today,
            milestones=self._milestones,
            compliance_window_days=self._config.compliance_window_days,
            pattern_window_days=self._config.pattern_window_days,
            assignment_days=assignment_days,
            joined_on=self._joined_on,
        )
        self.snapshot = snapshot
        if self.attached:
            self._sync_scheduler()
            self._notify(snapshot)
        return snapshot

    def _sync_scheduler(self) -> None:
        """Arm (or re-arm after a timezone change) once a profile is known."""
        if self.profile is None:
            return
        if (
            self._scheduler.state != STATE_ARMED
            or self._scheduler.timezone != self.profile.timezone
        ):
            self._scheduler.arm(self.profile.timezone)

    async def _load_profile(self) -> UserProfile | None:
        try:
            profile = await self._store.fetch_user_profile(self.user_id)
        except Exception as exc:
            logger.warning(
                "Profile fetch failed for %s: %s",
                self.user_id,
                exc,
                extra={"recovery_user_id": self.user_id},
            )
            return self.profile
        if profile is not None:
            self.profile = profile
        return self.profile

    def _notify(self, snapshot: ProgressSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")
