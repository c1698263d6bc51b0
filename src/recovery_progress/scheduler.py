"""Local-midnight rollover scheduler.

One pending timer at a time. Each cycle re-derives the delay from the clock
and the user's timezone instead of repeating a fixed 24h period, so DST
transitions never make the rollover drift off midnight.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from .dates import local_today, ms_until_next_local_midnight, resolve_timezone

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_ARMED = "armed"

RolloverCallback = Callable[[], Any]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MidnightScheduler:
    """Fires ``on_rollover`` at every local midnight of ``timezone`` until cancelled.

    ``on_rollover`` may be a plain callable or a coroutine function. Errors it
    raises are logged and the scheduler re-arms regardless.
    """

    def __init__(
        self,
        on_rollover: RolloverCallback,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._on_rollover = on_rollover
        self._clock = clock
        self._timezone: str | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._inflight: asyncio.Task[Any] | None = None
        self.fire_count = 0

    @property
    def state(self) -> str:
        return STATE_ARMED if self._handle is not None else STATE_IDLE

    @property
    def timezone(self) -> str | None:
        return self._timezone

    def arm(self, timezone_name: str) -> int:
        """Schedule the next rollover; replaces any pending timer. Returns the delay in ms."""
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._timezone = resolve_timezone(timezone_name)
        now = self._clock()
        delay_ms = ms_until_next_local_midnight(now, self._timezone)
        self._handle = loop.call_later(delay_ms / 1000, self._fire)
        logger.debug(
            "Rollover armed for %s in %d ms (today=%s)",
            self._timezone,
            delay_ms,
            local_today(now, self._timezone),
        )
        return delay_ms

    def cancel(self) -> None:
        """Tear down: no callback runs after this returns."""
        self._cancel_timer()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._timezone = None

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        timezone_name = self._timezone
        if timezone_name is None:
            return
        self.fire_count += 1
        logger.info(
            "Local midnight rollover for %s",
            timezone_name,
            extra={"recovery_timezone": timezone_name, "recovery_rollovers": self.fire_count},
        )
        try:
            result = self._on_rollover()
        except Exception:
            logger.exception("Rollover callback failed")
        else:
            if inspect.isawaitable(result):
                self._inflight = asyncio.ensure_future(result)
                self._inflight.add_done_callback(self._log_inflight_failure)

        # The callback may have cancelled or re-armed the scheduler itself.
        if self._timezone is not None and self._handle is None:
            self.arm(self._timezone)

    @staticmethod
    def _log_inflight_failure(task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Rollover callback failed", exc_info=exc)
