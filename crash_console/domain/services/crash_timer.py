"""
CRASH TIMER ENGINE

Live countdown for an active branch crash.

The remaining time is always recomputed from the authoritative end time, never
decremented locally, so missed or late ticks cannot accumulate drift.
"""

from __future__ import annotations

import inspect
import logging
import math
from datetime import datetime
from typing import Any, Callable, Optional

from crash_console.domain.models import BranchCrashState, CrashTimerState
from crash_console.realtime.scheduler import ScheduledHandle, Scheduler
from crash_console.utils.time import utc_now

logger = logging.getLogger(__name__)

_NOT_CRASHING = CrashTimerState(remaining_seconds=0, expired=True)


def compute_remaining(state: BranchCrashState, now: datetime) -> CrashTimerState:
    """
    Pure function of the branch state and the current instant.

    An inactive branch, or one with neither an end time nor a start time to
    derive it from, is reported as not crashing (0 seconds, expired).
    """
    if not state.active:
        return _NOT_CRASHING

    end_time = state.effective_end_time
    if end_time is None:
        return _NOT_CRASHING

    delta = (end_time - now).total_seconds()
    if delta <= 0:
        return _NOT_CRASHING
    return CrashTimerState(remaining_seconds=math.ceil(delta), expired=False)


def format_remaining(remaining_seconds: int) -> str:
    """``MM:SS``, or ``H:MM:SS`` from one hour up."""
    remaining_seconds = max(0, int(remaining_seconds))
    hours, rest = divmod(remaining_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class CountdownTicker:
    """
    Owns the recurring tick for one displayed branch.

    ``on_expired`` fires on the tick where the countdown reaches zero, then
    every ``recheck_every`` ticks for as long as the branch is still held as
    active (the backend has not confirmed the end yet).
    """

    def __init__(
        self,
        state: BranchCrashState,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = utc_now,
        on_tick: Optional[Callable[[CrashTimerState], Any]] = None,
        on_expired: Optional[Callable[[BranchCrashState], Any]] = None,
        interval_seconds: float = 1.0,
        recheck_every: int = 5,
    ):
        self._state = state
        self._scheduler = scheduler
        self._clock = clock
        self._on_tick = on_tick
        self._on_expired = on_expired
        self._interval_seconds = interval_seconds
        self._recheck_every = max(1, recheck_every)
        self._handle: Optional[ScheduledHandle] = None
        self._timer: Optional[CrashTimerState] = None
        self._expired_ticks = 0

    @property
    def state(self) -> BranchCrashState:
        return self._state

    @property
    def timer(self) -> Optional[CrashTimerState]:
        return self._timer

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def start(self) -> CrashTimerState:
        self._timer = compute_remaining(self._state, self._clock())
        if not self.running:
            self._handle = self._scheduler.schedule_recurring(
                self._interval_seconds,
                self.tick,
                name=f"crash-countdown:{self._state.branch_id}",
            )
        return self._timer

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def update_state(self, state: BranchCrashState) -> None:
        if state.effective_end_time != self._state.effective_end_time:
            self._expired_ticks = 0
        self._state = state
        self._timer = compute_remaining(state, self._clock())

    async def tick(self) -> None:
        timer = compute_remaining(self._state, self._clock())
        self._timer = timer
        if self._on_tick is not None:
            await _maybe_await(self._on_tick(timer))

        if not timer.expired:
            self._expired_ticks = 0
            return

        self._expired_ticks += 1
        if (self._expired_ticks - 1) % self._recheck_every != 0:
            return
        if self._on_expired is not None:
            logger.debug("Countdown for branch %s expired (tick %d)", self._state.branch_id, self._expired_ticks)
            await _maybe_await(self._on_expired(self._state))
