"""
Global crash broadcast: process-wide "is any branch crashing" state.

Owned service with an explicit init / refresh / dispose lifecycle. It is the
only writer of the GlobalCrashSnapshot; everything else reads it or
subscribes to changes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Tuple

from crash_console.core.errors import CrashConsoleError
from crash_console.domain.models import BranchSummary, GlobalCrashSnapshot
from crash_console.infrastructure.types import BranchDirectory
from crash_console.realtime.scheduler import ScheduledHandle, Scheduler
from crash_console.realtime.subscriber_registry import SubscriberRegistry
from crash_console.utils.time import utc_now

logger = logging.getLogger(__name__)

SNAPSHOT_TOPIC = "snapshot"


class GlobalCrashBroadcast:
    def __init__(
        self,
        directory: BranchDirectory,
        scheduler: Scheduler,
        poll_interval_seconds: float = 10.0,
        clock: Callable[[], Any] = utc_now,
    ):
        self._directory = directory
        self._scheduler = scheduler
        self._poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._snapshot = GlobalCrashSnapshot()
        self._registry = SubscriberRegistry()
        self._poll_handle: Optional[ScheduledHandle] = None
        self._inflight: Optional[asyncio.Future] = None
        self._rerun_requested = False
        self._disposed = False
        self.last_error: Optional[CrashConsoleError] = None

    # ------------------------------------------------------------------
    # READ SIDE
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> GlobalCrashSnapshot:
        return self._snapshot

    @property
    def is_any_branch_crashing(self) -> bool:
        return self._snapshot.is_any_branch_crashing

    @property
    def crashing_branches(self) -> Tuple[BranchSummary, ...]:
        return self._snapshot.crashing_branches

    def subscribe(self, handler: Callable[[GlobalCrashSnapshot], Any]) -> Callable[[], None]:
        return self._registry.subscribe(SNAPSHOT_TOPIC, handler)

    def subscriber_count(self) -> int:
        return self._registry.count(SNAPSHOT_TOPIC)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def init(self) -> None:
        if self._poll_handle is not None:
            return
        self._disposed = False
        self._poll_handle = self._scheduler.schedule_recurring(
            self._poll_interval_seconds,
            self.refresh,
            name="market-crash-broadcast",
        )
        logger.info("Market crash broadcast polling every %ss", self._poll_interval_seconds)
        await self.refresh()

    async def dispose(self) -> None:
        self._disposed = True
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            inflight.cancel()
            try:
                await inflight
            except asyncio.CancelledError:
                pass
        self._inflight = None
        self._registry.clear()

    async def refresh(self) -> None:
        """
        Re-fetch every branch and swap in a new snapshot.

        Only one round trip runs at a time. A caller arriving while one is in
        flight waits for a single trailing round trip, so it always observes
        state fetched after its call.
        """
        if self._disposed:
            return
        if self._inflight is not None and not self._inflight.done():
            self._rerun_requested = True
            if asyncio.current_task() is self._inflight:
                # Subscriber refreshing from inside publish; the loop picks up the rerun.
                return
            await asyncio.shield(self._inflight)
            return
        self._inflight = asyncio.ensure_future(self._refresh_until_settled())
        await asyncio.shield(self._inflight)

    async def _refresh_until_settled(self) -> None:
        while True:
            self._rerun_requested = False
            await self._fetch_and_apply()
            if not self._rerun_requested or self._disposed:
                return

    async def _fetch_and_apply(self) -> None:
        try:
            branches = await self._directory.list_branches()
        except CrashConsoleError as exc:
            self.last_error = exc
            logger.warning("Error checking market crash status: %s", exc)
            return

        previous = self._snapshot
        crashing = tuple(branch for branch in branches if branch.active)
        self._snapshot = GlobalCrashSnapshot(crashing_branches=crashing, last_update_time=self._clock())
        self.last_error = None

        if crashing != previous.crashing_branches:
            logger.info(
                "Market crash status changed: %d branch(es) crashing %s",
                len(crashing),
                sorted(self._snapshot.crashing_branch_ids),
            )
            await self._registry.publish(SNAPSHOT_TOPIC, self._snapshot)
