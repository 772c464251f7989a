"""
PER-BRANCH CRASH WORKFLOW

One operator managing one selected branch: selection, live countdown,
confirmation-gated trigger / end, and re-synchronization of both the branch
view and the global broadcast after every mutation.

RULES:
- Branch state is only ever replaced with what the backend returns
  (no optimistic updates)
- Every failure becomes exactly one notification; nothing propagates
- No automatic retries
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from crash_console.core.errors import CrashConsoleError, RemoteError, ValidationError
from crash_console.domain.models import (
    BranchCrashState,
    BranchSummary,
    ConfirmationIntent,
    CrashTimerState,
    IntentKind,
    Notification,
    NotificationVariant,
)
from crash_console.domain.services.config_engine import CrashOptions
from crash_console.domain.services.confirmation_gate import CloseReason, ConfirmationGate
from crash_console.domain.services.crash_timer import CountdownTicker
from crash_console.domain.services.crash_views import (
    BranchStatusView,
    CrashHistoryEntry,
    build_crash_history,
    build_status_view,
)
from crash_console.infrastructure.types import BranchDirectory, NotificationSink, PricingService
from crash_console.realtime.crash_broadcast import GlobalCrashBroadcast
from crash_console.realtime.scheduler import Scheduler
from crash_console.realtime.subscriber_registry import SubscriberRegistry
from crash_console.utils.time import utc_now

logger = logging.getLogger(__name__)

BRANCH_TOPIC = "branch"
TIMER_TOPIC = "timer"


class BranchCrashWorkflow:
    def __init__(
        self,
        directory: BranchDirectory,
        pricing: PricingService,
        broadcast: GlobalCrashBroadcast,
        notifier: NotificationSink,
        scheduler: Scheduler,
        options: CrashOptions,
        gate: Optional[ConfirmationGate] = None,
        clock: Callable[[], datetime] = utc_now,
        tick_seconds: float = 1.0,
        expiry_recheck_seconds: float = 5.0,
    ):
        self._directory = directory
        self._pricing = pricing
        self._broadcast = broadcast
        self._notifier = notifier
        self._scheduler = scheduler
        self._options = options
        self._gate = gate or ConfirmationGate()
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._recheck_every = max(1, round(expiry_recheck_seconds / tick_seconds))

        self._registry = SubscriberRegistry()
        self._selected_branch_id: Optional[str] = None
        self._branch: Optional[BranchCrashState] = None
        self._ticker: Optional[CountdownTicker] = None
        # Bumped on every selection change; responses carrying an older value are dropped.
        self._selection_seq = 0
        self._loading = False
        self._reconciling = False

    # ------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------

    @property
    def selected_branch_id(self) -> Optional[str]:
        return self._selected_branch_id

    @property
    def branch(self) -> Optional[BranchCrashState]:
        return self._branch

    @property
    def timer(self) -> Optional[CrashTimerState]:
        return self._ticker.timer if self._ticker is not None else None

    @property
    def is_ticking(self) -> bool:
        return self._ticker is not None and self._ticker.running

    @property
    def is_crash_active(self) -> bool:
        return self._branch is not None and self._branch.active

    @property
    def loading(self) -> bool:
        return self._loading or self._gate.is_busy

    @property
    def gate(self) -> ConfirmationGate:
        return self._gate

    @property
    def options(self) -> CrashOptions:
        return self._options

    def subscribe(self, topic: str, handler: Callable[[Any], Any]) -> Callable[[], None]:
        """Topics: ``branch`` (BranchCrashState or None), ``timer`` (CrashTimerState)."""
        return self._registry.subscribe(topic, handler)

    def history(self) -> List[CrashHistoryEntry]:
        return build_crash_history(self._branch)

    def status_view(self) -> BranchStatusView:
        return build_status_view(self._branch, self.timer)

    # ------------------------------------------------------------------
    # SELECTION
    # ------------------------------------------------------------------

    async def load_branches(self) -> List[BranchSummary]:
        try:
            return await self._directory.list_branches()
        except CrashConsoleError as exc:
            self._notify_failure("Failed to load branches", exc)
            return []

    async def select_branch(self, branch_id: Optional[str]) -> Optional[BranchCrashState]:
        """
        Load the authoritative state of ``branch_id``. The countdown only
        starts once the fetch has completed; a failed fetch leaves no branch
        selected.
        """
        self._stop_ticker()
        self._gate.cancel()
        self._selection_seq += 1
        token = self._selection_seq
        self._branch = None

        if not branch_id:
            self._selected_branch_id = None
            await self._registry.publish(BRANCH_TOPIC, None)
            return None

        self._selected_branch_id = branch_id
        self._loading = True
        try:
            state = await self._directory.get_branch(branch_id)
        except CrashConsoleError as exc:
            if token != self._selection_seq:
                logger.debug("Dropping failed fetch for deselected branch %s", branch_id)
                return None
            self._selected_branch_id = None
            self._notify_failure("Failed to load branch", exc)
            await self._registry.publish(BRANCH_TOPIC, None)
            return None
        finally:
            if token == self._selection_seq:
                self._loading = False

        if token != self._selection_seq:
            logger.debug("Dropping late response for deselected branch %s", branch_id)
            return None

        await self._apply_branch(state)
        return state

    async def deselect(self) -> None:
        self._stop_ticker()
        self._selection_seq += 1
        self._selected_branch_id = None
        self._branch = None
        self._loading = False
        self._gate.cancel()
        await self._registry.publish(BRANCH_TOPIC, None)

    async def dispose(self) -> None:
        await self.deselect()
        self._gate.dispose()
        self._registry.clear()

    # ------------------------------------------------------------------
    # TRIGGER / END
    # ------------------------------------------------------------------

    def request_trigger(self, intensity_percent: int, duration_minutes: int) -> bool:
        try:
            branch = self._validate_trigger(intensity_percent, duration_minutes)
        except ValidationError as exc:
            self._notify_failure("Cannot trigger market crash", exc)
            return False

        duration_label = self._options.duration_label(duration_minutes)
        intent = ConfirmationIntent(
            kind=IntentKind.TRIGGER,
            payload={
                "branch_id": branch.branch_id,
                "intensity_percent": intensity_percent,
                "duration_minutes": duration_minutes,
            },
            execute=functools.partial(
                self._execute_trigger, branch.branch_id, intensity_percent, duration_minutes
            ),
            title="Trigger Market Crash",
            message=(
                f"Are you sure you want to trigger a market crash for {branch.name or 'this branch'}? "
                f"Prices will move {intensity_percent}% toward the floor price for {duration_label}. "
                "This action cannot be undone."
            ),
            confirm_text="Trigger Crash",
        )
        return self._gate.open(intent)

    def request_end(self) -> bool:
        try:
            branch = self._validate_end()
        except ValidationError as exc:
            self._notify_failure("Cannot end market crash", exc)
            return False

        intent = ConfirmationIntent(
            kind=IntentKind.END,
            payload={"branch_id": branch.branch_id},
            execute=functools.partial(self._execute_end, branch.branch_id),
            title="End Market Crash",
            message=(
                f"Are you sure you want to end the market crash for {branch.name or 'this branch'}? "
                "Prices will return to normal levels."
            ),
            confirm_text="End Crash",
        )
        return self._gate.open(intent)

    async def confirm(self) -> bool:
        return await self._gate.confirm()

    def cancel(self) -> bool:
        return self._gate.cancel(CloseReason.CANCELLED)

    def handle_key(self, key: str) -> bool:
        return self._gate.handle_key(key)

    def backdrop_click(self) -> bool:
        return self._gate.backdrop_click()

    def _require_branch(self) -> BranchCrashState:
        if self._selected_branch_id is None or self._branch is None:
            raise ValidationError("Please select a branch first.")
        if self._gate.is_busy:
            raise ValidationError("Another market crash action is still being processed.")
        return self._branch

    def _validate_trigger(self, intensity_percent: int, duration_minutes: int) -> BranchCrashState:
        branch = self._require_branch()
        if branch.active:
            raise ValidationError("A market crash is already active for this branch.")
        if not self._options.is_valid_intensity(intensity_percent):
            allowed = ", ".join(f"{v}%" for v in sorted(self._options.allowed_intensities))
            raise ValidationError(f"Crash intensity must be one of: {allowed}.")
        if not self._options.is_valid_duration(duration_minutes):
            allowed = ", ".join(str(v) for v in sorted(self._options.allowed_durations))
            raise ValidationError(f"Crash duration must be one of: {allowed} minutes.")
        return branch

    def _validate_end(self) -> BranchCrashState:
        branch = self._require_branch()
        if not branch.active:
            raise ValidationError("There is no active market crash for this branch.")
        return branch

    async def _execute_trigger(self, branch_id: str, intensity_percent: int, duration_minutes: int) -> None:
        logger.info(
            "Triggering market crash: branch=%s intensity=%s%% duration=%smin",
            branch_id,
            intensity_percent,
            duration_minutes,
        )
        try:
            result = await self._pricing.trigger_crash(branch_id, intensity_percent, duration_minutes)
        except CrashConsoleError as exc:
            await self._handle_mutation_failure("Failed to trigger market crash", exc)
            return

        description = result.message or (
            f"Market crash triggered for {self._options.duration_label(duration_minutes)} "
            f"at {intensity_percent}% intensity."
        )
        self._notify(Notification("Market Crash Triggered", description, NotificationVariant.SUCCESS))
        await self._resync()

    async def _execute_end(self, branch_id: str) -> None:
        logger.info("Ending market crash: branch=%s", branch_id)
        try:
            result = await self._pricing.end_crash(branch_id)
        except CrashConsoleError as exc:
            await self._handle_mutation_failure("Failed to end market crash", exc)
            return

        description = result.message or "Market crash ended successfully."
        if result.reset_count is not None:
            noun = "price" if result.reset_count == 1 else "prices"
            description = f"{description.rstrip('.')}. {result.reset_count} item {noun} reset to floor."
        self._notify(Notification("Market Crash Ended", description, NotificationVariant.SUCCESS))
        await self._resync()

    async def _handle_mutation_failure(self, title: str, exc: CrashConsoleError) -> None:
        self._notify_failure(title, exc)
        if isinstance(exc, RemoteError):
            # The backend answered, so its state may differ from ours
            # (e.g. another operator got there first); reconcile quietly.
            await self._reload_branch(quiet=True)
            await self._broadcast.refresh()

    async def _resync(self) -> None:
        await self._reload_branch(quiet=False)
        await self._broadcast.refresh()

    # ------------------------------------------------------------------
    # AUTHORITATIVE STATE
    # ------------------------------------------------------------------

    async def _reload_branch(self, quiet: bool) -> bool:
        branch_id = self._selected_branch_id
        if branch_id is None:
            return False
        token = self._selection_seq
        try:
            state = await self._directory.get_branch(branch_id)
        except CrashConsoleError as exc:
            if quiet:
                logger.warning("Branch %s refresh failed: %s", branch_id, exc)
            else:
                self._notify_failure("Failed to refresh branch", exc)
            return False
        if token != self._selection_seq:
            logger.debug("Dropping late refresh for deselected branch %s", branch_id)
            return False
        await self._apply_branch(state)
        return True

    async def _apply_branch(self, state: BranchCrashState) -> None:
        self._branch = state
        if state.active:
            if self._ticker is None:
                self._start_ticker(state)
            else:
                self._ticker.update_state(state)
        else:
            self._stop_ticker()
        await self._registry.publish(BRANCH_TOPIC, state)

    def _start_ticker(self, state: BranchCrashState) -> None:
        self._ticker = CountdownTicker(
            state,
            self._scheduler,
            clock=self._clock,
            on_tick=self._on_tick,
            on_expired=self._on_expired,
            interval_seconds=self._tick_seconds,
            recheck_every=self._recheck_every,
        )
        self._ticker.start()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    async def _on_tick(self, timer: CrashTimerState) -> None:
        await self._registry.publish(TIMER_TOPIC, timer)

    async def _on_expired(self, state: BranchCrashState) -> None:
        # Local clock says it is over; only the backend can confirm that.
        if self._reconciling:
            return
        self._reconciling = True
        try:
            logger.info("Countdown for branch %s reached zero; re-fetching", state.branch_id)
            if await self._reload_branch(quiet=True) and not self.is_crash_active:
                await self._broadcast.refresh()
        finally:
            self._reconciling = False

    # ------------------------------------------------------------------
    # NOTIFICATIONS
    # ------------------------------------------------------------------

    def _notify_failure(self, title: str, exc: CrashConsoleError) -> None:
        logger.warning("%s: %s", title, exc.message)
        self._notify(Notification(title, exc.message, NotificationVariant.DESTRUCTIVE))

    def _notify(self, notification: Notification) -> None:
        try:
            self._notifier.notify(notification)
        except Exception:
            logger.exception("Failed to deliver notification '%s'", notification.title)
