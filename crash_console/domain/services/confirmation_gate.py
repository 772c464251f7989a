"""
CONFIRMATION GATE

Modal two-step confirmation in front of irreversible crash actions.

CLOSED -> OPEN        open(intent)
OPEN   -> OPEN        open(intent) again, last request wins
OPEN   -> CLOSED      cancel / escape key / backdrop click
OPEN   -> EXECUTING   confirm(); left synchronously, before the action runs
EXECUTING -> CLOSED   action settled (success or failure)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol

from crash_console.domain.models import ConfirmationIntent

logger = logging.getLogger(__name__)

ESCAPE_KEY = "Escape"


class GateState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    EXECUTING = "executing"


class CloseReason(str, Enum):
    CANCELLED = "cancelled"
    ESCAPE = "escape"
    BACKDROP = "backdrop"
    CONFIRMED = "confirmed"
    DISPOSED = "disposed"


class BackgroundLock(Protocol):
    """Suspends background interaction (scrolling) while the gate is up."""

    def suspend(self) -> None:
        ...

    def restore(self) -> None:
        ...


class NullBackgroundLock:
    def suspend(self) -> None:
        return None

    def restore(self) -> None:
        return None


class ConfirmationGate:
    def __init__(self, background_lock: Optional[BackgroundLock] = None):
        self._background = background_lock or NullBackgroundLock()
        self._state = GateState.CLOSED
        self._intent: Optional[ConfirmationIntent] = None
        self._last_close_reason: Optional[CloseReason] = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def intent(self) -> Optional[ConfirmationIntent]:
        return self._intent

    @property
    def is_open(self) -> bool:
        return self._state is GateState.OPEN

    @property
    def is_busy(self) -> bool:
        return self._state is GateState.EXECUTING

    @property
    def last_close_reason(self) -> Optional[CloseReason]:
        return self._last_close_reason

    def open(self, intent: ConfirmationIntent) -> bool:
        if self._state is GateState.EXECUTING:
            logger.info("Confirmation gate busy; ignoring %s request", intent.kind.value)
            return False
        if self._state is GateState.CLOSED:
            self._background.suspend()
        elif self._intent is not None:
            logger.debug("Replacing pending %s intent with %s", self._intent.kind.value, intent.kind.value)
        self._intent = intent
        self._state = GateState.OPEN
        return True

    async def confirm(self) -> bool:
        """
        Run the pending intent at most once. Never raises: a failing action is
        logged (actions report their own failures) and the gate still closes.
        """
        if self._state is not GateState.OPEN or self._intent is None:
            return False

        intent = self._intent
        self._intent = None
        self._state = GateState.EXECUTING
        try:
            await intent.execute()
        except Exception:
            logger.exception("Confirmed %s action raised", intent.kind.value)
        finally:
            self._close(CloseReason.CONFIRMED)
        return True

    def cancel(self, reason: CloseReason = CloseReason.CANCELLED) -> bool:
        if self._state is not GateState.OPEN:
            return False
        self._intent = None
        self._close(reason)
        return True

    def handle_key(self, key: str) -> bool:
        if key != ESCAPE_KEY:
            return False
        return self.cancel(CloseReason.ESCAPE)

    def backdrop_click(self) -> bool:
        return self.cancel(CloseReason.BACKDROP)

    def dispose(self) -> None:
        """Abnormal teardown: drop any intent and release the background."""
        self._intent = None
        self._close(CloseReason.DISPOSED)

    def _close(self, reason: CloseReason) -> None:
        if self._state is GateState.CLOSED:
            return
        self._state = GateState.CLOSED
        self._last_close_reason = reason
        self._background.restore()
