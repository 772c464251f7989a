"""
DOMAIN MODELS - MARKET CRASH

Immutable structures for branch crash state, derived countdown state,
confirmation intents and the process-wide crash snapshot.
Pure domain logic only; no HTTP or service imports.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

from crash_console.utils.time import utc_now

DEFAULT_DURATION_MINUTES = 15


@dataclass(frozen=True)
class BranchSummary:
    """Entry of the branch list; enough to drive the global indicator."""
    branch_id: str
    name: str
    active: bool


@dataclass(frozen=True)
class BranchCrashState:
    """
    Authoritative crash record of one branch, mirrored from the backend.

    ``active`` implies ``start_time`` is set; ``end_time`` may be absent and
    is then derived from ``start_time + duration_minutes``.
    """
    branch_id: str
    name: str
    active: bool
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    intensity_percent: Optional[int] = None

    @property
    def effective_end_time(self) -> Optional[datetime]:
        if self.end_time is not None:
            return self.end_time
        if self.start_time is not None:
            return self.start_time + timedelta(minutes=self.duration_minutes)
        return None

    def to_summary(self) -> BranchSummary:
        return BranchSummary(branch_id=self.branch_id, name=self.name, active=self.active)


@dataclass(frozen=True)
class CrashTimerState:
    remaining_seconds: int
    expired: bool


class IntentKind(str, Enum):
    TRIGGER = "trigger"
    END = "end"


@dataclass(frozen=True)
class ConfirmationIntent:
    """
    An irreversible action waiting for operator confirmation.

    ``execute`` is only ever awaited by the confirmation gate.
    """
    kind: IntentKind
    payload: Dict[str, Any]
    execute: Callable[[], Awaitable[None]]
    title: str = "Confirm Action"
    message: str = "Are you sure you want to proceed?"
    confirm_text: str = "Confirm"
    cancel_text: str = "Cancel"


@dataclass(frozen=True)
class GlobalCrashSnapshot:
    crashing_branches: Tuple[BranchSummary, ...] = ()
    last_update_time: Optional[datetime] = None

    @property
    def is_any_branch_crashing(self) -> bool:
        return len(self.crashing_branches) > 0

    @property
    def crashing_branch_ids(self) -> FrozenSet[str]:
        return frozenset(branch.branch_id for branch in self.crashing_branches)


@dataclass(frozen=True)
class CrashActionResult:
    """Outcome of a trigger / end call as reported by the pricing service."""
    message: Optional[str]
    data: Any = None
    reset_count: Optional[int] = None


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    SUCCESS = "success"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = field(default_factory=utc_now)
