"""
Read-only views derived from the loaded branch state: the status panel and
the crash history row. Only the most recent crash window per branch exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from crash_console.domain.models import BranchCrashState, CrashTimerState
from crash_console.domain.services.crash_timer import format_remaining
from crash_console.utils.time import format_crash_time


class BranchStatus(str, Enum):
    NO_BRANCH = "no_branch"
    ACTIVE = "active"
    STABLE = "stable"


@dataclass(frozen=True)
class CrashHistoryEntry:
    started_at: datetime
    started_label: str
    duration_label: str
    status: str
    intensity_percent: Optional[int] = None


@dataclass(frozen=True)
class BranchStatusView:
    status: BranchStatus
    branch_name: Optional[str] = None
    started_label: Optional[str] = None
    duration_minutes: Optional[int] = None
    time_remaining: Optional[str] = None
    last_crash_ended_label: Optional[str] = None


def format_minutes(minutes: int) -> str:
    if minutes < 1:
        return "less than a minute"
    hours, rest = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if rest:
        parts.append(f"{rest} minute{'s' if rest != 1 else ''}")
    return " ".join(parts)


def calculate_crash_duration(start_time: Optional[datetime], end_time: Optional[datetime]) -> str:
    if start_time is None or end_time is None:
        return "Unknown"
    seconds = max(0.0, (end_time - start_time).total_seconds())
    return format_minutes(int(round(seconds / 60)))


def build_crash_history(branch: Optional[BranchCrashState]) -> List[CrashHistoryEntry]:
    if branch is None or branch.start_time is None:
        return []
    return [
        CrashHistoryEntry(
            started_at=branch.start_time,
            started_label=format_crash_time(branch.start_time),
            duration_label=calculate_crash_duration(branch.start_time, branch.effective_end_time),
            status="Active" if branch.active else "Ended",
            intensity_percent=branch.intensity_percent,
        )
    ]


def build_status_view(
    branch: Optional[BranchCrashState],
    timer: Optional[CrashTimerState],
) -> BranchStatusView:
    if branch is None:
        return BranchStatusView(status=BranchStatus.NO_BRANCH)

    if branch.active:
        return BranchStatusView(
            status=BranchStatus.ACTIVE,
            branch_name=branch.name,
            started_label=format_crash_time(branch.start_time),
            duration_minutes=branch.duration_minutes,
            time_remaining=format_remaining(timer.remaining_seconds) if timer is not None else None,
        )

    return BranchStatusView(
        status=BranchStatus.STABLE,
        branch_name=branch.name,
        last_crash_ended_label=format_crash_time(branch.end_time) if branch.end_time else None,
    )
