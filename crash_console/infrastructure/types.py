"""
Collaborator protocols for type hints.
"""

from __future__ import annotations

from typing import List, Protocol

from crash_console.domain.models import (
    BranchCrashState,
    BranchSummary,
    CrashActionResult,
    Notification,
)


class BranchDirectory(Protocol):
    async def list_branches(self) -> List[BranchSummary]:
        ...

    async def get_branch(self, branch_id: str) -> BranchCrashState:
        ...


class PricingService(Protocol):
    async def trigger_crash(
        self, branch_id: str, intensity_percent: int, duration_minutes: int
    ) -> CrashActionResult:
        ...

    async def end_crash(self, branch_id: str) -> CrashActionResult:
        ...


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None:
        ...
