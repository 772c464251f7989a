from crash_console.domain.models.crash import (
    DEFAULT_DURATION_MINUTES,
    BranchCrashState,
    BranchSummary,
    ConfirmationIntent,
    CrashActionResult,
    CrashTimerState,
    GlobalCrashSnapshot,
    IntentKind,
    Notification,
    NotificationVariant,
)

__all__ = [
    "DEFAULT_DURATION_MINUTES",
    "BranchCrashState",
    "BranchSummary",
    "ConfirmationIntent",
    "CrashActionResult",
    "CrashTimerState",
    "GlobalCrashSnapshot",
    "IntentKind",
    "Notification",
    "NotificationVariant",
]
