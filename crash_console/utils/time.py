"""Time utilities (UTC)."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Backend timestamps without an offset are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_crash_time(dt: Optional[datetime]) -> str:
    if dt is None:
        return "N/A"
    return ensure_utc(dt).strftime("%Y-%m-%d %H:%M:%S")


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
