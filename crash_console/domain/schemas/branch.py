"""
Wire schemas for the pricing backend's branch and market-crash payloads.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crash_console.domain.models import (
    DEFAULT_DURATION_MINUTES,
    BranchCrashState,
    BranchSummary,
    CrashActionResult,
)
from crash_console.utils.time import ensure_utc


class BranchPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    name: Optional[str] = ""
    market_crash_active: Optional[bool] = Field(default=False, alias="marketCrashActive")
    market_crash_start_time: Optional[datetime] = Field(default=None, alias="marketCrashStartTime")
    market_crash_end_time: Optional[datetime] = Field(default=None, alias="marketCrashEndTime")
    market_crash_duration: Optional[int] = Field(default=None, alias="marketCrashDuration")
    market_crash_percentage: Optional[int] = Field(default=None, alias="marketCrashPercentage")

    @field_validator("name")
    @classmethod
    def _name_or_blank(cls, value: Optional[str]) -> str:
        return value or ""

    @field_validator("market_crash_start_time", "market_crash_end_time")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def to_state(self) -> BranchCrashState:
        return BranchCrashState(
            branch_id=self.id,
            name=self.name,
            active=bool(self.market_crash_active),
            start_time=self.market_crash_start_time,
            end_time=self.market_crash_end_time,
            duration_minutes=self.market_crash_duration or DEFAULT_DURATION_MINUTES,
            intensity_percent=self.market_crash_percentage,
        )

    def to_summary(self) -> BranchSummary:
        return BranchSummary(
            branch_id=self.id,
            name=self.name,
            active=bool(self.market_crash_active),
        )


class CrashActionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: Optional[bool] = None
    message: Optional[str] = None
    data: Any = None

    @property
    def reset_count(self) -> Optional[int]:
        if not isinstance(self.data, dict):
            return None
        value = self.data.get("resetCount")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def to_result(self) -> CrashActionResult:
        return CrashActionResult(message=self.message, data=self.data, reset_count=self.reset_count)
