"""
Pricing Service client: trigger / end a branch market crash.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as SchemaValidationError

from crash_console.core.errors import RemoteError
from crash_console.domain.models import CrashActionResult
from crash_console.domain.schemas.branch import CrashActionResponse
from crash_console.infrastructure.pricing_api.client import PricingApiClient

logger = logging.getLogger(__name__)


class PricingServiceClient:
    def __init__(self, api: PricingApiClient):
        self._api = api

    async def trigger_crash(
        self, branch_id: str, intensity_percent: int, duration_minutes: int
    ) -> CrashActionResult:
        payload = await self._api.request_json(
            "POST",
            f"/branches/{branch_id}/market-crash",
            json={"percentage": intensity_percent, "duration": duration_minutes},
        )
        return self._parse(payload)

    async def end_crash(self, branch_id: str) -> CrashActionResult:
        payload = await self._api.request_json("POST", f"/branches/{branch_id}/market-crash/end")
        return self._parse(payload)

    @staticmethod
    def _parse(payload: dict) -> CrashActionResult:
        try:
            return CrashActionResponse.model_validate(payload).to_result()
        except SchemaValidationError as exc:
            logger.warning("Invalid crash action response: %s", exc)
            raise RemoteError("Unexpected response from the pricing service.") from exc
