"""
Branch Directory Accessor: read-only branch list / branch crash state.
"""

from __future__ import annotations

import logging
from typing import Any, List

from pydantic import ValidationError as SchemaValidationError

from crash_console.core.errors import RemoteError
from crash_console.domain.models import BranchCrashState, BranchSummary
from crash_console.domain.schemas.branch import BranchPayload
from crash_console.infrastructure.pricing_api.client import PricingApiClient

logger = logging.getLogger(__name__)


class BranchDirectoryClient:
    def __init__(self, api: PricingApiClient):
        self._api = api

    async def list_branches(self) -> List[BranchSummary]:
        payload = await self._api.request_json("GET", "/branches")
        data = payload.get("data")
        if not isinstance(data, list):
            raise RemoteError("Unexpected branch list from the pricing service.")
        return [self._parse(entry).to_summary() for entry in data]

    async def get_branch(self, branch_id: str) -> BranchCrashState:
        payload = await self._api.request_json("GET", f"/branches/{branch_id}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise RemoteError("Unexpected branch data from the pricing service.")
        return self._parse(data).to_state()

    @staticmethod
    def _parse(entry: Any) -> BranchPayload:
        try:
            return BranchPayload.model_validate(entry)
        except SchemaValidationError as exc:
            logger.warning("Invalid branch payload: %s", exc)
            raise RemoteError("Unexpected branch data from the pricing service.") from exc
