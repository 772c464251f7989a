"""
Pricing backend HTTP client.

Shared request path for the branch directory and crash action clients:
auth header, JSON decoding and conversion of failures into
RemoteError / TransientNetworkError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from crash_console.core.errors import RemoteError, TransientNetworkError

logger = logging.getLogger(__name__)

_STATUS_MESSAGES: Dict[int, str] = {
    400: "Invalid request. Please check your data and try again.",
    401: "Your session has expired. Please sign in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
}
_SERVER_ERROR_MESSAGE = "A server error occurred. Please try again later."


def format_api_error(status_code: int, payload: Any = None) -> str:
    """Operator-facing message for a failed response."""
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str) and message.strip():
            return message.strip()

    if status_code in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status_code]
    if 500 <= status_code < 600:
        return _SERVER_ERROR_MESSAGE
    return f"Error {status_code}: An unexpected error occurred."


class PricingApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = (token or "").strip() or None
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def request_json(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=self._headers(), json=json)
        except httpx.TimeoutException as exc:
            logger.warning("Pricing API %s %s timed out: %s", method, url, exc)
            raise TransientNetworkError("The pricing service did not respond in time. Please try again.") from exc
        except httpx.TransportError as exc:
            logger.warning("Pricing API %s %s failed: %s", method, url, exc)
            raise TransientNetworkError() from exc
        except httpx.HTTPError as exc:
            # Decoding / protocol failures while reading the body
            logger.warning("Pricing API %s %s unreadable response: %s", method, url, exc)
            raise TransientNetworkError("The pricing service sent an unreadable response. Please try again.") from exc

        payload = self._decode(response)

        if not response.is_success:
            logger.warning(
                "Pricing API %s %s -> %s body=%s",
                method,
                url,
                response.status_code,
                (response.text or "")[:300],
            )
            raise RemoteError(
                format_api_error(response.status_code, payload),
                status_code=response.status_code,
                payload=payload,
            )

        if not isinstance(payload, dict):
            raise RemoteError("Unexpected response from the pricing service.", status_code=response.status_code)

        if payload.get("success") is False:
            raise RemoteError(
                format_api_error(response.status_code, payload),
                status_code=response.status_code,
                payload=payload,
            )

        return payload

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None
