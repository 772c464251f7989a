"""
Error taxonomy for the market-crash console.

ValidationError       precondition not met, raised before any network call
RemoteError           backend answered with a failure or an unreadable body
TransientNetworkError request never completed (connect / read / timeout)
"""

from typing import Any, Optional


class CrashConsoleError(Exception):
    """Base error; ``message`` is always safe to show to an operator."""

    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CrashConsoleError):
    default_message = "The requested action is not allowed right now."


class RemoteError(CrashConsoleError):
    default_message = "The pricing service rejected the request."

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class TransientNetworkError(CrashConsoleError):
    default_message = "Network error. Please check your internet connection."
