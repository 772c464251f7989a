"""HTTP clients for the pricing backend (branch directory + crash actions)."""

from crash_console.infrastructure.pricing_api.client import PricingApiClient, format_api_error
from crash_console.infrastructure.pricing_api.branch_directory import BranchDirectoryClient
from crash_console.infrastructure.pricing_api.pricing_service import PricingServiceClient

__all__ = [
    "PricingApiClient",
    "format_api_error",
    "BranchDirectoryClient",
    "PricingServiceClient",
]
