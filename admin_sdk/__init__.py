"""Admin API Python SDK: async client for the internal administrative API."""

from admin_sdk.async_client import AsyncAdminClient
from admin_sdk.errors import (
    ApiError,
    AuthError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
    UpstreamConnectionError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    "AsyncAdminClient",
    "ApiError",
    "AuthError",
    "ForbiddenError",
    "NotFoundError",
    "RateLimitedError",
    "RequestTimeoutError",
    "ServerError",
    "UpstreamConnectionError",
    "ValidationError",
]
