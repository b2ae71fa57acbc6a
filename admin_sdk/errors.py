"""Structured exceptions for the admin API client."""

from __future__ import annotations

from typing import Any, Optional


class ApiError(Exception):
    """Base exception for all admin API errors.

    ``status_code`` is the upstream HTTP status, or ``0`` when no response
    was received (timeouts, connection failures).
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        detail: Any = None,
        request_id: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.detail = detail
        self.request_id = request_id
        super().__init__(f"[{status_code}] {message}")


class AuthError(ApiError):
    """401 Unauthorized: missing, expired or invalid session token."""
    pass


class ForbiddenError(ApiError):
    """403 Forbidden: session may not act on this account."""
    pass


class ValidationError(ApiError):
    """400/422: upstream rejected the request parameters."""
    pass


class NotFoundError(ApiError):
    """404 Not Found: entity missing or feature not configured."""
    pass


class RateLimitedError(ApiError):
    """429 Too Many Requests."""
    pass


class ServerError(ApiError):
    """500+: upstream server-side error."""
    pass


class RequestTimeoutError(ApiError):
    """No response within the per-call timeout."""
    pass


class UpstreamConnectionError(ApiError):
    """Transport-level failure: DNS, refused connection, reset."""
    pass
