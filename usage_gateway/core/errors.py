"""Gateway-side exceptions, mapped to HTTP responses in core.api.errors."""

from __future__ import annotations

from typing import Any, Optional

from admin_sdk.errors import ApiError


class MissingParameterError(Exception):
    """A required query parameter is absent or unusable. Surfaces as 400."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UpstreamFailure(Exception):
    """An admin API call failed in a way the caller must see.

    Carries the upstream status (0 when there was no response) and body.
    """

    def __init__(self, message: str, cause: ApiError) -> None:
        self.message = message
        self.cause = cause
        super().__init__(f"{message}: {cause.message}")

    @property
    def status_code(self) -> int:
        # No upstream status (timeout, connection failure) surfaces as 500.
        return self.cause.status_code or 500

    @property
    def details(self) -> Any:
        return self.cause.detail if self.cause.detail is not None else self.cause.message

    @property
    def upstream_request_id(self) -> Optional[str]:
        return self.cause.request_id


class ConfigError(Exception):
    """Configuration error with helpful message."""
    pass
