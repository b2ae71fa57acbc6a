"""Normalized error envelope for the usage gateway.

Every API error follows:
    {"error": {"type": "<CODE>", "message": "<human readable>",
               "request_id": "<id>", "details": <upstream body, optional>}}

Stable error types:
    VALIDATION_ERROR, AUTH_ERROR, NOT_FOUND, RATE_LIMITED,
    UPSTREAM_ERROR, INTERNAL_ERROR
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse

from usage_gateway.core.api.metrics import metrics
from usage_gateway.core.errors import MissingParameterError, UpstreamFailure
from usage_gateway.core.secrets import redact_dict, redact_text

logger = logging.getLogger("usage_gateway.api")

_STATUS_TO_TYPE: Dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "AUTH_ERROR",
    403: "AUTH_ERROR",
    404: "NOT_FOUND",
    405: "VALIDATION_ERROR",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
}

_MISSING = object()


def make_error_envelope(
    error_type: str,
    message: str,
    request_id: Optional[str] = None,
    details: Any = _MISSING,
) -> Dict[str, Any]:
    """Build the standard error envelope dict."""
    error: Dict[str, Any] = {
        "type": error_type,
        "message": message,
        "request_id": request_id,
    }
    if details is not _MISSING:
        error["details"] = details
    return {"error": error}


async def missing_parameter_handler(
    request: Request, exc: MissingParameterError
) -> JSONResponse:
    """Required query parameter absent: 400 before any upstream call."""
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=400,
        content=make_error_envelope("VALIDATION_ERROR", exc.message, request_id),
    )


async def upstream_failure_handler(request: Request, exc: UpstreamFailure) -> JSONResponse:
    """Echo the upstream status and body; 500 when there was no response."""
    request_id = getattr(request.state, "request_id", None)
    status = exc.status_code
    metrics.inc_upstream_error(exc.cause.status_code)
    logger.warning(
        "upstream_failure request_id=%s path=%s status=%s error=%s",
        request_id or "?",
        request.url.path,
        exc.cause.status_code,
        redact_text(exc.cause.message),
    )
    details = exc.details
    details = redact_text(details) if isinstance(details, str) else redact_dict(details)
    error_type = _STATUS_TO_TYPE.get(status, "UPSTREAM_ERROR")
    return JSONResponse(
        status_code=status,
        content=make_error_envelope(error_type, exc.message, request_id, details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException to the normalized error envelope."""
    request_id = getattr(request.state, "request_id", None)
    error_type = _STATUS_TO_TYPE.get(exc.status_code, "INTERNAL_ERROR")

    if isinstance(exc.detail, dict):
        raw = exc.detail.get("error") or exc.detail.get("message") or exc.detail
        message = raw if isinstance(raw, str) else str(raw)
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=make_error_envelope(error_type, redact_text(message), request_id),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI parameter validation errors to a 400 envelope."""
    request_id = getattr(request.state, "request_id", None)
    errors = exc.errors()
    if errors:
        parts = []
        for err in errors:
            loc = " -> ".join(str(l) for l in err.get("loc", []))
            msg = err.get("msg", "")
            parts.append(f"{loc}: {msg}" if loc else msg)
        message = "; ".join(parts)
    else:
        message = str(exc)

    return JSONResponse(
        status_code=400,
        content=make_error_envelope("VALIDATION_ERROR", redact_text(message), request_id),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: return 500 with envelope."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception("unhandled_error request_id=%s path=%s", request_id or "?", request.url.path)
    return JSONResponse(
        status_code=500,
        content=make_error_envelope("INTERNAL_ERROR", "Internal server error.", request_id),
    )
