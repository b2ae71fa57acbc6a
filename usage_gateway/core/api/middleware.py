"""Request-ID middleware and structured request logging for the gateway.

Adds X-Request-ID to every response (reads from header or generates one),
including the 500 envelope for an exception no route handler caught.
Logs one compact line per request: request_id, method, path, query, status,
elapsed_ms. The query string is logged with session tokens and passwords
masked; bodies are never logged.
"""

from __future__ import annotations

import datetime
import json
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from admin_sdk.utils import generate_request_id
from usage_gateway.core.api.errors import generic_exception_handler
from usage_gateway.core.api.metrics import metrics
from usage_gateway.core.secrets import redact_query, safe_log_json

logger = logging.getLogger("usage_gateway.api")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach request ID, log metadata, update metrics counters."""

    def __init__(self, app, log_format: str = "text") -> None:
        super().__init__(app)
        self.log_format = log_format

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or generate_request_id()
        request.state.request_id = request_id

        metrics.inc_inflight()
        t0 = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await generic_exception_handler(request, exc)
        finally:
            metrics.dec_inflight()

        elapsed_ms = int((time.monotonic() - t0) * 1000)
        metrics.record_endpoint_request(
            request.url.path,
            request.method,
            elapsed_ms,
            is_error=response.status_code >= 400,
        )

        response.headers["x-request-id"] = request_id

        query = redact_query(request.url.query)
        if self.log_format == "json":
            log_event = safe_log_json({
                "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "level": "INFO",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": query,
                "status": response.status_code,
                "elapsed_ms": elapsed_ms,
            })
            logger.info(json.dumps(log_event, separators=(",", ":")))
        else:
            logger.info(
                "request_id=%s method=%s path=%s query=%s status=%d elapsed_ms=%d",
                request_id,
                request.method,
                request.url.path,
                query or "-",
                response.status_code,
                elapsed_ms,
            )

        return response
