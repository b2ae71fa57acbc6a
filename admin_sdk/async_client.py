"""AsyncAdminClient: asynchronous client for the internal admin API.

Requires: pip install httpx
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from admin_sdk.auth import build_session_headers
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
from admin_sdk.models import Deployment, EventListener, Package, Revision
from admin_sdk.utils import generate_request_id, unwrap_items

logger = logging.getLogger("admin_sdk")

M = TypeVar("M", bound=BaseModel)

DEFAULT_BASE_URL = "https://internal-admin.pubnub.com"

# Status codes that warrant a retry (only when the caller opts in)
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
# Status codes that should NOT be retried
NON_RETRYABLE_STATUS_CODES = {400, 401, 403, 404, 422}

USAGE_SCOPES = ("key", "app", "account")


class AsyncAdminClient:
    """Asynchronous client for the admin API.

    One instance carries one session token and, optionally, one delegated
    account id; both are attached to every request. Retries are off by
    default: retry policy belongs to the caller.

    Usage::

        import asyncio
        from admin_sdk import AsyncAdminClient

        async def main():
            async with AsyncAdminClient(token="...", delegated_account_id=42) as c:
                packages = await c.list_packages()
                print([p.name for p in packages])

        asyncio.run(main())
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        delegated_account_id: Optional[Union[int, str]] = None,
        timeout: float = 10.0,
        retries: int = 0,
        retry_delay: float = 0.5,
        retry_backoff: float = 2.0,
        request_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize async client.

        Args:
            base_url: Admin API base URL
            token: Session token sent as X-Session-Token
            delegated_account_id: Account to act on behalf of (ghosting)
            timeout: Default per-call timeout in seconds
            retries: Number of retries for retryable errors (429, 5xx, transport)
            retry_delay: Initial delay between retries (seconds)
            retry_backoff: Backoff multiplier for retries
            request_id: X-Request-ID to propagate; generated per call if unset
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._delegated_account_id = delegated_account_id
        self._timeout = timeout
        self._retries = retries
        self._retry_delay = retry_delay
        self._retry_backoff = retry_backoff
        self._request_id = request_id
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=transport
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def delegated_account_id(self) -> Optional[Union[int, str]]:
        return self._delegated_account_id

    # ── Internal helpers ─────────────────────────────────────────

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        headers.update(build_session_headers(self._token, self._delegated_account_id))
        if extra:
            headers.update(extra)
        if "x-request-id" not in {k.lower() for k in headers}:
            headers["X-Request-ID"] = self._request_id or generate_request_id()
        return headers

    def _should_retry(self, status_code: int) -> bool:
        """Determine if a request should be retried based on status code."""
        if status_code in NON_RETRYABLE_STATUS_CODES:
            return False
        return status_code in RETRYABLE_STATUS_CODES

    def _raise_for_status(self, resp: httpx.Response, endpoint: str) -> None:
        """Raise appropriate exception based on status code."""
        if resp.status_code < 400:
            return
        raise self._create_error_from_response(resp, endpoint)

    def _create_error_from_response(self, resp: httpx.Response, endpoint: str) -> ApiError:
        """Create appropriate error from response without raising."""
        request_id = resp.headers.get("x-request-id")
        try:
            body = resp.json()
        except ValueError:
            body = resp.text

        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict):
                message = err.get("message", str(body))
            else:
                message = body.get("message") or err or body.get("detail") or str(body)
        else:
            message = str(body)

        full_message = f"{message} (endpoint: {endpoint})"

        status = resp.status_code
        if status == 401:
            return AuthError(status, full_message, body, request_id)
        if status == 403:
            return ForbiddenError(status, full_message, body, request_id)
        if status == 404:
            return NotFoundError(status, full_message, body, request_id)
        if status in (400, 422):
            return ValidationError(status, full_message, body, request_id)
        if status == 429:
            return RateLimitedError(status, full_message, body, request_id)
        if status >= 500:
            return ServerError(status, full_message, body, request_id)
        return ApiError(status, full_message, body, request_id)

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make HTTP request, retrying only when the caller configured retries.

        Retries on 429, 5xx and transport errors with exponential backoff.
        Does NOT retry on 4xx client errors.
        """
        endpoint = f"{method} {path}"
        headers = self._headers(kwargs.pop("headers", None))
        if kwargs.get("timeout") is None:
            kwargs.pop("timeout", None)

        delay = self._retry_delay

        for attempt in range(self._retries + 1):
            try:
                resp = await self._client.request(method, path, headers=headers, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < self._retries:
                    await asyncio.sleep(delay)
                    delay *= self._retry_backoff
                    continue
                timeout = kwargs.get("timeout", self._timeout)
                raise RequestTimeoutError(
                    0, f"Timed out after {timeout}s (endpoint: {endpoint})", str(e), None
                ) from e
            except httpx.TransportError as e:
                if attempt < self._retries:
                    await asyncio.sleep(delay)
                    delay *= self._retry_backoff
                    continue
                raise UpstreamConnectionError(
                    0, f"Network error: {e} (endpoint: {endpoint})", str(e), None
                ) from e

            if resp.status_code >= 400 and attempt < self._retries:
                if self._should_retry(resp.status_code):
                    logger.debug("retrying %s after status %d", endpoint, resp.status_code)
                    await asyncio.sleep(delay)
                    delay *= self._retry_backoff
                    continue

            self._raise_for_status(resp, endpoint)
            return resp

        raise ServerError(0, f"Request failed after {self._retries} retries (endpoint: {endpoint})")

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return resp.text

    @staticmethod
    def _parse_list(model: Type[M], body: Any) -> List[M]:
        """Parse every well-formed record; malformed ones are skipped."""
        records: List[M] = []
        for item in unwrap_items(body):
            try:
                records.append(model.model_validate(item))
            except ModelValidationError as e:
                logger.debug("skipping malformed %s record: %s", model.__name__, e)
        return records

    # ── Generic request ──────────────────────────────────────────

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Issue one request and return the parsed JSON body.

        Raises an ApiError subclass on status >= 400, RequestTimeoutError when
        no response arrives within ``timeout`` (or the client default), and
        UpstreamConnectionError on transport failures.
        """
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": timeout}
        if params is not None:
            kwargs["params"] = params
        if json is not None:
            kwargs["json"] = json
        resp = await self._request_with_retry(method.upper(), path, **kwargs)
        return self._json(resp)

    async def _get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def _post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    # ── Session & accounts ───────────────────────────────────────

    async def login(self, email: str, password: str) -> Any:
        """POST /api/me: exchange credentials for a session token."""
        return await self._post("/api/me", json={"email": email, "password": password})

    async def list_accounts(self, user_id: Union[int, str]) -> Any:
        """GET /api/accounts?user_id="""
        return await self._get("/api/accounts", params={"user_id": user_id})

    async def search_users(self, query: str) -> Any:
        """GET /api/users?search="""
        return await self._get("/api/users", params={"search": query})

    # ── Apps & keysets ───────────────────────────────────────────

    async def list_apps(self, owner_id: Union[int, str], *, limit: int = 1000) -> Any:
        """GET /api/apps-simplified"""
        params = {"owner_id": owner_id, "limit": limit, "search": ""}
        return await self._get("/api/apps-simplified", params=params)

    async def list_keys(self, app_id: Union[int, str], *, page: int = 1, limit: int = 99) -> Any:
        """GET /api/app/keys"""
        params = {"app_id": app_id, "page": page, "limit": limit}
        return await self._get("/api/app/keys", params=params)

    async def get_keyset(self, key_id: Union[int, str]) -> Any:
        """GET /api/key/{key_id}"""
        return await self._get(f"/api/key/{key_id}")

    async def get_usage(
        self,
        scope: str,
        scope_id: Union[int, str],
        *,
        start: str,
        end: str,
    ) -> Any:
        """GET /api/v4/services/usage/legacy/usage for a key, app or account."""
        if scope not in USAGE_SCOPES:
            raise ValueError(f"Unsupported usage scope: {scope}")
        params = {
            f"{scope}_id": scope_id,
            "usageType": "transaction",
            "file_format": "json",
            "start": start,
            "end": end,
        }
        return await self._get("/api/v4/services/usage/legacy/usage", params=params)

    # ── Functions ────────────────────────────────────────────────

    async def list_packages(self, *, limit: int = 100) -> List[Package]:
        """GET /api/v1/functions/packages: one page at account scope."""
        body = await self._get("/api/v1/functions/packages", params={"limit": limit})
        return self._parse_list(Package, body)

    async def list_revisions(
        self, package_id: Union[int, str], *, limit: int = 1
    ) -> List[Revision]:
        """GET /api/v1/functions/packages/{id}/revisions, newest first."""
        body = await self._get(
            f"/api/v1/functions/packages/{package_id}/revisions",
            params={"sort": "-created_at", "limit": limit},
        )
        return self._parse_list(Revision, body)

    async def list_deployments(
        self,
        package_id: Union[int, str],
        revision_id: Union[int, str],
        *,
        limit: int = 100,
    ) -> List[Deployment]:
        """GET .../revisions/{rid}/deployments, newest first."""
        body = await self._get(
            f"/api/v1/functions/packages/{package_id}/revisions/{revision_id}/deployments",
            params={"sort": "-created_at", "limit": limit},
        )
        return self._parse_list(Deployment, body)

    # ── Events & Actions ─────────────────────────────────────────

    async def list_event_listeners(
        self, subscribe_key: str, *, limit: int = 100
    ) -> List[EventListener]:
        """GET /api/v1/events-actions/listeners: actions come embedded."""
        body = await self._get(
            "/api/v1/events-actions/listeners",
            params={"subscribe_key": subscribe_key, "limit": limit},
        )
        return self._parse_list(EventListener, body)

    # ── Context Manager ─────────────────────────────────────────

    async def __aenter__(self) -> "AsyncAdminClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
