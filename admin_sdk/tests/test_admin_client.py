"""Tests for AsyncAdminClient.

Upstream is an httpx.MockTransport; no network.
"""

from __future__ import annotations

import asyncio
from typing import List

import httpx
import pytest

from admin_sdk import (
    ApiError,
    AsyncAdminClient,
    AuthError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
    UpstreamConnectionError,
    ValidationError,
)

BASE_URL = "http://admin.test"


def run_async(coro):
    """Helper to run async coroutine in sync test."""
    return asyncio.run(coro)


def _call(handler, fn, **client_kwargs):
    """Build a client over ``handler``, run ``fn(client)``, close the client."""

    async def go():
        transport = httpx.MockTransport(handler)
        async with AsyncAdminClient(base_url=BASE_URL, transport=transport, **client_kwargs) as c:
            return await fn(c)

    return run_async(go())


def _recording(response: httpx.Response, seen: List[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return response

    return handler


class TestClientBasics:
    def test_client_init(self) -> None:
        client = AsyncAdminClient(base_url="http://admin.test/", token="t", timeout=3.0)
        assert client._base_url == "http://admin.test"
        assert client.token == "t"
        assert client._timeout == 3.0
        assert client._retries == 0
        run_async(client.close())

    def test_context_manager(self) -> None:
        async def test_ctx():
            async with AsyncAdminClient(base_url=BASE_URL) as client:
                assert isinstance(client, AsyncAdminClient)
        run_async(test_ctx())


class TestHeaders:
    def test_session_and_delegation(self) -> None:
        client = AsyncAdminClient(token="tok", delegated_account_id=42)
        headers = client._headers()
        assert headers["X-Session-Token"] == "tok"
        assert headers["x-pn-delegated-account-id"] == "42"
        assert "X-Request-ID" in headers
        run_async(client.close())

    def test_no_credentials(self) -> None:
        client = AsyncAdminClient()
        headers = client._headers()
        assert "X-Session-Token" not in headers
        assert "x-pn-delegated-account-id" not in headers
        run_async(client.close())

    def test_empty_delegation_not_sent(self) -> None:
        client = AsyncAdminClient(token="tok", delegated_account_id="")
        assert "x-pn-delegated-account-id" not in client._headers()
        run_async(client.close())

    def test_request_id_propagated(self) -> None:
        seen: List[httpx.Request] = []
        _call(
            _recording(httpx.Response(200, json={}), seen),
            lambda c: c.get_keyset(1),
            token="tok", request_id="req-abc",
        )
        assert seen[0].headers["x-request-id"] == "req-abc"
        assert seen[0].headers["x-session-token"] == "tok"

    def test_extra_headers_merged(self) -> None:
        client = AsyncAdminClient(token="tok")
        headers = client._headers({"X-Custom": "v"})
        assert headers["X-Custom"] == "v"
        assert headers["X-Session-Token"] == "tok"
        run_async(client.close())


class TestErrorMapping:
    @pytest.mark.parametrize("status,error_cls", [
        (400, ValidationError),
        (401, AuthError),
        (403, ForbiddenError),
        (404, NotFoundError),
        (409, ApiError),
        (422, ValidationError),
        (429, RateLimitedError),
        (500, ServerError),
        (503, ServerError),
    ])
    def test_status_to_error(self, status, error_cls) -> None:
        handler = _recording(httpx.Response(status, json={"message": "nope"}), [])
        with pytest.raises(error_cls) as exc_info:
            _call(handler, lambda c: c.get_keyset(5))
        err = exc_info.value
        assert err.status_code == status
        assert err.detail == {"message": "nope"}
        assert "nope" in err.message
        assert "GET /api/key/5" in err.message

    def test_nested_error_message(self) -> None:
        handler = _recording(httpx.Response(400, json={"error": {"message": "bad owner"}}), [])
        with pytest.raises(ValidationError, match="bad owner"):
            _call(handler, lambda c: c.list_apps(1))

    def test_text_body_kept(self) -> None:
        handler = _recording(httpx.Response(502, text="Bad Gateway"), [])
        with pytest.raises(ServerError) as exc_info:
            _call(handler, lambda c: c.get_keyset(1))
        assert exc_info.value.detail == "Bad Gateway"

    def test_timeout_is_distinct(self) -> None:
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(RequestTimeoutError) as exc_info:
            _call(handler, lambda c: c.get_keyset(1))
        assert exc_info.value.status_code == 0
        assert "Timed out" in exc_info.value.message

    def test_connection_failure(self) -> None:
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamConnectionError) as exc_info:
            _call(handler, lambda c: c.get_keyset(1))
        assert exc_info.value.status_code == 0


class TestRetries:
    def test_no_retry_by_default(self) -> None:
        seen: List[httpx.Request] = []
        with pytest.raises(ServerError):
            _call(_recording(httpx.Response(500, json={}), seen), lambda c: c.get_keyset(1))
        assert len(seen) == 1

    def test_opt_in_retry_recovers(self) -> None:
        responses = [httpx.Response(503, json={}), httpx.Response(200, json={"result": {"id": 1}})]

        def handler(request):
            return responses.pop(0)

        body = _call(handler, lambda c: c.get_keyset(1), retries=2, retry_delay=0)
        assert body == {"result": {"id": 1}}

    def test_client_errors_never_retried(self) -> None:
        seen: List[httpx.Request] = []
        with pytest.raises(NotFoundError):
            _call(
                _recording(httpx.Response(404, json={}), seen),
                lambda c: c.get_keyset(1),
                retries=3, retry_delay=0,
            )
        assert len(seen) == 1

    def test_should_retry_classification(self) -> None:
        client = AsyncAdminClient()
        assert client._should_retry(429) is True
        assert client._should_retry(502) is True
        assert client._should_retry(401) is False
        assert client._should_retry(404) is False
        run_async(client.close())


class TestEndpointHelpers:
    def test_empty_body_is_empty_dict(self) -> None:
        body = _call(_recording(httpx.Response(200), []), lambda c: c.get_keyset(1))
        assert body == {}

    def test_login_posts_credentials(self) -> None:
        seen: List[httpx.Request] = []
        _call(
            _recording(httpx.Response(200, json={"result": {"token": "t"}}), seen),
            lambda c: c.login("a@b.co", "pw"),
        )
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/me"
        assert b'"email"' in seen[0].content

    def test_list_apps_params(self) -> None:
        seen: List[httpx.Request] = []
        _call(
            _recording(httpx.Response(200, json={"result": []}), seen),
            lambda c: c.list_apps(7, limit=50),
        )
        params = seen[0].url.params
        assert (params["owner_id"], params["limit"], params["search"]) == ("7", "50", "")

    def test_list_keys_params(self) -> None:
        seen: List[httpx.Request] = []
        _call(
            _recording(httpx.Response(200, json={"result": []}), seen),
            lambda c: c.list_keys(3),
        )
        params = seen[0].url.params
        assert (params["app_id"], params["page"], params["limit"]) == ("3", "1", "99")

    def test_usage_params(self) -> None:
        seen: List[httpx.Request] = []
        _call(
            _recording(httpx.Response(200, json={"usage": []}), seen),
            lambda c: c.get_usage("app", 9, start="2024-01-01", end="2024-01-31"),
        )
        params = seen[0].url.params
        assert params["app_id"] == "9"
        assert params["usageType"] == "transaction"
        assert params["file_format"] == "json"
        assert (params["start"], params["end"]) == ("2024-01-01", "2024-01-31")

    def test_usage_rejects_unknown_scope(self) -> None:
        with pytest.raises(ValueError, match="scope"):
            _call(
                _recording(httpx.Response(200, json={}), []),
                lambda c: c.get_usage("org", 9, start="a", end="b"),
            )

    def test_packages_parsed_and_malformed_skipped(self) -> None:
        body = {"packages": [{"id": "p1", "name": "one"}, {"name": "no-id"}, "junk"]}
        packages = _call(
            _recording(httpx.Response(200, json=body), []),
            lambda c: c.list_packages(),
        )
        assert [p.id for p in packages] == ["p1"]

    def test_deployments_accept_alias_fields(self) -> None:
        body = [{
            "id": "d1", "state": "RUNNING", "keyset_ref": {"id": "42"},
            "functions": [{
                "id": "fd-1", "function_revision_id": "f1",
                "name": "fn", "type": "on-request", "state": "RUNNING",
            }],
        }]
        deployments = _call(
            _recording(httpx.Response(200, json=body), []),
            lambda c: c.list_deployments("p1", "r1"),
        )
        d = deployments[0]
        assert d.targets(42)
        fd = d.function_deployments[0]
        assert (fd.function_revision_id, fd.function_name, fd.function_type) == ("f1", "fn", "on-request")

    def test_nullable_text_and_epoch_stamps_accepted(self) -> None:
        body = {"packages": [{"id": 1, "name": None}]}
        packages = _call(
            _recording(httpx.Response(200, json=body), []),
            lambda c: c.list_packages(),
        )
        assert [(p.id, p.name) for p in packages] == [(1, "")]

        body = [{"id": "d1", "state": None, "created_at": 1704067200, "keyset": {"id": 42}}]
        deployments = _call(
            _recording(httpx.Response(200, json=body), []),
            lambda c: c.list_deployments("p1", "r1"),
        )
        assert deployments[0].created_at == 1704067200
        assert not deployments[0].is_running
