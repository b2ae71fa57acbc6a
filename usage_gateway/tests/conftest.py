"""Shared test fixtures for the usage gateway.

The admin API is faked with ``httpx.MockTransport``: no network, no server
process. Routes are keyed by (method, path); every request is recorded so
tests can assert on headers and query parameters.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from admin_sdk.async_client import AsyncAdminClient
from usage_gateway.core.api.server import create_app
from usage_gateway.core.api.settings import Settings

BASE_URL = "http://admin.test"
TOKEN = "sess-token-123"


class FakeAdminApi:
    """In-memory stand-in for the admin API."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        path: str,
        body: Any = None,
        *,
        status: int = 200,
        method: str = "GET",
        raises: Optional[type] = None,
    ) -> None:
        """Register a canned response.

        ``body`` may be a callable taking the request and returning an
        ``httpx.Response``; ``raises`` an httpx exception class to raise.
        """
        self.routes[(method, path)] = (status, body, raises)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "no such route"})
        status, body, raises = route
        if raises is not None:
            raise raises("simulated failure", request=request)
        if callable(body):
            return body(request)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def client(self, **kwargs: Any) -> AsyncAdminClient:
        kwargs.setdefault("token", TOKEN)
        return AsyncAdminClient(base_url=BASE_URL, transport=self.transport, **kwargs)

    def run(self, fn: Callable[[AsyncAdminClient], Any], **client_kwargs: Any) -> Any:
        """Run ``fn(client)`` to completion inside a fresh event loop."""

        async def go():
            async with self.client(**client_kwargs) as client:
                return await fn(client)

        return asyncio.run(go())


def package_routes(
    upstream: FakeAdminApi,
    package_id: str,
    revisions: List[Dict[str, Any]],
    deployments: Dict[str, List[Dict[str, Any]]],
) -> None:
    """Register revision and deployment listings for one package."""
    base = f"/api/v1/functions/packages/{package_id}/revisions"
    upstream.add(base, {"revisions": revisions})
    for revision_id, items in deployments.items():
        upstream.add(f"{base}/{revision_id}/deployments", {"deployments": items})


@pytest.fixture
def upstream() -> FakeAdminApi:
    return FakeAdminApi()


@pytest.fixture
def package_setup():
    return package_routes


@pytest.fixture
def settings() -> Settings:
    return Settings(upstream_url=BASE_URL)


@pytest.fixture
def client(upstream, settings):
    """FastAPI TestClient wired to the fake admin API."""
    return TestClient(create_app(settings, transport=upstream.transport))
