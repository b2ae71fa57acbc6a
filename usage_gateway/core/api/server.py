"""Usage gateway HTTP server (FastAPI + uvicorn).

Every endpoint is a GET that takes its inputs as query parameters, calls
the admin API with the caller's session token and returns JSON. Required
parameters are checked before any upstream call.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException

from admin_sdk.async_client import AsyncAdminClient
from admin_sdk.errors import ApiError
from admin_sdk.utils import unwrap_items, unwrap_result
from usage_gateway import __version__
from usage_gateway.core.accounts import authenticate, search_accounts
from usage_gateway.core.api.errors import (
    generic_exception_handler,
    http_exception_handler,
    missing_parameter_handler,
    upstream_failure_handler,
    validation_exception_handler,
)
from usage_gateway.core.api.metrics import metrics
from usage_gateway.core.api.middleware import RequestIDMiddleware
from usage_gateway.core.api.models import (
    AccountSearchResponse,
    AppsResponse,
    EventsActionsResponse,
    FunctionsResponse,
    HealthResponse,
    LoginResponse,
    PingResponse,
    SessionInfo,
)
from usage_gateway.core.api.settings import (
    Settings,
    load_settings,
    print_startup_warnings,
    validate_host,
)
from usage_gateway.core.errors import ConfigError, MissingParameterError, UpstreamFailure
from usage_gateway.core.events_actions import normalize_events_actions
from usage_gateway.core.filters import filter_enabled
from usage_gateway.core.functions import aggregate_modules
from usage_gateway.core.usage import default_date_range, resolve_usage_scope

logger = logging.getLogger("usage_gateway.api")


def require(**params: Optional[str]) -> None:
    """Raise MissingParameterError naming every absent parameter."""
    missing = [name for name, value in params.items() if not value]
    if missing:
        raise MissingParameterError(f"Missing {' or '.join(missing)}")


def parse_keyset_id(keyid: str) -> int:
    try:
        return int(keyid)
    except (TypeError, ValueError):
        raise MissingParameterError(f"Invalid keyid: {keyid!r}")


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and return the FastAPI application.

    ``transport`` is handed to every upstream client; tests pass an
    ``httpx.MockTransport`` here.
    """
    if settings is None:
        settings = load_settings()

    docs_url = "/docs" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title="Usage Gateway",
        description="Account, keyset and feature-usage lookups over the admin API.",
        version=__version__,
        docs_url=docs_url,
        openapi_url=openapi_url,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.upstream_transport = transport

    # ── Normalized error envelope (always-on) ────────────────────
    app.add_exception_handler(MissingParameterError, missing_parameter_handler)
    app.add_exception_handler(UpstreamFailure, upstream_failure_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ── Middleware ────────────────────────────────────────────────
    # Starlette processes in reverse add order (last added = outermost).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["x-request-id"],
    )
    app.add_middleware(RequestIDMiddleware, log_format=settings.log_format)

    # ── Reset singletons for test isolation ──────────────────────
    metrics.reset()

    def admin_client(
        request: Request,
        token: Optional[str],
        accountid: Optional[str] = None,
    ) -> AsyncAdminClient:
        return AsyncAdminClient(
            base_url=settings.upstream_url,
            token=token,
            delegated_account_id=accountid or None,
            timeout=settings.upstream_timeout,
            request_id=getattr(request.state, "request_id", None),
            transport=app.state.upstream_transport,
        )

    # ── Routes ───────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }

    @app.get("/test", response_model=PingResponse)
    def ping() -> Dict[str, Any]:
        return {"status": "ok", "message": "Usage gateway is running"}

    @app.get("/metrics", response_class=PlainTextResponse)
    def get_metrics() -> str:
        return metrics.format_metrics()

    # ── Session ──────────────────────────────────────────────────

    @app.get("/login", response_model=LoginResponse)
    async def login(
        request: Request,
        username: Optional[str] = Query(None),
        password: Optional[str] = Query(None),
    ) -> LoginResponse:
        require(username=username, password=password)
        try:
            result = await authenticate(
                lambda token: admin_client(request, token), username, password
            )
        except ApiError as e:
            raise UpstreamFailure("Authentication failed", e)
        session = result.session
        return LoginResponse(
            session=SessionInfo(
                userid=session.user_id,
                token=session.token,
                accountid=session.account_id,
            ),
            accounts=result.accounts,
        )

    @app.get("/search-accounts", response_model=AccountSearchResponse)
    async def search_accounts_route(
        request: Request,
        email: Optional[str] = Query(None),
        token: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
    ) -> AccountSearchResponse:
        require(email=email, token=token)
        async with admin_client(request, token, accountid) as client:
            try:
                result = await search_accounts(client, email)
            except ApiError as e:
                raise UpstreamFailure("Failed to search accounts", e)
        return AccountSearchResponse(users=result.users, accounts=result.accounts)

    # ── Apps & keysets ───────────────────────────────────────────

    @app.get("/apps", response_model=AppsResponse)
    async def apps(
        request: Request,
        ownerid: Optional[str] = Query(None),
        token: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
    ) -> AppsResponse:
        require(ownerid=ownerid, token=token)
        async with admin_client(request, token, accountid) as client:
            try:
                body = await client.list_apps(ownerid, limit=settings.apps_limit)
            except ApiError as e:
                raise UpstreamFailure("Failed to fetch apps", e)
        enabled = filter_enabled(unwrap_items(body))
        return AppsResponse(result=enabled, total=len(enabled))

    @app.get("/keys")
    async def keys(
        request: Request,
        appid: Optional[str] = Query(None),
        token: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
    ) -> List[Dict[str, Any]]:
        require(appid=appid, token=token)
        async with admin_client(request, token, accountid) as client:
            try:
                body = await client.list_keys(appid, limit=settings.keys_limit)
            except ApiError as e:
                raise UpstreamFailure("Failed to fetch keys", e)
        return filter_enabled(unwrap_items(body))

    @app.get("/keyset-details")
    async def keyset_details(
        request: Request,
        keyid: Optional[str] = Query(None),
        token: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
    ) -> Any:
        require(keyid=keyid, token=token)
        async with admin_client(request, token, accountid) as client:
            try:
                body = await client.get_keyset(keyid)
            except ApiError as e:
                raise UpstreamFailure("Failed to fetch keyset details", e)
        return unwrap_result(body)

    @app.get("/key-usage")
    async def key_usage(
        request: Request,
        token: Optional[str] = Query(None),
        keyid: Optional[str] = Query(None),
        appid: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
    ) -> Any:
        require(token=token)
        scope, scope_id = resolve_usage_scope(keyid, appid, accountid)
        start, end = default_date_range(
            start, end, lookback_days=settings.usage_lookback_days
        )
        async with admin_client(request, token) as client:
            try:
                return await client.get_usage(scope, scope_id, start=start, end=end)
            except ApiError as e:
                raise UpstreamFailure("Failed to fetch usage", e)

    # ── Features ─────────────────────────────────────────────────

    @app.get("/functions", response_model=FunctionsResponse)
    async def functions(
        request: Request,
        keyid: Optional[str] = Query(None),
        token: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
    ) -> FunctionsResponse:
        require(keyid=keyid, token=token)
        keyset_id = parse_keyset_id(keyid)
        async with admin_client(request, token, accountid) as client:
            modules = await aggregate_modules(
                client,
                keyset_id,
                package_limit=settings.packages_limit,
                deployment_limit=settings.deployments_limit,
            )
        return FunctionsResponse(modules=modules)

    @app.get("/events-actions", response_model=EventsActionsResponse)
    async def events_actions(
        request: Request,
        token: Optional[str] = Query(None),
        subscribekey: Optional[str] = Query(None),
        accountid: Optional[str] = Query(None),
    ) -> EventsActionsResponse:
        require(token=token)
        if not subscribekey:
            return EventsActionsResponse()
        async with admin_client(request, token, accountid) as client:
            return await normalize_events_actions(
                client, subscribekey, limit=settings.listeners_limit
            )

    return app


def start_server(
    *,
    host: str = "127.0.0.1",
    port: int = 5050,
    allow_nonlocal: bool = False,
    reload: bool = False,
    settings: Optional[Settings] = None,
) -> None:
    """Validate host and settings, create app, and start uvicorn."""
    import uvicorn

    validate_host(host, allow_nonlocal)

    if settings is None:
        settings = load_settings(bind=host, port=port, allow_nonlocal=allow_nonlocal)

    errors = settings.validate()
    if errors:
        raise ConfigError("Invalid settings: " + "; ".join(errors))

    print_startup_warnings(settings)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s" if settings.log_format == "json"
        else "%(asctime)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logger.info("upstream_url=%s", settings.upstream_url)

    def app_factory() -> FastAPI:
        return create_app(settings)

    uvicorn.run(
        app_factory,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        factory=True,
    )
