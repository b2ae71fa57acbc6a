"""Account inventory: accounts -> enabled apps -> enabled keysets.

Each keyset is annotated with how many function modules run on it and
how many event listeners / actions it has. Used by ``usage-gateway inspect``.
Feature lookups are best-effort, exactly as on the HTTP surface.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from admin_sdk.async_client import AsyncAdminClient
from admin_sdk.errors import ApiError
from admin_sdk.models import Package
from admin_sdk.utils import unwrap_items
from usage_gateway.core.accounts import LoginResult
from usage_gateway.core.api.models import AccountInventory, AppInventory, KeysetInventory
from usage_gateway.core.api.settings import Settings
from usage_gateway.core.events_actions import normalize_events_actions
from usage_gateway.core.filters import filter_enabled
from usage_gateway.core.functions import aggregate_modules, list_account_packages

logger = logging.getLogger("usage_gateway.inventory")

# Returns a client carrying the session token, delegated to the given account.
DelegatedClientFactory = Callable[[Any], AsyncAdminClient]


def _properties(record: Dict[str, Any]) -> Dict[str, Any]:
    props = record.get("properties")
    return props if isinstance(props, dict) else {}


def account_label(account: Dict[str, Any]) -> str:
    return str(_properties(account).get("company") or account.get("email") or account.get("id"))


def keyset_name(keyset: Dict[str, Any]) -> str:
    return str(_properties(keyset).get("name") or keyset.get("name") or "Unnamed")


async def inspect_keyset(
    client: AsyncAdminClient,
    keyset: Dict[str, Any],
    *,
    settings: Settings,
    packages: List[Package],
) -> Optional[KeysetInventory]:
    try:
        keyset_id = int(keyset.get("id"))
    except (TypeError, ValueError):
        logger.warning("inventory skipped keyset without integer id: %r", keyset.get("id"))
        return None

    subscribe_key = keyset.get("subscribe_key")
    modules, events = await asyncio.gather(
        aggregate_modules(
            client,
            keyset_id,
            package_limit=settings.packages_limit,
            deployment_limit=settings.deployments_limit,
            packages=packages,
        ),
        normalize_events_actions(client, subscribe_key, limit=settings.listeners_limit),
    )
    return KeysetInventory(
        id=keyset_id,
        name=keyset_name(keyset),
        subscribe_key=subscribe_key,
        function_modules=len(modules),
        running_functions=sum(1 for m in modules for f in m.functions if f.enabled),
        listeners=len(events.listeners),
        actions=len(events.actions),
    )


async def inspect_app(
    client: AsyncAdminClient,
    app: Dict[str, Any],
    *,
    settings: Settings,
    packages: List[Package],
) -> AppInventory:
    inventory = AppInventory(id=app.get("id"), name=str(app.get("name") or ""))
    try:
        body = await client.list_keys(app.get("id"), limit=settings.keys_limit)
    except ApiError as e:
        logger.warning("inventory app_id=%s key listing failed status=%s", app.get("id"), e.status_code)
        return inventory

    results = await asyncio.gather(
        *(
            inspect_keyset(client, k, settings=settings, packages=packages)
            for k in filter_enabled(unwrap_items(body))
        )
    )
    inventory.keysets = [k for k in results if k is not None]
    return inventory


async def inspect_account(
    client: AsyncAdminClient, account: Dict[str, Any], *, settings: Settings
) -> AccountInventory:
    inventory = AccountInventory(id=account.get("id"), label=account_label(account))
    try:
        body = await client.list_apps(account.get("id"), limit=settings.apps_limit)
    except ApiError as e:
        logger.warning(
            "inventory account_id=%s app listing failed status=%s", account.get("id"), e.status_code
        )
        return inventory

    apps = filter_enabled(unwrap_items(body))
    # Packages are account-scoped: one listing covers every keyset below.
    packages = await list_account_packages(client, limit=settings.packages_limit) if apps else []
    for app in apps:
        inventory.apps.append(
            await inspect_app(client, app, settings=settings, packages=packages)
        )
    return inventory


async def collect_inventory(
    client_factory: DelegatedClientFactory,
    login: LoginResult,
    *,
    settings: Settings,
) -> List[AccountInventory]:
    """Walk every account the logged-in user can see.

    Accounts are walked one after another, each through its own client
    delegated to that account.
    """
    inventories: List[AccountInventory] = []
    for account in login.accounts:
        if account.get("id") is None:
            continue
        async with client_factory(account["id"]) as client:
            inventories.append(await inspect_account(client, account, settings=settings))
    logger.info(
        "inventory accounts=%d apps=%d",
        len(inventories), sum(len(a.apps) for a in inventories),
    )
    return inventories
