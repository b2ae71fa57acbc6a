"""Login and account search against the admin API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from admin_sdk.async_client import AsyncAdminClient
from admin_sdk.errors import ApiError, AuthError
from admin_sdk.models import Session
from admin_sdk.utils import unwrap_items, unwrap_result

logger = logging.getLogger("usage_gateway.accounts")

EntityId = Union[int, str]
ClientFactory = Callable[[Optional[str]], AsyncAdminClient]


@dataclass
class LoginResult:
    session: Session
    accounts: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AccountSearchResult:
    users: List[Dict[str, Any]] = field(default_factory=list)
    accounts: List[Dict[str, Any]] = field(default_factory=list)


def parse_session(body: Any) -> Session:
    """Read token, user id and home account id from a POST /api/me body.

    Raises AuthError when the body carries no token.
    """
    result = unwrap_result(body)
    if not isinstance(result, dict) or not result.get("token"):
        raise AuthError(401, "Authentication failed", body)
    user = result.get("user") if isinstance(result.get("user"), dict) else {}
    return Session(
        token=result["token"],
        user_id=result.get("user_id", result.get("id")),
        account_id=user.get("account_id", result.get("account_id")),
    )


async def authenticate(
    client_factory: ClientFactory, email: str, password: str
) -> LoginResult:
    """Exchange credentials for a session, then list the user's accounts.

    ``client_factory(token)`` returns an AsyncAdminClient; it is called once
    without a token for the login call and once with the new token.
    """
    async with client_factory(None) as anonymous:
        session = parse_session(await anonymous.login(email, password))

    async with client_factory(session.token) as client:
        accounts: List[Dict[str, Any]] = []
        if session.user_id is not None:
            body = await client.list_accounts(session.user_id)
            accounts = [a for a in unwrap_items(body) if isinstance(a, dict)]
    logger.info("login user_id=%s accounts=%d", session.user_id, len(accounts))
    return LoginResult(session=session, accounts=accounts)


def _email(record: Dict[str, Any]) -> str:
    return str(record.get("email") or "").strip().lower()


def match_users(users: List[Dict[str, Any]], email: str) -> List[Dict[str, Any]]:
    """Users whose email equals ``email`` (case-insensitive).

    Falls back to users whose email contains it when nothing matches exactly.
    """
    target = email.strip().lower()
    if not target:
        return []
    candidates = [u for u in users if isinstance(u, dict)]
    exact = [u for u in candidates if _email(u) == target]
    if exact:
        return exact
    return [u for u in candidates if target in _email(u)]


def _user_id(user: Dict[str, Any]) -> Optional[EntityId]:
    return user.get("id", user.get("user_id"))


def _stub_account(user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    account_id = user.get("account_id")
    if account_id is None:
        return None
    return {"id": account_id, "email": user.get("email")}


async def _accounts_for_user(
    client: AsyncAdminClient, user: Dict[str, Any]
) -> List[Dict[str, Any]]:
    user_id = _user_id(user)
    stub = _stub_account(user)
    if user_id is None:
        return [stub] if stub else []
    try:
        body = await client.list_accounts(user_id)
    except ApiError as e:
        logger.warning(
            "account listing failed user_id=%s status=%s; using user record",
            user_id, e.status_code,
        )
        return [stub] if stub else []
    accounts = [a for a in unwrap_items(body) if isinstance(a, dict)]
    if not accounts and stub:
        return [stub]
    return accounts


def dedupe_by_id(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    unique: List[Dict[str, Any]] = []
    for record in records:
        key = str(record.get("id"))
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


async def search_accounts(client: AsyncAdminClient, email: str) -> AccountSearchResult:
    """Accounts belonging to the user(s) registered under ``email``.

    A failure of the user search propagates; a failure listing one user's
    accounts only degrades that user to the account id on its record.
    """
    body = await client.search_users(email)
    users = match_users(unwrap_items(body), email)
    if not users:
        return AccountSearchResult()

    per_user = await asyncio.gather(*(_accounts_for_user(client, u) for u in users))
    accounts = dedupe_by_id([a for group in per_user for a in group])
    logger.info("search_accounts users=%d accounts=%d", len(users), len(accounts))
    return AccountSearchResult(users=users, accounts=accounts)
