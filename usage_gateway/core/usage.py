"""Usage query scope and date-range defaults."""

from __future__ import annotations

import datetime
from typing import Optional, Tuple

from usage_gateway.core.errors import MissingParameterError

ALL_KEYS = "all-keys"
ALL_APPS = "all-apps"

DEFAULT_LOOKBACK_DAYS = 90


def resolve_usage_scope(
    keyid: Optional[str] = None,
    appid: Optional[str] = None,
    accountid: Optional[str] = None,
) -> Tuple[str, str]:
    """Pick the narrowest scope given: key, then app, then account.

    The "all-keys" / "all-apps" sentinels widen the scope to the next level.
    """
    if keyid and keyid != ALL_KEYS:
        return "key", keyid
    if appid and appid != ALL_APPS:
        return "app", appid
    if accountid:
        return "account", accountid
    raise MissingParameterError("Missing keyid, appid, or accountid")


def default_date_range(
    start: Optional[str] = None,
    end: Optional[str] = None,
    *,
    today: Optional[datetime.date] = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> Tuple[str, str]:
    """Fill a missing start/end with a window ending today."""
    today = today or datetime.date.today()
    if not end:
        end = today.isoformat()
    if not start:
        start = (today - datetime.timedelta(days=lookback_days)).isoformat()
    return start, end
