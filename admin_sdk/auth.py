"""Session and delegation headers for the admin API."""

from __future__ import annotations

from typing import Dict, Optional, Union

SESSION_HEADER = "X-Session-Token"
DELEGATED_ACCOUNT_HEADER = "x-pn-delegated-account-id"


def build_session_headers(
    token: Optional[str] = None,
    delegated_account_id: Optional[Union[int, str]] = None,
) -> Dict[str, str]:
    """Return the credential headers for one upstream call.

    The delegated account header is only sent when an id is given; it lets
    the upstream act on behalf of another account ("ghosting").
    Returns empty dict if neither value is set.
    """
    headers: Dict[str, str] = {}
    if token:
        headers[SESSION_HEADER] = token
    if delegated_account_id not in (None, ""):
        headers[DELEGATED_ACCOUNT_HEADER] = str(delegated_account_id)
    return headers
