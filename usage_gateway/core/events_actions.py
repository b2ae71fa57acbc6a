"""Event listener / action flattening for one subscribe key.

The admin API returns listeners with their actions embedded. Several
listeners may reference the same action, so actions are deduplicated by
id (first occurrence wins). This feature is best-effort: any upstream
failure yields an empty result.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from admin_sdk.async_client import AsyncAdminClient
from admin_sdk.errors import ApiError
from admin_sdk.models import Action, EventListener
from usage_gateway.core.api.models import (
    EventsActionsResponse,
    NormalizedAction,
    NormalizedListener,
)

logger = logging.getLogger("usage_gateway.events_actions")

DEFAULT_LISTENER_LIMIT = 100


def normalize_listener(listener: EventListener) -> NormalizedListener:
    return NormalizedListener(
        id=listener.id,
        name=listener.name,
        event=listener.category,
        enabled=listener.is_on,
    )


def normalize_action(action: Action) -> NormalizedAction:
    return NormalizedAction(
        id=action.id,
        name=action.name,
        type=action.category,
        enabled=action.is_on,
    )


def flatten_listeners(listeners: List[EventListener]) -> EventsActionsResponse:
    """Split listeners and their embedded actions into two flat lists."""
    normalized: List[NormalizedListener] = []
    actions: Dict[str, NormalizedAction] = {}
    for listener in listeners:
        normalized.append(normalize_listener(listener))
        for action in listener.actions:
            # str() so 7 and "7" count as the same upstream entity
            key = str(action.id)
            if key not in actions:
                actions[key] = normalize_action(action)
    return EventsActionsResponse(listeners=normalized, actions=list(actions.values()))


async def normalize_events_actions(
    client: AsyncAdminClient,
    subscribe_key: Optional[str],
    *,
    limit: int = DEFAULT_LISTENER_LIMIT,
) -> EventsActionsResponse:
    """Listeners and deduplicated actions configured on ``subscribe_key``.

    No subscribe key means no upstream call and an empty result.
    """
    if not subscribe_key:
        return EventsActionsResponse()

    try:
        listeners = await client.list_event_listeners(subscribe_key, limit=limit)
    except ApiError as e:
        if e.status_code == 404:
            logger.warning("events_actions not configured for subscribe key")
        else:
            logger.warning(
                "events_actions lookup failed status=%s error=%s", e.status_code, e.message
            )
        return EventsActionsResponse()

    return flatten_listeners(listeners)
