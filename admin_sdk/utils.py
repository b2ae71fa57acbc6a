"""Utilities: request-ID helpers, list-envelope unwrapping, sorting."""

from __future__ import annotations

import datetime
import uuid
from typing import Any, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# Keys the admin API uses to wrap list payloads, most common first.
LIST_ENVELOPE_KEYS = (
    "result",
    "payload",
    "packages",
    "revisions",
    "deployments",
    "listeners",
    "users",
    "accounts",
)


def generate_request_id() -> str:
    """Generate a short UUID4 hex string for X-Request-ID."""
    return uuid.uuid4().hex[:12]


def unwrap_items(body: Any, keys: Sequence[str] = LIST_ENVELOPE_KEYS) -> List[Any]:
    """Return the list carried by an upstream response body.

    Accepts a bare list, or a dict wrapping the list under one of ``keys``
    (one level of nesting is followed, e.g. ``{"result": {"accounts": [...]}}``).
    Anything else yields an empty list.
    """
    if isinstance(body, list):
        return body
    if not isinstance(body, dict):
        return []
    for key in keys:
        value = body.get(key)
        if isinstance(value, list):
            return value
        if isinstance(value, dict):
            nested = unwrap_items(value, keys)
            if nested:
                return nested
    return []


def unwrap_result(body: Any) -> Any:
    """Return ``body["result"]`` when present and truthy, else ``body``."""
    if isinstance(body, dict) and body.get("result"):
        return body["result"]
    return body


def to_epoch(value: Any) -> Optional[float]:
    """Seconds since the epoch for an upstream timestamp, or None.

    Accepts ISO-8601 strings (``Z`` suffix and date-only forms included),
    numbers and numeric strings. Values above 1e11 are taken to be
    milliseconds. Naive datetimes are read as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            try:
                parsed = datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=datetime.timezone.utc)
            return parsed.timestamp()
    return number / 1000.0 if abs(number) > 1e11 else number


def newest_first(records: Sequence[T], field: str = "created_at") -> List[T]:
    """Sort records (dicts or models) by a timestamp field, newest first.

    Timestamps are compared as instants, so epoch numbers and ISO strings
    order correctly against each other. Unparseable stamps rank below
    parseable ones and compare as text; records without the field sink to
    the bottom. The sort is stable.
    """

    def stamp(record: Any) -> Tuple[int, float, str]:
        if isinstance(record, dict):
            value = record.get(field)
        else:
            value = getattr(record, field, None)
        if value is None or value == "":
            return (0, 0.0, "")
        epoch = to_epoch(value)
        if epoch is None:
            return (1, 0.0, str(value))
        return (2, epoch, "")

    return sorted(records, key=stamp, reverse=True)
