"""Redaction utilities for logs and error messages.

Session tokens and passwords travel as query parameters on this gateway,
so anything logged about a request goes through these helpers first.
Never stores or prints the actual secret; output only shows that redaction
occurred.
"""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import parse_qsl, urlencode

# ── Constants ────────────────────────────────────────────────────

SENSITIVE_KEYWORDS = [
    "token", "secret", "password", "passwd",
    "authorization", "credential", "session",
]

REDACTED = "***REDACTED***"

# Max payload size for safe_log_json (8 KB)
_MAX_LOG_BYTES = 8192

# Max string length before truncation in redact_dict
_MAX_STRING_LEN = 240

# Max recursion depth for redact_dict
_MAX_DEPTH = 10

# ── Patterns ─────────────────────────────────────────────────────

_BEARER_RE = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_QUERY_SECRET_RE = re.compile(r"((?:token|password)=)[^&\s]+", re.IGNORECASE)
_LONG_HEX_RE = re.compile(r"\b[0-9a-fA-F]{24,}\b")


def _is_sensitive_key(key: str) -> bool:
    """Check if a key name matches any sensitive keyword (case-insensitive)."""
    lower = key.lower()
    return any(kw in lower for kw in SENSITIVE_KEYWORDS)


# ── Public API ───────────────────────────────────────────────────


def redact_text(text: str) -> str:
    """Redact obvious secrets from a text string.

    - Replaces Bearer tokens
    - Replaces token=/password= query values
    - Replaces long hex strings (>=24 chars)
    """
    if not text:
        return text
    result = _BEARER_RE.sub(r"\1" + REDACTED, text)
    result = _QUERY_SECRET_RE.sub(r"\1" + REDACTED, result)
    result = _LONG_HEX_RE.sub(REDACTED, result)
    return result


def redact_query(query: str) -> str:
    """Return a query string with sensitive parameter values masked."""
    if not query:
        return query
    pairs = parse_qsl(query, keep_blank_values=True)
    masked = [(k, REDACTED if _is_sensitive_key(k) else v) for k, v in pairs]
    return urlencode(masked, safe="*")


def redact_dict(obj: Any, *, _depth: int = 0) -> Any:
    """Recursively redact sensitive values from a data structure.

    - Keys matching SENSITIVE_KEYWORDS have their values replaced
    - Strings > 240 chars are truncated (prefix...suffix)
    - Never mutates the input object
    """
    if _depth > _MAX_DEPTH:
        return "[max_depth_exceeded]"

    if isinstance(obj, dict):
        result = {}
        for k, v in obj.items():
            if isinstance(k, str) and _is_sensitive_key(k):
                result[k] = REDACTED
            else:
                result[k] = redact_dict(v, _depth=_depth + 1)
        return result

    if isinstance(obj, list):
        return [redact_dict(item, _depth=_depth + 1) for item in obj]

    if isinstance(obj, str):
        if len(obj) > _MAX_STRING_LEN:
            return obj[:60] + "..." + obj[-60:]
        return obj

    return obj


def safe_log_json(event: dict) -> dict:
    """Prepare a dict for safe JSON logging: redact, then cap at 8 KB."""
    redacted = redact_dict(event)
    serialized = json.dumps(redacted, separators=(",", ":"), default=str)
    if len(serialized) <= _MAX_LOG_BYTES:
        return redacted
    return _truncate_to_fit(redacted)


def _truncate_to_fit(obj: Any) -> Any:
    """Truncate all strings > 100 chars."""
    if isinstance(obj, dict):
        return {k: _truncate_to_fit(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_truncate_to_fit(item) for item in obj]
    if isinstance(obj, str) and len(obj) > 100:
        return obj[:40] + "...[truncated]..." + obj[-40:]
    return obj
