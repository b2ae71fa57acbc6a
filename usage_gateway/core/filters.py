"""Enabled/disabled reconciliation for app and keyset records.

The admin API has carried three disable conventions over time: a boolean
``enabled``, a boolean ``disabled`` and a string-or-numeric ``status``.
A record may carry any combination of them, so they are read into an
explicit ``EnablementFlags`` record and evaluated in a fixed order:

1. ``enabled`` is literally False  -> excluded
2. ``disabled`` is literally True  -> excluded
3. ``status`` present:
   - number: 0 excluded, anything else included
   - string: included only for "enabled" / "active" (case-insensitive)
4. otherwise included
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

ENABLED_STATUSES = frozenset({"enabled", "active"})

Status = Union[int, float, str]


@dataclass(frozen=True)
class EnablementFlags:
    """The three independent disable signals of one record."""

    enabled: Optional[bool] = None
    disabled: Optional[bool] = None
    status: Optional[Status] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EnablementFlags":
        """Read flags from a raw upstream dict.

        Only real booleans populate enabled/disabled; only non-bool numbers
        and strings populate status. Other values count as absent.
        """
        enabled = record.get("enabled")
        disabled = record.get("disabled")
        status = record.get("status")
        if isinstance(status, bool) or not isinstance(status, (int, float, str)):
            status = None
        return cls(
            enabled=enabled if isinstance(enabled, bool) else None,
            disabled=disabled if isinstance(disabled, bool) else None,
            status=status,
        )

    def is_enabled(self) -> bool:
        if self.enabled is False:
            return False
        if self.disabled is True:
            return False
        if self.status is not None:
            if isinstance(self.status, str):
                return self.status.strip().lower() in ENABLED_STATUSES
            return self.status != 0
        return True


def is_enabled(record: Dict[str, Any]) -> bool:
    """True when an app or keyset record counts as enabled."""
    return EnablementFlags.from_record(record).is_enabled()


def filter_enabled(records: Iterable[Any]) -> List[Dict[str, Any]]:
    """Keep enabled records, in order. Non-dict items are dropped."""
    return [r for r in records if isinstance(r, dict) and is_enabled(r)]
