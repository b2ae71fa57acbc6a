"""Pydantic models for admin API records.

These mirror the upstream payloads loosely: unknown fields are ignored and
the handful of legacy field spellings are accepted via alias choices.
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

RUNNING = "RUNNING"

EntityId = Union[int, str]
Timestamp = Union[str, int, float]


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ── Session ──────────────────────────────────────────────────────

class Session(_Record):
    user_id: Optional[EntityId] = None
    account_id: Optional[EntityId] = None
    token: str


# ── Functions ────────────────────────────────────────────────────

class Package(_Record):
    id: EntityId
    name: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _name_text(cls, value: Any) -> Any:
        return "" if value is None else value


class Revision(_Record):
    id: EntityId
    name: str = ""
    created_at: Optional[Timestamp] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_text(cls, value: Any) -> Any:
        return "" if value is None else value


class KeysetRef(_Record):
    id: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Optional[int]:
        # Upstream sends ints or numeric strings; anything else never matches.
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


class FunctionDeployment(_Record):
    function_revision_id: Optional[EntityId] = None
    function_name: str = Field(default="", validation_alias=AliasChoices("function_name", "name"))
    function_type: str = Field(default="", validation_alias=AliasChoices("function_type", "type"))
    state: str = ""

    @field_validator("function_name", "function_type", "state", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING


class Deployment(_Record):
    id: EntityId
    state: str = ""
    created_at: Optional[Timestamp] = None
    keyset: Optional[KeysetRef] = Field(
        default=None, validation_alias=AliasChoices("keyset", "keyset_ref", "key")
    )
    function_deployments: List[FunctionDeployment] = Field(
        default_factory=list,
        validation_alias=AliasChoices("function_deployments", "functions"),
    )

    @field_validator("state", mode="before")
    @classmethod
    def _state_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING

    def targets(self, keyset_id: int) -> bool:
        return self.keyset is not None and self.keyset.id == keyset_id


# ── Events & Actions ─────────────────────────────────────────────

class Action(_Record):
    id: EntityId
    name: str = ""
    category: Optional[str] = Field(default=None, validation_alias=AliasChoices("category", "type"))
    status: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_text(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @property
    def is_on(self) -> bool:
        return self.status == "on"


class EventListener(Action):
    actions: List[Action] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _actions_list(cls, value: Any) -> Any:
        return value or []
