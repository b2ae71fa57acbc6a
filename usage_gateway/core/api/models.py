"""Pydantic response models for the usage gateway API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

EntityId = Union[int, str]


# ── Health ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    time: str


class PingResponse(BaseModel):
    status: str = "ok"
    message: str


# ── Session ──────────────────────────────────────────────────────

class SessionInfo(BaseModel):
    userid: Optional[EntityId] = None
    token: str
    accountid: Optional[EntityId] = None


class LoginResponse(BaseModel):
    session: SessionInfo
    accounts: List[Dict[str, Any]] = Field(default_factory=list)


class AccountSearchResponse(BaseModel):
    users: List[Dict[str, Any]] = Field(default_factory=list)
    accounts: List[Dict[str, Any]] = Field(default_factory=list)


# ── Apps ─────────────────────────────────────────────────────────

class AppsResponse(BaseModel):
    result: List[Dict[str, Any]] = Field(default_factory=list)
    total: int = 0


# ── Functions ────────────────────────────────────────────────────

class FunctionSummary(BaseModel):
    id: Optional[EntityId] = None
    name: str = ""
    type: str = ""
    enabled: bool


class ModuleSummary(BaseModel):
    """One package with a running deployment on the requested keyset."""

    package_id: EntityId
    package_name: str
    revision_id: EntityId
    revision_name: str
    deployment_id: EntityId
    deployment_state: str
    functions: List[FunctionSummary] = Field(default_factory=list)


class FunctionsResponse(BaseModel):
    modules: List[ModuleSummary] = Field(default_factory=list)


# ── Events & Actions ─────────────────────────────────────────────

class NormalizedListener(BaseModel):
    id: EntityId
    name: str = ""
    event: Optional[str] = None
    enabled: bool


class NormalizedAction(BaseModel):
    id: EntityId
    name: str = ""
    type: Optional[str] = None
    enabled: bool


class EventsActionsResponse(BaseModel):
    listeners: List[NormalizedListener] = Field(default_factory=list)
    actions: List[NormalizedAction] = Field(default_factory=list)


# ── Inventory ────────────────────────────────────────────────────

class KeysetInventory(BaseModel):
    id: EntityId
    name: str = ""
    subscribe_key: Optional[str] = None
    function_modules: int = 0
    running_functions: int = 0
    listeners: int = 0
    actions: int = 0


class AppInventory(BaseModel):
    id: EntityId
    name: str = ""
    keysets: List[KeysetInventory] = Field(default_factory=list)


class AccountInventory(BaseModel):
    id: EntityId
    label: str = ""
    apps: List[AppInventory] = Field(default_factory=list)
