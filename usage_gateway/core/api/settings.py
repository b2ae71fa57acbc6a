"""Centralized server settings for the usage gateway.

Reads an optional YAML file, then environment variables, then explicit
overrides (last wins). Never exposes secrets in repr or serialization.

Environment variables (prefix ``USAGE_GATEWAY_``):
    CONFIG                path to a YAML settings file
    ENV                   dev | prod
    BIND / PORT           listen address
    ALLOW_NONLOCAL        0/1
    ENABLE_DOCS           0/1 (default: on outside prod)
    LOG_FORMAT            text | json
    UPSTREAM_URL          admin API base URL
    UPSTREAM_TIMEOUT      per-call timeout, seconds
    CORS_ORIGINS          comma-separated, "*" for any
    APPS_LIMIT, KEYS_LIMIT, PACKAGES_LIMIT, DEPLOYMENTS_LIMIT,
    LISTENERS_LIMIT       single-page sizes for upstream listings
    USAGE_LOOKBACK_DAYS   default usage window
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import yaml

from usage_gateway.core.errors import ConfigError

ENV_PREFIX = "USAGE_GATEWAY_"
LOCAL_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})


def _env(key: str) -> Optional[str]:
    return os.environ.get(ENV_PREFIX + key)


def _bool_env(key: str, default: bool) -> bool:
    """Parse a 0/1 env var to bool."""
    val = _env(key)
    if val is None:
        return default
    return val.strip() in ("1", "true", "yes", "True", "TRUE")


def _int_env(key: str, default: int) -> int:
    """Parse an int env var with fallback."""
    val = _env(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _float_env(key: str, default: float) -> float:
    val = _env(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _str_list_env(key: str, default: List[str]) -> List[str]:
    """Parse comma-separated env var to list."""
    val = _env(key)
    if val is None:
        return list(default)
    return [v.strip() for v in val.split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    """Immutable gateway configuration."""

    # ── Core ───────────────────────────────────────────────────────
    env: str = "dev"
    bind: str = "127.0.0.1"
    port: int = 5050
    allow_nonlocal: bool = False
    enable_docs: bool = True
    cors_origins: tuple = ("*",)

    # ── Logging ────────────────────────────────────────────────────
    log_format: str = "text"

    # ── Upstream ───────────────────────────────────────────────────
    upstream_url: str = "https://internal-admin.pubnub.com"
    upstream_timeout: float = 10.0

    # ── Page sizes (single page, no follow-up fetches) ─────────────
    apps_limit: int = 1000
    keys_limit: int = 99
    packages_limit: int = 100
    deployments_limit: int = 100
    listeners_limit: int = 100

    # ── Usage ──────────────────────────────────────────────────────
    usage_lookback_days: int = 90

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.env!r}, bind={self.bind!r}, port={self.port}, "
            f"allow_nonlocal={self.allow_nonlocal}, enable_docs={self.enable_docs}, "
            f"upstream_url={self.upstream_url!r}, upstream_timeout={self.upstream_timeout}, "
            f"log_format={self.log_format!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict of all fields."""
        data = asdict(self)
        data["cors_origins"] = list(self.cors_origins)
        return data

    def validate(self) -> List[str]:
        """Return list of validation errors."""
        errors = []

        if self.port < 1 or self.port > 65535:
            errors.append(f"port must be 1-65535, got {self.port}")

        if self.log_format not in ("text", "json"):
            errors.append(f"log_format must be 'text' or 'json', got {self.log_format}")

        if not self.upstream_url.startswith(("http://", "https://")):
            errors.append(f"upstream_url must be an http(s) URL, got {self.upstream_url!r}")

        if self.upstream_timeout <= 0:
            errors.append(f"upstream_timeout must be > 0, got {self.upstream_timeout}")

        for name in ("apps_limit", "keys_limit", "packages_limit",
                     "deployments_limit", "listeners_limit", "usage_lookback_days"):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be >= 1, got {getattr(self, name)}")

        return errors


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Read a flat YAML mapping of Settings fields.

    Unknown keys are rejected so typos surface at startup.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")
    if "cors_origins" in data and isinstance(data["cors_origins"], list):
        data["cors_origins"] = tuple(data["cors_origins"])
    return data


def load_settings(config_path: Optional[str] = None, **overrides: Any) -> Settings:
    """Load settings: defaults < YAML file < environment < overrides.

    Args:
        config_path: YAML file; defaults to $USAGE_GATEWAY_CONFIG when set
        **overrides: Field overrides (None values are ignored)

    Returns:
        Settings instance
    """
    config_path = config_path or _env("CONFIG")
    base = Settings(**load_yaml_config(config_path)) if config_path else Settings()

    env_name = _env("ENV") or base.env
    settings = Settings(
        env=env_name,
        bind=_env("BIND") or base.bind,
        port=_int_env("PORT", base.port),
        allow_nonlocal=_bool_env("ALLOW_NONLOCAL", base.allow_nonlocal),
        enable_docs=_bool_env(
            "ENABLE_DOCS",
            False if env_name == "prod" else base.enable_docs,
        ),
        cors_origins=tuple(_str_list_env("CORS_ORIGINS", list(base.cors_origins))),
        log_format=_env("LOG_FORMAT") or base.log_format,
        upstream_url=(_env("UPSTREAM_URL") or base.upstream_url).rstrip("/"),
        upstream_timeout=_float_env("UPSTREAM_TIMEOUT", base.upstream_timeout),
        apps_limit=_int_env("APPS_LIMIT", base.apps_limit),
        keys_limit=_int_env("KEYS_LIMIT", base.keys_limit),
        packages_limit=_int_env("PACKAGES_LIMIT", base.packages_limit),
        deployments_limit=_int_env("DEPLOYMENTS_LIMIT", base.deployments_limit),
        listeners_limit=_int_env("LISTENERS_LIMIT", base.listeners_limit),
        usage_lookback_days=_int_env("USAGE_LOOKBACK_DAYS", base.usage_lookback_days),
    )

    # Apply any additional overrides
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        current = {f.name: getattr(settings, f.name) for f in fields(Settings)}
        current.update(overrides)
        if isinstance(current.get("cors_origins"), list):
            current["cors_origins"] = tuple(current["cors_origins"])
        settings = Settings(**current)

    return settings


def validate_host(host: str, allow_nonlocal: bool) -> None:
    """Refuse to bind to non-localhost unless explicitly allowed."""
    if host not in LOCAL_HOSTS and not allow_nonlocal:
        raise ValueError(
            f"Refusing to bind to non-local host '{host}'. "
            f"Pass --allow-nonlocal to override this safety check."
        )


def print_startup_warnings(settings: Settings) -> None:
    """Print warnings about potentially unsafe settings."""
    warnings = []

    if settings.allow_nonlocal:
        warnings.append(
            "Non-local binding enabled: session tokens arrive as query parameters; "
            "terminate TLS in front of the gateway."
        )

    if "*" in settings.cors_origins and settings.env == "prod":
        warnings.append("CORS allows any origin in prod mode.")

    if settings.upstream_url.startswith("http://"):
        warnings.append("Upstream URL is not HTTPS: session tokens travel in clear text.")

    if warnings:
        click.secho("\nWarnings:", fg="yellow")
        for w in warnings:
            click.secho(f"  • {w}", fg="yellow")
        click.echo()
