"""Tests for gateway settings loading and validation."""

from __future__ import annotations

import pytest

from usage_gateway.core.api.settings import (
    Settings,
    load_settings,
    load_yaml_config,
    validate_host,
)
from usage_gateway.core.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    import os
    for var in list(os.environ):
        if var.startswith("USAGE_GATEWAY_"):
            monkeypatch.delenv(var)


class TestDefaults:
    def test_defaults(self):
        s = load_settings()
        assert s.upstream_url == "https://internal-admin.pubnub.com"
        assert s.upstream_timeout == 10.0
        assert s.port == 5050
        assert s.apps_limit == 1000
        assert s.keys_limit == 99
        assert s.usage_lookback_days == 90
        assert s.enable_docs is True
        assert s.validate() == []

    def test_repr_is_compact(self):
        assert "upstream_url='https://internal-admin.pubnub.com'" in repr(Settings())

    def test_to_dict_lists_origins(self):
        assert Settings().to_dict()["cors_origins"] == ["*"]


class TestEnvironment:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("USAGE_GATEWAY_UPSTREAM_URL", "http://admin.local/")
        monkeypatch.setenv("USAGE_GATEWAY_UPSTREAM_TIMEOUT", "2.5")
        monkeypatch.setenv("USAGE_GATEWAY_PACKAGES_LIMIT", "25")
        monkeypatch.setenv("USAGE_GATEWAY_CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("USAGE_GATEWAY_LOG_FORMAT", "json")
        s = load_settings()
        assert s.upstream_url == "http://admin.local"
        assert s.upstream_timeout == 2.5
        assert s.packages_limit == 25
        assert s.cors_origins == ("https://a.example", "https://b.example")
        assert s.log_format == "json"

    def test_bad_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("USAGE_GATEWAY_PORT", "not-a-port")
        assert load_settings().port == 5050

    def test_prod_disables_docs(self, monkeypatch):
        monkeypatch.setenv("USAGE_GATEWAY_ENV", "prod")
        assert load_settings().enable_docs is False

    def test_prod_docs_can_be_forced(self, monkeypatch):
        monkeypatch.setenv("USAGE_GATEWAY_ENV", "prod")
        monkeypatch.setenv("USAGE_GATEWAY_ENABLE_DOCS", "1")
        assert load_settings().enable_docs is True

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("USAGE_GATEWAY_PORT", "7000")
        s = load_settings(port=8000, log_format=None)
        assert s.port == 8000
        assert s.log_format == "text"


class TestYamlConfig:
    def test_yaml_layered_under_env(self, tmp_path, monkeypatch):
        path = tmp_path / "gateway.yaml"
        path.write_text(
            "upstream_url: http://yaml.example\n"
            "keys_limit: 10\n"
            "cors_origins:\n  - https://ui.example\n"
        )
        monkeypatch.setenv("USAGE_GATEWAY_KEYS_LIMIT", "20")

        s = load_settings(str(path))

        assert s.upstream_url == "http://yaml.example"
        assert s.keys_limit == 20
        assert s.cors_origins == ("https://ui.example",)

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "gateway.yaml"
        path.write_text("apps_limit: 50\n")
        monkeypatch.setenv("USAGE_GATEWAY_CONFIG", str(path))
        assert load_settings().apps_limit == 50

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("upstream_ulr: http://typo.example\n")
        with pytest.raises(ConfigError, match="upstream_ulr"):
            load_yaml_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_yaml_config(str(tmp_path / "nope.yaml"))

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_yaml_config(str(path))

    def test_empty_file_is_defaults(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("")
        assert load_yaml_config(str(path)) == {}


class TestValidate:
    def test_collects_every_error(self):
        s = Settings(
            port=0, log_format="xml", upstream_url="ftp://x",
            upstream_timeout=0, keys_limit=0,
        )
        errors = s.validate()
        assert len(errors) == 5
        assert any("keys_limit" in e for e in errors)


class TestValidateHost:
    def test_localhost_allowed(self):
        validate_host("127.0.0.1", allow_nonlocal=False)
        validate_host("localhost", allow_nonlocal=False)

    def test_nonlocal_refused(self):
        with pytest.raises(ValueError, match="allow-nonlocal"):
            validate_host("0.0.0.0", allow_nonlocal=False)

    def test_nonlocal_allowed_explicitly(self):
        validate_host("0.0.0.0", allow_nonlocal=True)
