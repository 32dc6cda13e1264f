"""Tests for global configuration and credential resolution."""

import json
from pathlib import Path

import pytest

from relayplane import config as config_module
from relayplane.config import (
    ConfigStore,
    CredentialResolver,
    GlobalConfig,
    configure,
    env_var_for,
    get_config,
    is_cloud_enabled,
    is_telemetry_enabled,
    reset_config,
)
from relayplane.drivers.secrets import DictSecretProvider
from relayplane.env import DEFAULT_TELEMETRY_ENDPOINT, clear_settings_cache
from relayplane.exceptions import InvalidPolicyError, ProviderNotConfiguredError
from relayplane.models import ProviderConfig


class TestEnvVarFor:
    def test_known_providers(self) -> None:
        assert env_var_for("openai") == "OPENAI_API_KEY"
        assert env_var_for("xai") == "XAI_API_KEY"

    def test_convention_for_others(self) -> None:
        assert env_var_for("mistral") == "MISTRAL_API_KEY"


class TestConfigStore:
    def test_providers_merge(self, store: ConfigStore) -> None:
        store.configure(providers={"openai": {"api_key": "a"}})
        store.configure(providers={"anthropic": {"api_key": "b"}})
        assert set(store.get().providers) == {"openai", "anthropic"}

    def test_provider_replaced_by_key(self, store: ConfigStore) -> None:
        store.configure(providers={"openai": {"api_key": "a"}})
        store.configure(providers={"openai": {"api_key": "b"}})
        assert store.get().providers["openai"].api_key == "b"

    def test_sections_replaced_only_when_given(self, store: ConfigStore) -> None:
        store.configure(mcp={"servers": {"crm": {"url": "http://crm"}}})
        store.configure(providers={"openai": {"api_key": "a"}})
        assert store.get().mcp.servers["crm"].url == "http://crm"

        store.configure(mcp={"servers": {}})
        assert store.get().mcp.servers == {}

    def test_accepts_global_config(self, store: ConfigStore) -> None:
        store.configure(GlobalConfig(providers={"openai": ProviderConfig(api_key="a")}))
        assert store.get().providers["openai"].api_key == "a"

    def test_get_returns_snapshot(self, store: ConfigStore) -> None:
        store.configure(providers={"openai": {"api_key": "a"}})
        snapshot = store.get()
        snapshot.providers["openai"].api_key = "changed"
        assert store.get().providers["openai"].api_key == "a"

    def test_reset(self, store: ConfigStore) -> None:
        store.configure(providers={"openai": {"api_key": "a"}})
        store.reset()
        assert store.get() == GlobalConfig()


class TestPolicies:
    def test_policy_gets_id_from_key(self, store: ConfigStore) -> None:
        store.configure(policies={"summarize": {"model": "openai:gpt-4o-mini"}})
        assert store.get().policies["summarize"].id == "summarize"

    @pytest.mark.parametrize(
        ("policy", "reason"),
        [
            ({}, "must specify a model"),
            ({"model": "gpt-4o"}, 'format "provider:model"'),
            ({"model": "openai:gpt-4o", "fallback": ["claude"]}, "fallback must be"),
            ({"model": "openai:gpt-4o", "cost_caps": {"max_cost_per_execution": -1}}, "non-negative"),
            ({"model": "openai:gpt-4o", "cost_caps": {"max_tokens_per_execution": 0}}, "at least 1"),
            ({"model": "openai:gpt-4o", "temperature": 3}, "between 0 and 2"),
        ],
    )
    def test_invalid_policies(self, store: ConfigStore, policy: dict, reason: str) -> None:
        with pytest.raises(InvalidPolicyError, match=reason):
            store.configure(policies={"bad": policy})

    def test_invalid_policy_leaves_config_untouched(self, store: ConfigStore) -> None:
        with pytest.raises(InvalidPolicyError):
            store.configure(providers={"openai": {"api_key": "a"}}, policies={"bad": {}})
        assert store.get().providers == {}


class TestTelemetryConfig:
    def test_disabled_by_default(self, store: ConfigStore) -> None:
        assert not is_telemetry_enabled(store)

    def test_derived_from_cloud(self, store: ConfigStore) -> None:
        store.configure(
            cloud={"enabled": True, "access_token": "tok", "api_endpoint": "https://cloud.test/"}
        )
        telemetry = store.get().telemetry
        assert telemetry.enabled
        assert telemetry.api_key == "tok"
        assert telemetry.api_endpoint == "https://cloud.test/v1/telemetry/logs"
        assert is_cloud_enabled(store)
        assert is_telemetry_enabled(store)

    def test_cloud_without_endpoint_uses_default(self, store: ConfigStore) -> None:
        store.configure(cloud={"enabled": True, "access_token": "tok"})
        assert store.get().telemetry.api_endpoint == DEFAULT_TELEMETRY_ENDPOINT

    def test_explicit_telemetry_key_wins(self, store: ConfigStore) -> None:
        store.configure(
            cloud={"enabled": True, "access_token": "tok"},
            telemetry={"enabled": True, "api_key": "explicit"},
        )
        assert store.get().telemetry.api_key == "explicit"

    def test_relay_api_key_enables_telemetry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAY_API_KEY", "relay-key")
        clear_settings_cache()
        store = ConfigStore()
        assert is_telemetry_enabled(store)
        assert store.get().telemetry.api_endpoint == DEFAULT_TELEMETRY_ENDPOINT

    def test_cli_login_file_enables_telemetry(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"cloud": {"accessToken": "from-login"}}))
        monkeypatch.setenv("RELAY_CONFIG_PATH", str(path))
        clear_settings_cache()

        assert ConfigStore().get().telemetry.api_key == "from-login"

    def test_unreadable_login_file_is_ignored(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json")
        monkeypatch.setenv("RELAY_CONFIG_PATH", str(path))
        clear_settings_cache()

        assert not is_telemetry_enabled(ConfigStore())


class TestCredentialResolver:
    @pytest.fixture
    def resolver(self, store: ConfigStore) -> CredentialResolver:
        return CredentialResolver(store, DictSecretProvider({"OPENAI_API_KEY": "env"}))

    def test_precedence(self, resolver: CredentialResolver) -> None:
        overrides = {"openai": ProviderConfig(api_key="run")}
        resolver.store.configure(providers={"openai": {"api_key": "global"}})

        assert resolver.resolve("openai", overrides).api_key == "run"
        assert resolver.resolve("openai").api_key == "global"

        resolver.store.reset()
        assert resolver.resolve("openai").api_key == "env"

    def test_nothing_configured(self, store: ConfigStore) -> None:
        resolver = CredentialResolver(store, DictSecretProvider())
        assert resolver.resolve("openai") is None
        assert not resolver.is_configured("openai")
        with pytest.raises(ProviderNotConfiguredError) as exc_info:
            resolver.require("openai")
        assert exc_info.value.provider == "openai"
        assert exc_info.value.env_var == "OPENAI_API_KEY"

    def test_empty_key_counts_as_missing(self, resolver: CredentialResolver) -> None:
        with pytest.raises(ProviderNotConfiguredError):
            resolver.require("openai", {"openai": ProviderConfig(api_key="")})

    def test_keyless_provider(self, resolver: CredentialResolver) -> None:
        assert resolver.is_configured("local")
        assert resolver.require("local").api_key == ""

    def test_keyless_provider_keeps_base_url(self, resolver: CredentialResolver) -> None:
        resolver.store.configure(
            providers={"local": {"api_key": "", "base_url": "http://localhost:11434"}}
        )
        assert resolver.require("local").base_url == "http://localhost:11434"

    def test_configured_providers(self, resolver: CredentialResolver) -> None:
        resolver.store.configure(providers={"anthropic": {"api_key": "a"}})
        assert resolver.configured_providers() == ["anthropic", "openai"]


class TestModuleFunctions:
    def test_configure_and_reset(self) -> None:
        configure(providers={"openai": {"api_key": "a"}})
        assert get_config().providers["openai"].api_key == "a"

        reset_config()
        assert get_config().providers == {}

    def test_store_is_replaceable(self, store: ConfigStore) -> None:
        config_module.set_config_store(store)
        configure(providers={"google": {"api_key": "g"}})
        assert store.get().providers["google"].api_key == "g"
