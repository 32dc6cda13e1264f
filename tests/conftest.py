"""Shared pytest fixtures for RelayPlane tests.

Every test starts from a clean process: no RELAY_* or provider
environment variables, no CLI login file, and a reset container.
"""

from pathlib import Path

import pytest

from relayplane.config import PROVIDER_ENV_VARS, ConfigStore, GlobalConfig
from relayplane.container import Runtime, RuntimeContainer
from relayplane.drivers.adapters import AdapterRegistry
from relayplane.drivers.mocks import MockAdapter, MockToolExecutor
from relayplane.drivers.secrets import DictSecretProvider
from relayplane.drivers.telemetry import MemoryReporter
from relayplane.env import clear_settings_cache
from relayplane.protocols.logger import ListLogger

RELAY_ENV_VARS = ["RELAY_API_KEY", "RELAY_API_ENDPOINT", "RELAY_VERBOSE"]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate each test from the developer's environment and login file."""
    for name in [*RELAY_ENV_VARS, *PROVIDER_ENV_VARS.values()]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RELAY_CONFIG_PATH", str(tmp_path / "missing-config.json"))
    clear_settings_cache()
    RuntimeContainer.reset()
    yield
    RuntimeContainer.reset()
    clear_settings_cache()


@pytest.fixture
def store() -> ConfigStore:
    """Empty configuration with telemetry disabled."""
    return ConfigStore(GlobalConfig())


@pytest.fixture
def secrets() -> DictSecretProvider:
    """Environment tier with keys for openai and anthropic."""
    return DictSecretProvider({"OPENAI_API_KEY": "sk-env", "ANTHROPIC_API_KEY": "sk-ant-env"})


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def adapter_registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    """Registry routing every common provider to the same mock."""
    registry = AdapterRegistry()
    for provider in ["openai", "anthropic", "google", "local"]:
        registry.register(provider, mock_adapter)
    return registry


@pytest.fixture
def mock_tools() -> MockToolExecutor:
    return MockToolExecutor()


@pytest.fixture
def reporter() -> MemoryReporter:
    return MemoryReporter()


@pytest.fixture
def runtime(
    store: ConfigStore,
    secrets: DictSecretProvider,
    adapter_registry: AdapterRegistry,
    mock_tools: MockToolExecutor,
    reporter: MemoryReporter,
) -> Runtime:
    """Runtime wired entirely to in-memory collaborators."""
    return Runtime.build(
        store=store,
        adapters=adapter_registry,
        tools=mock_tools,
        telemetry=reporter,
        secrets=secrets,
        logger=ListLogger(),
    )
