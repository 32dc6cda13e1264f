"""Concrete implementations of the collaborator protocols."""

from relayplane.drivers.adapters import AdapterExecutor, AdapterRegistry, normalize_error
from relayplane.drivers.mocks import MockAdapter, MockToolExecutor
from relayplane.drivers.secrets import (
    ChainedSecretProvider,
    DictSecretProvider,
    DotEnvSecretProvider,
    EnvVarSecretProvider,
)
from relayplane.drivers.telemetry import HttpTelemetryReporter, MemoryReporter, NullReporter
from relayplane.drivers.tools import LocalToolExecutor, ToolServerRegistry

__all__ = [
    "AdapterExecutor",
    "AdapterRegistry",
    "normalize_error",
    "MockAdapter",
    "MockToolExecutor",
    "ChainedSecretProvider",
    "DictSecretProvider",
    "DotEnvSecretProvider",
    "EnvVarSecretProvider",
    "HttpTelemetryReporter",
    "MemoryReporter",
    "NullReporter",
    "LocalToolExecutor",
    "ToolServerRegistry",
]
