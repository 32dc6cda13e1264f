"""Global configuration and credential resolution.

Configuration is process-wide and read-only during a run. Credentials
for a provider are resolved from three tiers, highest priority first:

1. Per-run overrides (RunOptions.providers)
2. Global configuration (configure(providers=...))
3. Environment variables (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...)

Usage:
    from relayplane import configure

    configure(providers={"openai": {"api_key": "sk-..."}})
"""

import logging
import threading
from typing import Any

from pydantic import BaseModel, Field

from relayplane.drivers.adapters import KEYLESS_PROVIDERS
from relayplane.drivers.secrets import default_secret_provider
from relayplane.env import DEFAULT_TELEMETRY_ENDPOINT, initial_telemetry_config
from relayplane.exceptions import InvalidPolicyError, ProviderNotConfiguredError
from relayplane.models import Policy, ProviderConfig
from relayplane.protocols.secrets import SecretProvider

logger = logging.getLogger(__name__)

PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "xai": "XAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "together": "TOGETHER_API_KEY",
    "replicate": "REPLICATE_API_KEY",
}


def env_var_for(provider: str) -> str:
    """Environment variable holding a provider's API key."""
    return PROVIDER_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")


class ToolServerConfig(BaseModel):
    """Connection details for a tool server."""

    url: str | None = None
    command: str | None = None
    credentials: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True


class McpConfig(BaseModel):
    servers: dict[str, ToolServerConfig] = Field(default_factory=dict)


class TelemetryConfig(BaseModel):
    """Where and how run records are delivered."""

    enabled: bool = False
    api_endpoint: str | None = None
    api_key: str | None = None
    flush_interval_ms: int = Field(default=5000, gt=0)
    max_retries: int = Field(default=3, ge=0)


class CloudConfig(BaseModel):
    """Hosted platform settings. Not used for execution."""

    enabled: bool = False
    team_id: str | None = None
    access_token: str | None = None
    api_endpoint: str | None = None


class GlobalConfig(BaseModel):
    """Process-wide SDK configuration."""

    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    policies: dict[str, Policy] = Field(default_factory=dict)
    mcp: McpConfig = Field(default_factory=McpConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)


def validate_policy(policy_id: str, policy: Policy) -> None:
    """Check a policy for the mistakes configure() rejects.

    Raises:
        InvalidPolicyError: On the first problem found
    """
    if not policy.model:
        raise InvalidPolicyError(policy_id, 'must specify a model (e.g., "openai:gpt-4o")')
    if ":" not in policy.model:
        raise InvalidPolicyError(
            policy_id, f'model must be in format "provider:model" (got "{policy.model}")'
        )
    for fallback in policy.fallback:
        if ":" not in fallback:
            raise InvalidPolicyError(
                policy_id, f'fallback must be in format "provider:model" (got "{fallback}")'
            )
    caps = policy.cost_caps
    if caps is not None:
        if caps.max_cost_per_execution is not None and caps.max_cost_per_execution < 0:
            raise InvalidPolicyError(policy_id, "maxCostPerExecution must be non-negative")
        if caps.max_tokens_per_execution is not None and caps.max_tokens_per_execution < 1:
            raise InvalidPolicyError(policy_id, "maxTokensPerExecution must be at least 1")
    if policy.temperature is not None and not 0 <= policy.temperature <= 2:
        raise InvalidPolicyError(policy_id, "temperature must be between 0 and 2")


def _telemetry_from_cloud(cloud: CloudConfig) -> TelemetryConfig:
    endpoint = (
        f"{cloud.api_endpoint.rstrip('/')}/v1/telemetry/logs"
        if cloud.api_endpoint
        else DEFAULT_TELEMETRY_ENDPOINT
    )
    return TelemetryConfig(enabled=True, api_endpoint=endpoint, api_key=cloud.access_token)


class ConfigStore:
    """Holds the global configuration.

    Writes are serialized; readers get deep-copied snapshots, so a run
    never observes a configure() call made while it executes.
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._config = config or GlobalConfig(
            telemetry=TelemetryConfig(**initial_telemetry_config())
        )

    def configure(self, config: GlobalConfig | dict[str, Any] | None = None, **fields: Any) -> None:
        """Merge new settings into the configuration.

        Top-level sections are replaced, except providers and policies,
        which are merged key by key. Policies are validated first, and
        telemetry is derived from the cloud access token when no
        telemetry API key is given.

        Raises:
            InvalidPolicyError: If a policy is malformed
        """
        if isinstance(config, GlobalConfig):
            data = {name: getattr(config, name) for name in config.model_fields_set}
        else:
            data = dict(config or {})
        data.update(fields)

        update = GlobalConfig.model_validate(data)
        provided = set(data)

        policies = {}
        for policy_id, policy in update.policies.items():
            if not policy.id:
                policy = policy.model_copy(update={"id": policy_id})
            validate_policy(policy_id, policy)
            policies[policy_id] = policy

        telemetry = update.telemetry if "telemetry" in provided else None
        if (telemetry is None or not telemetry.api_key) and (
            update.cloud.enabled and update.cloud.access_token
        ):
            telemetry = _telemetry_from_cloud(update.cloud)

        with self._lock:
            current = self._config
            merged = current.model_copy(
                update={
                    "providers": {**current.providers, **update.providers},
                    "policies": {**current.policies, **policies},
                    "mcp": update.mcp if "mcp" in provided else current.mcp,
                    "cloud": update.cloud if "cloud" in provided else current.cloud,
                    "telemetry": telemetry or current.telemetry,
                }
            )
            self._config = merged
        logger.debug("Configuration updated: %s", ", ".join(sorted(provided)) or "(nothing)")

    def get(self) -> GlobalConfig:
        """Snapshot of the current configuration."""
        with self._lock:
            return self._config.model_copy(deep=True)

    def reset(self) -> None:
        """Restore an empty configuration with telemetry disabled."""
        with self._lock:
            self._config = GlobalConfig()


class CredentialResolver:
    """Resolves provider credentials across the three tiers."""

    def __init__(self, store: ConfigStore, secrets: SecretProvider | None = None) -> None:
        self.store = store
        self.secrets = secrets or default_secret_provider()

    def resolve(
        self,
        provider: str,
        overrides: dict[str, ProviderConfig] | None = None,
    ) -> ProviderConfig | None:
        """Highest-priority credential for a provider, or None."""
        if overrides and provider in overrides:
            return overrides[provider]

        configured = self.store.get().providers.get(provider)
        if configured is not None:
            return configured

        api_key = self.secrets.get_secret(env_var_for(provider))
        if api_key:
            return ProviderConfig(api_key=api_key)
        return None

    def is_configured(
        self,
        provider: str,
        overrides: dict[str, ProviderConfig] | None = None,
    ) -> bool:
        if provider in KEYLESS_PROVIDERS:
            return True
        resolved = self.resolve(provider, overrides)
        return resolved is not None and bool(resolved.api_key)

    def require(
        self,
        provider: str,
        overrides: dict[str, ProviderConfig] | None = None,
    ) -> ProviderConfig:
        """Resolve a credential, raising if no tier supplies one.

        Keyless providers resolve to whatever is configured, or an empty
        credential.

        Raises:
            ProviderNotConfiguredError: If the provider needs a key and has none
        """
        resolved = self.resolve(provider, overrides)
        if provider in KEYLESS_PROVIDERS:
            return resolved or ProviderConfig(api_key="")
        if resolved is None or not resolved.api_key:
            raise ProviderNotConfiguredError(provider, env_var_for(provider))
        return resolved

    def configured_providers(self) -> list[str]:
        """Providers with a credential from global config or the environment."""
        providers = set(self.store.get().providers)
        for provider, env_var in PROVIDER_ENV_VARS.items():
            if self.secrets.has_secret(env_var):
                providers.add(provider)
        return sorted(providers)


# Process-wide store
_global_store: ConfigStore | None = None


def get_config_store() -> ConfigStore:
    """Get the process-wide configuration store."""
    global _global_store
    if _global_store is None:
        _global_store = ConfigStore()
    return _global_store


def set_config_store(store: ConfigStore | None) -> None:
    """Replace the process-wide store (None recreates it lazily)."""
    global _global_store
    _global_store = store


def configure(config: GlobalConfig | dict[str, Any] | None = None, **fields: Any) -> None:
    """Merge settings into the process-wide configuration."""
    get_config_store().configure(config, **fields)


def get_config() -> GlobalConfig:
    """Snapshot of the process-wide configuration."""
    return get_config_store().get()


def reset_config() -> None:
    """Reset the process-wide configuration. Useful for testing."""
    get_config_store().reset()


def is_cloud_enabled(store: ConfigStore | None = None) -> bool:
    cloud = (store or get_config_store()).get().cloud
    return cloud.enabled and bool(cloud.access_token)


def is_telemetry_enabled(store: ConfigStore | None = None) -> bool:
    telemetry = (store or get_config_store()).get().telemetry
    return telemetry.enabled and bool(telemetry.api_key)
