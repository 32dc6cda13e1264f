"""Composition root for runtime dependency injection.

Centralizes the creation and wiring of the collaborators a run needs.
This is the single place where concrete implementations are bound to
protocols.

Usage:
    # Default usage
    runtime = RuntimeContainer.runtime()

    # Testing with mocks
    registry = AdapterRegistry()
    registry.register("openai", MockAdapter())
    RuntimeContainer.set_adapters(registry)

    # Reset to defaults
    RuntimeContainer.reset()
"""

import logging
from dataclasses import dataclass, field

from relayplane.config import ConfigStore, CredentialResolver, get_config_store, set_config_store
from relayplane.drivers.adapters import AdapterExecutor, AdapterRegistry
from relayplane.drivers.secrets import default_secret_provider
from relayplane.drivers.telemetry import HttpTelemetryReporter, NullReporter
from relayplane.drivers.tools import LocalToolExecutor
from relayplane.env import DEFAULT_TELEMETRY_ENDPOINT, get_settings
from relayplane.protocols.logger import NullLogger, RichConsoleLogger, RunLogger
from relayplane.protocols.secrets import SecretProvider
from relayplane.protocols.telemetry import TelemetryReporter
from relayplane.protocols.tools import ToolExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Runtime:
    """Collaborators used by one run.

    Builders resolve a Runtime when run() is called, so configuration
    applied after a workflow was built still takes effect.
    """

    store: ConfigStore
    resolver: CredentialResolver
    adapters: AdapterExecutor
    tools: ToolExecutor
    telemetry: TelemetryReporter
    logger: RunLogger = field(default_factory=NullLogger)

    @classmethod
    def build(
        cls,
        store: ConfigStore | None = None,
        adapters: AdapterRegistry | None = None,
        tools: ToolExecutor | None = None,
        telemetry: TelemetryReporter | None = None,
        secrets: SecretProvider | None = None,
        logger: RunLogger | None = None,
    ) -> "Runtime":
        """Assemble a runtime, falling back to the container for anything omitted."""
        store = store or RuntimeContainer.config_store()
        return cls(
            store=store,
            resolver=CredentialResolver(store, secrets or RuntimeContainer.secrets()),
            adapters=AdapterExecutor(adapters or RuntimeContainer.adapters()),
            tools=tools or RuntimeContainer.tools(),
            telemetry=telemetry or RuntimeContainer.telemetry(),
            logger=logger or RuntimeContainer.logger(),
        )


class RuntimeContainer:
    """Service container for runtime dependencies.

    Provides lazy initialization of default implementations and
    allows overriding for testing purposes.

    Components:
    - config_store: Global configuration
    - secrets: Environment tier of credential resolution
    - adapters: Provider adapters for AI steps
    - tools: Tool executor for tool steps
    - telemetry: Run record delivery
    - logger: Human-facing progress output
    """

    _secrets: SecretProvider | None = None
    _adapters: AdapterRegistry | None = None
    _tools: ToolExecutor | None = None
    _telemetry: TelemetryReporter | None = None
    _telemetry_override = False
    _telemetry_key: tuple[str, str] | None = None
    _logger: RunLogger | None = None

    # Configuration
    # Note: Delegates to the config module, which owns the process-wide store

    @classmethod
    def config_store(cls) -> ConfigStore:
        return get_config_store()

    @classmethod
    def set_config_store(cls, store: ConfigStore | None) -> None:
        set_config_store(store)

    # Secrets

    @classmethod
    def secrets(cls) -> SecretProvider:
        """Get the secret provider.

        Returns ChainedSecretProvider (env + dotenv) by default.
        """
        if cls._secrets is None:
            cls._secrets = default_secret_provider()
        return cls._secrets

    @classmethod
    def set_secrets(cls, provider: SecretProvider | None) -> None:
        cls._secrets = provider

    # Adapters

    @classmethod
    def adapters(cls) -> AdapterRegistry:
        """Get the adapter registry.

        Empty by default: adapters are registered by provider packages
        or by the application.
        """
        if cls._adapters is None:
            cls._adapters = AdapterRegistry()
        return cls._adapters

    @classmethod
    def set_adapters(cls, registry: AdapterRegistry | None) -> None:
        cls._adapters = registry

    # Tools

    @classmethod
    def tools(cls) -> ToolExecutor:
        """Get the tool executor.

        Returns LocalToolExecutor (in-process callables) by default.
        """
        if cls._tools is None:
            cls._tools = LocalToolExecutor()
        return cls._tools

    @classmethod
    def set_tools(cls, executor: ToolExecutor | None) -> None:
        cls._tools = executor

    # Telemetry

    @classmethod
    def telemetry(cls) -> TelemetryReporter:
        """Get the telemetry reporter.

        Follows the telemetry configuration: HttpTelemetryReporter when
        telemetry is enabled with an API key, NullReporter otherwise.
        The reporter is rebuilt when the endpoint or key changes.
        """
        if cls._telemetry_override and cls._telemetry is not None:
            return cls._telemetry

        config = cls.config_store().get().telemetry
        if not (config.enabled and config.api_key):
            if cls._telemetry is None or cls._telemetry_key is not None:
                cls._shutdown_telemetry()
                cls._telemetry = NullReporter()
            return cls._telemetry

        key = (config.api_endpoint or DEFAULT_TELEMETRY_ENDPOINT, config.api_key)
        if cls._telemetry is None or cls._telemetry_key != key:
            cls._shutdown_telemetry()
            reporter = HttpTelemetryReporter(
                api_key=config.api_key,
                endpoint=key[0],
                flush_interval_ms=config.flush_interval_ms,
                max_retries=config.max_retries,
            )
            reporter.start()
            cls._telemetry = reporter
            cls._telemetry_key = key
            logger.debug("Telemetry reporting to %s", key[0])
        return cls._telemetry

    @classmethod
    def set_telemetry(cls, reporter: TelemetryReporter | None) -> None:
        """Override the telemetry reporter (None restores the configured one)."""
        cls._shutdown_telemetry()
        cls._telemetry = reporter
        cls._telemetry_override = reporter is not None

    @classmethod
    def _shutdown_telemetry(cls) -> None:
        if cls._telemetry is not None and cls._telemetry_key is not None:
            cls._telemetry.shutdown()
        cls._telemetry = None
        cls._telemetry_key = None

    # Logger

    @classmethod
    def logger(cls) -> RunLogger:
        """Get the run logger.

        RichConsoleLogger when RELAY_VERBOSE is set, NullLogger otherwise.
        """
        if cls._logger is None:
            cls._logger = RichConsoleLogger() if get_settings().verbose else NullLogger()
        return cls._logger

    @classmethod
    def set_logger(cls, run_logger: RunLogger | None) -> None:
        cls._logger = run_logger

    # Runtime

    @classmethod
    def runtime(cls) -> Runtime:
        """Bundle the current components for one run."""
        return Runtime.build()

    # Reset

    @classmethod
    def reset(cls) -> None:
        """Reset all overrides to defaults.

        Call this in test teardown to ensure clean state.
        """
        cls._shutdown_telemetry()
        cls._telemetry_override = False
        cls._secrets = None
        cls._adapters = None
        cls._tools = None
        cls._logger = None
        set_config_store(None)
