"""Collaborator contracts consumed by the workflow core.

- AIAdapter: model calls for AI steps
- ToolExecutor: tool server calls for tool steps
- TelemetryReporter: delivery of run records
- SecretProvider: environment tier of credential resolution
- RunLogger: human-facing progress output

Implementations live in relayplane.drivers.
"""

from relayplane.protocols.adapter import AdapterError, AdapterRequest, AdapterResult, AIAdapter
from relayplane.protocols.logger import ListLogger, NullLogger, RichConsoleLogger, RunLogger
from relayplane.protocols.secrets import SecretProvider
from relayplane.protocols.telemetry import (
    TelemetryBatch,
    TelemetryReporter,
    TelemetryRun,
    TelemetryStepLog,
    TokenUsage,
)
from relayplane.protocols.tools import (
    ToolCallResult,
    ToolExecutionContext,
    ToolExecutor,
    ToolServer,
)

__all__ = [
    "AIAdapter",
    "AdapterError",
    "AdapterRequest",
    "AdapterResult",
    "RunLogger",
    "RichConsoleLogger",
    "NullLogger",
    "ListLogger",
    "SecretProvider",
    "TelemetryBatch",
    "TelemetryReporter",
    "TelemetryRun",
    "TelemetryStepLog",
    "TokenUsage",
    "ToolCallResult",
    "ToolExecutionContext",
    "ToolExecutor",
    "ToolServer",
]
