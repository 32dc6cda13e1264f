"""RelayPlane - build and run multi-step AI workflows.

Usage:
    import relayplane as relay

    relay.configure(providers={"openai": {"api_key": "sk-..."}})

    result = await (
        relay.workflow("invoice-processor")
        .step("extract", {"schema": Invoice.model_json_schema()})
        .with_model("openai:gpt-4o")
        .prompt("Extract the vendor and total from: {{ input.text }}")
        .step("create")
        .mcp("crm:create_contact")
        .params({"vendor": "{{ steps.extract.vendor }}"})
        .depends("extract")
        .run({"text": invoice_text})
    )

    if result.success:
        print(result.final_output)
    else:
        print(result.error.step_name, result.error.message)
"""

__version__ = "0.1.0"

from relayplane.builder import (
    AwaitingParams,
    BoundAIStep,
    BoundToolStep,
    CompletedStep,
    PendingStep,
    WorkflowBuilder,
    execute_graph,
    workflow,
)
from relayplane.config import (
    ConfigStore,
    CredentialResolver,
    GlobalConfig,
    configure,
    get_config,
    is_cloud_enabled,
    is_telemetry_enabled,
    reset_config,
)
from relayplane.container import Runtime, RuntimeContainer
from relayplane.exceptions import (
    CircularDependencyError,
    ConfigurationError,
    DuplicateStepError,
    ErrorType,
    GraphValidationError,
    IncompleteStepError,
    InvalidTargetError,
    ProviderNotConfiguredError,
    RelayError,
    ReservedStepNameError,
    ServerNotFoundError,
    StepExecutionError,
    UnknownDependencyError,
)
from relayplane.loader import load_workflow, workflow_from_dict
from relayplane.models import (
    Policy,
    ProviderConfig,
    RetryPolicy,
    RunOptions,
    StepConfig,
    StepDefinition,
    WorkflowGraph,
    WorkflowResult,
)
from relayplane.policies import (
    PolicyExecuteResult,
    execute,
    get_policy,
    has_policy,
    list_policies,
)

__all__ = [
    "__version__",
    # Builder
    "workflow",
    "execute_graph",
    "WorkflowBuilder",
    "PendingStep",
    "AwaitingParams",
    "CompletedStep",
    "BoundAIStep",
    "BoundToolStep",
    # Configuration
    "configure",
    "get_config",
    "reset_config",
    "is_cloud_enabled",
    "is_telemetry_enabled",
    "ConfigStore",
    "CredentialResolver",
    "GlobalConfig",
    "Runtime",
    "RuntimeContainer",
    # Models
    "Policy",
    "ProviderConfig",
    "RetryPolicy",
    "RunOptions",
    "StepConfig",
    "StepDefinition",
    "WorkflowGraph",
    "WorkflowResult",
    # Policies
    "execute",
    "get_policy",
    "has_policy",
    "list_policies",
    "PolicyExecuteResult",
    # Definition files
    "load_workflow",
    "workflow_from_dict",
    # Errors
    "RelayError",
    "ErrorType",
    "GraphValidationError",
    "DuplicateStepError",
    "InvalidTargetError",
    "UnknownDependencyError",
    "CircularDependencyError",
    "IncompleteStepError",
    "ReservedStepNameError",
    "ConfigurationError",
    "ProviderNotConfiguredError",
    "ServerNotFoundError",
    "StepExecutionError",
]
