"""RelayPlane exception hierarchy.

Provides a unified exception hierarchy for workflow construction and
execution. This enables:
- Synchronous errors for caller bugs while building a workflow
- Structured, categorized errors inside WorkflowResult.error
- Clear distinction between graph, configuration and execution failures

Usage:
    from relayplane.exceptions import GraphValidationError, RelayError

    try:
        relay.workflow("demo").step("a").with_model("openai:gpt-4o").depends("z")
    except GraphValidationError as e:
        print(f"Invalid workflow: {e.message}")
    except RelayError as e:
        print(f"RelayPlane error: {e}")
"""

from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Coarse error category reported in WorkflowResult.error.type."""

    VALIDATION = "ValidationError"
    CONFIGURATION = "ConfigurationError"
    TIMEOUT = "TimeoutError"
    RATE_LIMIT = "RateLimitError"
    AUTHENTICATION = "AuthenticationError"
    PROVIDER = "ProviderError"
    TOOL = "ToolError"
    TEMPLATE = "TemplateError"
    CANCELLATION = "CancellationError"
    MISSING_DEPENDENCY = "MissingDependencyError"
    UNKNOWN = "UnknownError"


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Configuration
    PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"
    INVALID_CONFIG = "INVALID_CONFIG"

    # Policies
    POLICY_NOT_FOUND = "POLICY_NOT_FOUND"
    POLICY_INVALID = "POLICY_INVALID"

    # Workflow graph
    WORKFLOW_INVALID = "WORKFLOW_INVALID"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    DUPLICATE_STEP = "DUPLICATE_STEP"
    INVALID_TARGET = "INVALID_TARGET"
    INCOMPLETE_STEP = "INCOMPLETE_STEP"

    # Execution
    STEP_FAILED = "STEP_FAILED"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"

    # Templates
    TEMPLATE_ERROR = "TEMPLATE_ERROR"

    # Tool servers
    MCP_SERVER_NOT_FOUND = "MCP_SERVER_NOT_FOUND"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class RelayError(Exception):
    """Base exception for all RelayPlane errors.

    All RelayPlane-specific exceptions inherit from this class, allowing
    callers to catch all SDK errors with a single except clause.
    """

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    error_type: ErrorType = ErrorType.UNKNOWN

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        """Extra fields describing the failure."""
        return {}

    def to_payload(self) -> dict[str, Any]:
        """Serialize the error for logs and telemetry."""
        return {
            "code": self.code.value,
            "type": self.error_type.value,
            "message": self.message,
            "context": self.context(),
        }


# Graph Validity Errors


class GraphValidationError(RelayError):
    """Base class for malformed workflow graphs.

    Detected before any step executes and never retried.
    """

    code = ErrorCode.WORKFLOW_INVALID
    error_type = ErrorType.VALIDATION


class EmptyWorkflowError(GraphValidationError):
    """Workflow has no name or no steps."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid workflow: {reason}")


class DuplicateStepError(GraphValidationError):
    """A step name was declared twice in the same workflow."""

    code = ErrorCode.DUPLICATE_STEP

    def __init__(self, step_name: str) -> None:
        self.step_name = step_name
        super().__init__(f"Step '{step_name}' is already defined in this workflow")

    def context(self) -> dict[str, Any]:
        return {"step_name": self.step_name}


class ReservedStepNameError(GraphValidationError):
    """A step name collides with a template variable."""

    def __init__(self, step_name: str) -> None:
        self.step_name = step_name
        super().__init__(
            f"Step name '{step_name}' is reserved for template placeholders"
        )

    def context(self) -> dict[str, Any]:
        return {"step_name": self.step_name}


class InvalidTargetError(GraphValidationError):
    """Target string is not of the form 'left:right'."""

    code = ErrorCode.INVALID_TARGET

    def __init__(self, target: str, expected: str, example: str) -> None:
        self.target = target
        self.expected = expected
        super().__init__(
            f'Invalid target format: "{target}". Expected "{expected}" (e.g., "{example}")'
        )

    def context(self) -> dict[str, Any]:
        return {"target": self.target, "expected": self.expected}


class UnknownDependencyError(GraphValidationError):
    """A step depends on a name that was not declared before it."""

    code = ErrorCode.MISSING_DEPENDENCY

    def __init__(self, step_name: str, dependency: str, available: list[str]) -> None:
        self.step_name = step_name
        self.dependency = dependency
        self.available = available
        declared = ", ".join(available) or "(none)"
        super().__init__(
            f"Step '{step_name}' depends on '{dependency}', which is not declared "
            f"before it. Declared steps: {declared}"
        )

    def context(self) -> dict[str, Any]:
        return {"step_name": self.step_name, "dependency": self.dependency}


class CircularDependencyError(GraphValidationError):
    """The dependency graph contains a cycle."""

    code = ErrorCode.CIRCULAR_DEPENDENCY

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")

    def context(self) -> dict[str, Any]:
        return {"cycle": self.cycle}


class IncompleteStepError(GraphValidationError):
    """A step was declared but never bound to a model or tool."""

    code = ErrorCode.INCOMPLETE_STEP

    def __init__(self, step_name: str, missing: str) -> None:
        self.step_name = step_name
        self.missing = missing
        super().__init__(f"Step '{step_name}' is incomplete: {missing}")

    def context(self) -> dict[str, Any]:
        return {"step_name": self.step_name}


class WorkflowDefinitionError(GraphValidationError):
    """A workflow definition file could not be read or is malformed."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid workflow definition {source}: {reason}")

    def context(self) -> dict[str, Any]:
        return {"source": self.source}


# Configuration Errors


class ConfigurationError(RelayError):
    """Error in SDK configuration.

    Raised when a step cannot dispatch because a credential, tool server
    or policy is missing or invalid.
    """

    code = ErrorCode.INVALID_CONFIG
    error_type = ErrorType.CONFIGURATION


class ProviderNotConfiguredError(ConfigurationError):
    """No credential tier supplied an API key for a provider."""

    code = ErrorCode.PROVIDER_NOT_CONFIGURED

    def __init__(self, provider: str, env_var: str) -> None:
        self.provider = provider
        self.env_var = env_var
        super().__init__(
            f"Missing API key for provider '{provider}'. Set the {env_var} environment "
            f"variable, pass it via configure(providers=...) or per run."
        )

    def context(self) -> dict[str, Any]:
        return {"provider": self.provider, "env_var": self.env_var}


class ServerNotFoundError(ConfigurationError):
    """Tool server is not registered or is disabled."""

    code = ErrorCode.MCP_SERVER_NOT_FOUND

    def __init__(self, server: str, disabled: bool = False) -> None:
        self.server = server
        self.disabled = disabled
        if disabled:
            message = f'MCP server "{server}" is disabled'
        else:
            message = f'MCP server "{server}" not found. Did you configure it in configure(mcp=...)?'
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"server": self.server, "disabled": self.disabled}


class PolicyNotFoundError(ConfigurationError):
    """Policy ID is not configured."""

    code = ErrorCode.POLICY_NOT_FOUND

    def __init__(self, policy_id: str, available: list[str]) -> None:
        self.policy_id = policy_id
        self.available = available
        super().__init__(
            f'Policy "{policy_id}" not found. '
            f"Available policies: {', '.join(available) or '(none)'}"
        )


class InvalidPolicyError(ConfigurationError):
    """Policy configuration failed validation."""

    code = ErrorCode.POLICY_INVALID

    def __init__(self, policy_id: str, reason: str) -> None:
        self.policy_id = policy_id
        self.reason = reason
        super().__init__(f'Policy "{policy_id}" is invalid: {reason}')


# Execution Errors


class StepExecutionError(RelayError):
    """A collaborator reported a step failure.

    The category comes from the adapter or tool executor and is passed
    through unchanged.
    """

    code = ErrorCode.STEP_FAILED

    def __init__(
        self,
        step_name: str,
        message: str,
        error_type: str | ErrorType = ErrorType.PROVIDER,
        details: Any = None,
    ) -> None:
        self.step_name = step_name
        self.reported_type = error_type.value if isinstance(error_type, ErrorType) else error_type
        self.details = details
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"step_name": self.step_name}


class TemplateRenderError(RelayError):
    """A template placeholder could not be resolved."""

    code = ErrorCode.TEMPLATE_ERROR
    error_type = ErrorType.TEMPLATE

    def __init__(self, template: str, reason: str) -> None:
        self.template = template
        self.reason = reason
        super().__init__(f"Template error: {reason}")


class WorkflowCancelledError(RelayError):
    """Caller aborted the run via its cancellation signal."""

    code = ErrorCode.CANCELLED
    error_type = ErrorType.CANCELLATION

    def __init__(self, workflow_name: str) -> None:
        self.workflow_name = workflow_name
        super().__init__(f"Workflow '{workflow_name}' was cancelled")


class WorkflowTimeoutError(RelayError):
    """The run exceeded its workflow-level timeout."""

    code = ErrorCode.TIMEOUT
    error_type = ErrorType.TIMEOUT

    def __init__(self, workflow_name: str, timeout_ms: int) -> None:
        self.workflow_name = workflow_name
        self.timeout_ms = timeout_ms
        super().__init__(f"Workflow '{workflow_name}' timed out after {timeout_ms}ms")
