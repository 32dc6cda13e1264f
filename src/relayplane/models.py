"""Pydantic models for workflow graphs and their results.

These models define the structure of a workflow definition (steps,
targets, dependencies), the options accepted by a run, and the
WorkflowResult returned to the caller.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class StepKind(str, Enum):
    """Kind of a workflow step."""

    AI = "ai"
    TOOL = "mcp"


class StepStatus(str, Enum):
    """Status of a single step within a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class RetryPolicy(BaseModel):
    """Retry configuration handed to the adapter collaborator."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=0, ge=0, description="Retries after the first attempt")
    backoff_ms: int | None = Field(default=None, ge=0, description="Base backoff delay")


class StepConfig(BaseModel):
    """Options attached to a step.

    Unknown keys (temperature, max_tokens, ...) are kept and forwarded
    to the adapter as step metadata.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    output_schema: dict[str, Any] | None = Field(
        default=None, alias="schema", description="JSON Schema for structured output"
    )
    system_prompt: str | None = Field(default=None, description="System prompt text")
    user_prompt: str | None = Field(default=None, description="User prompt template")
    retry: RetryPolicy | None = Field(default=None, description="Retry policy")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Arbitrary metadata")

    def extras(self) -> dict[str, Any]:
        """Return the extra keys supplied beyond the declared fields."""
        return dict(self.model_extra or {})


class StepDefinition(BaseModel):
    """One node in the workflow graph.

    Frozen because a declared step is shared, immutable history for
    every builder value created after it.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: StepKind
    target: str = Field(..., description="provider:model or server:tool")
    params: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    config: StepConfig = Field(default_factory=StepConfig)
    depends_on: tuple[str, ...] = ()
    fallback_models: tuple[str, ...] = ()

    @property
    def is_ai(self) -> bool:
        return self.kind == StepKind.AI


class WebhookConfig(BaseModel):
    """Webhook trigger recorded for the cloud collaborator."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    method: Literal["POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)


class ScheduleConfig(BaseModel):
    """Cron schedule recorded for the cloud collaborator."""

    model_config = ConfigDict(frozen=True)

    cron: str
    timezone: str | None = None


class CloudFeatures(BaseModel):
    """Cross-cutting features that do not affect local execution."""

    model_config = ConfigDict(frozen=True)

    webhook: WebhookConfig | None = None
    schedule: ScheduleConfig | None = None

    def names(self) -> list[str]:
        """Human-readable names of the configured features."""
        features = []
        if self.webhook:
            features.append("webhooks")
        if self.schedule:
            features.append("schedules")
        return features


class WorkflowGraph(BaseModel):
    """Ordered collection of step definitions plus workflow features."""

    model_config = ConfigDict(frozen=True)

    name: str
    steps: tuple[StepDefinition, ...] = ()
    features: CloudFeatures = Field(default_factory=CloudFeatures)

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def get(self, name: str) -> StepDefinition | None:
        """Get a step by name."""
        for step in self.steps:
            if step.name == name:
                return step
        return None


class ProviderConfig(BaseModel):
    """Credentials for a model provider."""

    api_key: str
    base_url: str | None = None
    organization: str | None = None


class RunOptions(BaseModel):
    """Options for a single run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    providers: dict[str, ProviderConfig] = Field(
        default_factory=dict, description="Per-run credential overrides"
    )
    timeout_ms: int | None = Field(default=None, gt=0, description="Workflow-level timeout")
    signal: asyncio.Event | None = Field(default=None, description="Set to cancel the run")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Tags for this run")


class StepLog(BaseModel):
    """Record of one executed step, used for telemetry."""

    step_name: str
    status: StepStatus
    started_at: datetime
    completed_at: datetime | None = None
    output: Any = None
    error_type: str | None = None
    error_message: str | None = None
    model: str | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    duration_ms: float | None = None


class WorkflowErrorInfo(BaseModel):
    """First failure encountered in a run."""

    message: str
    type: str
    step_name: str | None = None
    details: Any = None


class ResultMetadata(BaseModel):
    """Timing and identity of a run. Always present."""

    workflow_name: str
    run_id: str
    start_time: datetime
    end_time: datetime
    duration_ms: float
    run_metadata: dict[str, Any] = Field(default_factory=dict)


class WorkflowResult(BaseModel):
    """Terminal report of a workflow run."""

    success: bool
    steps: dict[str, Any] = Field(default_factory=dict)
    final_output: Any = None
    error: WorkflowErrorInfo | None = None
    metadata: ResultMetadata


class CostCaps(BaseModel):
    """Cost controls for a policy."""

    max_cost_per_execution: float | None = None
    max_tokens_per_execution: int | None = None
    max_retries: int | None = None


class PolicyRetry(BaseModel):
    """Retry settings for a policy."""

    max_attempts: int | None = None
    delay_ms: int | None = None
    backoff_multiplier: float | None = None


class Policy(BaseModel):
    """Named, reusable model configuration.

    Validated when passed to configure().
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str | None = None
    description: str | None = None
    model: str = ""
    fallback: list[str] = Field(default_factory=list)
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    cost_caps: CostCaps | None = None
    retry: PolicyRetry | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
