"""TelemetryReporter protocol definition."""

from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TokenUsage(BaseModel):
    """Token counts for a step."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    prompt: int
    completion: int
    total: int


class TelemetryStepLog(BaseModel):
    """Step entry of a telemetry run record."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    step_name: str
    status: Literal["success", "failed"]
    started_at: str
    completed_at: str
    output: Any = None
    error_type: str | None = None
    error_message: str | None = None
    model: str | None = None
    token_usage: TokenUsage | None = None


class TelemetryRun(BaseModel):
    """Normalized record of one workflow run.

    Frozen because records are immutable facts about past runs.
    Timestamps are ISO 8601 strings. Serialized with camelCase keys
    (model_dump(by_alias=True)) for the wire.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    run_id: str
    workflow_name: str
    status: Literal["success", "failed"]
    started_at: str
    completed_at: str
    error_type: str | None = None
    error_message: str | None = None
    steps: list[TelemetryStepLog] = Field(default_factory=list)


class TelemetryBatch(BaseModel):
    """Payload delivered to the telemetry endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    schema_version: str = "1.0"
    logs: list[TelemetryRun] = Field(default_factory=list)


@runtime_checkable
class TelemetryReporter(Protocol):
    """Protocol for telemetry reporters.

    The core only builds run records and enqueues them. Delivery,
    batching and retry belong to the implementation, and enqueue must
    return without waiting for delivery.
    """

    def enqueue(self, run: TelemetryRun) -> None:
        """Queue a run record for delivery."""
        ...

    def flush(self) -> None:
        """Deliver anything queued so far."""
        ...

    def shutdown(self) -> None:
        """Stop background work after a final flush."""
        ...
