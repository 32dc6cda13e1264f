"""AIAdapter protocol definition."""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from relayplane.models import RetryPolicy


class AdapterRequest(BaseModel):
    """Everything an adapter needs to call one model."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    input: Any = None
    prompt: str | None = None
    output_schema: dict[str, Any] | None = None
    api_key: str = ""
    base_url: str | None = None
    retry: RetryPolicy | None = None
    step_name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AdapterError(BaseModel):
    """Categorized failure reported by an adapter."""

    model_config = ConfigDict(frozen=True)

    type: str
    message: str
    recoverable: bool = False
    raw: Any = None


class AdapterResult(BaseModel):
    """Outcome of one adapter call.

    Frozen because results are immutable facts about past calls.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    output: Any = None
    error: AdapterError | None = None
    duration_ms: float = 0.0
    tokens_in: int | None = None
    tokens_out: int | None = None
    model: str | None = None


@runtime_checkable
class AIAdapter(Protocol):
    """Protocol for provider adapters.

    Implementations perform the actual model call (HTTP client, local
    runtime, ...). They should report failures through AdapterResult,
    but the executor normalizes anything they raise.
    """

    async def execute(self, request: AdapterRequest) -> AdapterResult:
        """Call the model and return its result."""
        ...
