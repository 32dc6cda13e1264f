"""ToolExecutor protocol definition."""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class ToolServer(BaseModel):
    """A registered tool server."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str | None = None
    command: str | None = None
    credentials: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True


class ToolExecutionContext(BaseModel):
    """Identifiers and data passed along with a tool call."""

    model_config = ConfigDict(frozen=True)

    workflow_name: str
    step_name: str
    run_id: str
    input: Any = None
    previous_steps: dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """Outcome of one tool call."""

    model_config = ConfigDict(frozen=True)

    success: bool
    output: Any = None
    error: str | None = None
    duration_ms: float = 0.0


@runtime_checkable
class ToolExecutor(Protocol):
    """Protocol for tool execution.

    Enables swapping execution strategies (in-process, MCP client,
    sandboxed) without changing the dispatcher.
    """

    async def execute(
        self,
        server: ToolServer,
        tool: str,
        params: dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolCallResult:
        """Execute a tool on a server with the given parameters."""
        ...
