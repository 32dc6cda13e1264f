"""Mock collaborators for testing and dry runs.

Provide in-memory implementations of the adapter and tool executor
protocols that record every call instead of reaching a provider.
"""

from typing import Any

from relayplane.protocols.adapter import AdapterError, AdapterRequest, AdapterResult, AIAdapter
from relayplane.protocols.tools import ToolCallResult, ToolExecutionContext, ToolExecutor, ToolServer


class MockAdapter:
    """Mock model adapter.

    Responses are keyed by model name (or "provider:model"). A response
    may be an AdapterResult, an exception to raise, a callable taking the
    request, or any plain value used as the output. Models without a
    response echo the request.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[AdapterRequest] = []

    def set_response(self, model: str, response: Any) -> None:
        self.responses[model] = response

    def fail(
        self,
        model: str,
        message: str,
        error_type: str = "ProviderError",
        recoverable: bool = False,
    ) -> None:
        """Make every call to a model fail with the given error."""
        self.responses[model] = AdapterResult(
            success=False,
            error=AdapterError(type=error_type, message=message, recoverable=recoverable),
        )

    @property
    def models_called(self) -> list[str]:
        return [f"{call.provider}:{call.model}" for call in self.calls]

    async def execute(self, request: AdapterRequest) -> AdapterResult:
        self.calls.append(request)

        key = f"{request.provider}:{request.model}"
        response = self.responses.get(key, self.responses.get(request.model))
        if response is None:
            return AdapterResult(
                success=True,
                output={"model": request.model, "prompt": request.prompt, "input": request.input},
                model=request.model,
            )
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(request)
        if isinstance(response, AdapterResult):
            return response
        return AdapterResult(success=True, output=response, model=request.model)

    def reset(self) -> None:
        """Clear recorded calls."""
        self.calls.clear()


class MockToolExecutor:
    """Mock tool executor.

    Responses are keyed by "server:tool" and follow the same rules as
    MockAdapter. Tools without a response echo their params.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[dict[str, Any]] = []

    def set_response(self, target: str, response: Any) -> None:
        self.responses[target] = response

    async def execute(
        self,
        server: ToolServer,
        tool: str,
        params: dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolCallResult:
        self.calls.append({
            "server": server.name,
            "tool": tool,
            "params": params,
            "context": context,
        })

        response = self.responses.get(f"{server.name}:{tool}")
        if response is None:
            return ToolCallResult(success=True, output={"tool": tool, "params": params})
        if isinstance(response, Exception):
            return ToolCallResult(success=False, error=str(response))
        if callable(response):
            response = response(params, context)
        if isinstance(response, ToolCallResult):
            return response
        return ToolCallResult(success=True, output=response)

    def reset(self) -> None:
        """Clear recorded calls."""
        self.calls.clear()


# Verify protocol compliance at import time
assert isinstance(MockAdapter(), AIAdapter)
assert isinstance(MockToolExecutor(), ToolExecutor)
