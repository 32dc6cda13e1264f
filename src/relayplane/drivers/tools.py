"""Tool server registry and in-process tool executor."""

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from relayplane.exceptions import ServerNotFoundError
from relayplane.protocols.tools import ToolCallResult, ToolExecutionContext, ToolServer

if TYPE_CHECKING:
    from relayplane.config import ToolServerConfig

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any], ToolExecutionContext], Any]


class ToolServerRegistry:
    """Tool servers known to a run, keyed by server name."""

    def __init__(self, servers: list[ToolServer] | None = None) -> None:
        self._servers: dict[str, ToolServer] = {}
        for server in servers or []:
            self.register(server)

    @classmethod
    def from_config(cls, servers: Mapping[str, "ToolServerConfig"]) -> "ToolServerRegistry":
        """Build a registry from the mcp.servers section of the configuration."""
        return cls([ToolServer(name=name, **cfg.model_dump()) for name, cfg in servers.items()])

    def register(self, server: ToolServer) -> None:
        self._servers[server.name] = server

    def get(self, name: str) -> ToolServer | None:
        return self._servers.get(name)

    def require(self, name: str) -> ToolServer:
        """Get an enabled server by name.

        Raises:
            ServerNotFoundError: If the server is unknown or disabled
        """
        server = self.get(name)
        if server is None:
            raise ServerNotFoundError(name)
        if not server.enabled:
            raise ServerNotFoundError(name, disabled=True)
        return server

    def list_all(self) -> list[str]:
        return list(self._servers)


class LocalToolExecutor:
    """Executes tools as in-process Python callables.

    Handlers are registered per "server:tool" and receive the rendered
    params and the execution context. They may be sync or async.

    Usage:
        tools = LocalToolExecutor()

        @tools.tool("crm", "create_contact")
        def create_contact(params, context):
            return {"id": 42, **params}
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, server: str, tool: str, handler: ToolHandler) -> None:
        self._handlers[f"{server}:{tool}"] = handler

    def tool(self, server: str, name: str) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of register()."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(server, name, handler)
            return handler

        return decorator

    def list_all(self) -> list[str]:
        return list(self._handlers)

    async def execute(
        self,
        server: ToolServer,
        tool: str,
        params: dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolCallResult:
        started = time.perf_counter()
        handler = self._handlers.get(f"{server.name}:{tool}")
        if handler is None:
            return ToolCallResult(
                success=False,
                error=f"Tool '{tool}' not found on server '{server.name}'",
            )

        try:
            if inspect.iscoroutinefunction(handler):
                output = await handler(params, context)
            else:
                # Sync handlers run off the event loop
                output = await asyncio.to_thread(handler, params, context)
                if inspect.isawaitable(output):
                    output = await output
        except Exception as e:
            logger.debug("Tool %s:%s raised %r", server.name, tool, e)
            return ToolCallResult(
                success=False,
                error=str(e) or type(e).__name__,
                duration_ms=(time.perf_counter() - started) * 1000,
            )

        return ToolCallResult(
            success=True,
            output=output,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
