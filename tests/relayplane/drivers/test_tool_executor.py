"""Tests for the tool server registry and tool executors."""

import pytest

from relayplane.config import ToolServerConfig
from relayplane.drivers.mocks import MockToolExecutor
from relayplane.drivers.tools import LocalToolExecutor, ToolServerRegistry
from relayplane.exceptions import ServerNotFoundError
from relayplane.protocols.tools import ToolExecutionContext, ToolExecutor, ToolServer


@pytest.fixture
def server() -> ToolServer:
    return ToolServer(name="crm", url="http://crm.local")


@pytest.fixture
def context() -> ToolExecutionContext:
    return ToolExecutionContext(
        workflow_name="wf",
        step_name="create",
        run_id="run_1",
        input={"text": "x"},
        previous_steps={"extract": {"vendor": "Acme"}},
    )


class TestToolServerRegistry:
    def test_from_config(self) -> None:
        registry = ToolServerRegistry.from_config(
            {
                "crm": ToolServerConfig(url="http://crm.local", credentials={"token": "t"}),
                "files": ToolServerConfig(command="files-server --stdio"),
            }
        )

        assert registry.list_all() == ["crm", "files"]
        crm = registry.require("crm")
        assert crm.url == "http://crm.local"
        assert crm.credentials == {"token": "t"}
        assert registry.require("files").command == "files-server --stdio"

    def test_unknown_server(self) -> None:
        with pytest.raises(ServerNotFoundError) as exc_info:
            ToolServerRegistry().require("crm")
        assert exc_info.value.server == "crm"
        assert not exc_info.value.disabled

    def test_disabled_server(self) -> None:
        registry = ToolServerRegistry([ToolServer(name="crm", enabled=False)])
        assert registry.get("crm") is not None
        with pytest.raises(ServerNotFoundError, match="disabled"):
            registry.require("crm")


class TestLocalToolExecutor:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(LocalToolExecutor(), ToolExecutor)

    @pytest.mark.asyncio
    async def test_sync_handler(self, server: ToolServer, context: ToolExecutionContext) -> None:
        tools = LocalToolExecutor()

        @tools.tool("crm", "create_contact")
        def create_contact(params, ctx):
            return {"id": 42, "step": ctx.step_name, **params}

        result = await tools.execute(server, "create_contact", {"name": "Acme"}, context)

        assert result.success
        assert result.output == {"id": 42, "step": "create", "name": "Acme"}
        assert tools.list_all() == ["crm:create_contact"]

    @pytest.mark.asyncio
    async def test_async_handler(self, server: ToolServer, context: ToolExecutionContext) -> None:
        tools = LocalToolExecutor()

        async def search(params, ctx):
            return [params["q"]]

        tools.register("crm", "search", search)

        result = await tools.execute(server, "search", {"q": "acme"}, context)
        assert result.output == ["acme"]

    @pytest.mark.asyncio
    async def test_missing_tool(self, server: ToolServer, context: ToolExecutionContext) -> None:
        result = await LocalToolExecutor().execute(server, "delete", {}, context)
        assert not result.success
        assert result.error == "Tool 'delete' not found on server 'crm'"

    @pytest.mark.asyncio
    async def test_handler_exception(self, server: ToolServer, context: ToolExecutionContext) -> None:
        tools = LocalToolExecutor()

        @tools.tool("crm", "explode")
        def explode(params, ctx):
            raise RuntimeError("kaboom")

        result = await tools.execute(server, "explode", {}, context)

        assert not result.success
        assert result.error == "kaboom"


class TestMockToolExecutor:
    @pytest.mark.asyncio
    async def test_records_calls(self, server: ToolServer, context: ToolExecutionContext) -> None:
        tools = MockToolExecutor({"crm:search": lambda params, ctx: {"hits": params["q"]}})

        result = await tools.execute(server, "search", {"q": "acme"}, context)

        assert result.output == {"hits": "acme"}
        assert tools.calls[0]["server"] == "crm"
        assert tools.calls[0]["context"] is context

    @pytest.mark.asyncio
    async def test_default_echo(self, server: ToolServer, context: ToolExecutionContext) -> None:
        result = await MockToolExecutor().execute(server, "search", {"q": 1}, context)
        assert result.output == {"tool": "search", "params": {"q": 1}}
