"""Tests for policy execution."""

import pytest

from relayplane.container import Runtime
from relayplane.drivers.mocks import MockAdapter
from relayplane.drivers.telemetry import MemoryReporter
from relayplane.exceptions import PolicyNotFoundError, ProviderNotConfiguredError
from relayplane.policies import execute, get_policy, has_policy, interpolate, list_policies
from relayplane.protocols.adapter import AdapterResult


@pytest.fixture
def policy_runtime(runtime: Runtime) -> Runtime:
    runtime.store.configure(
        policies={
            "summarize": {
                "model": "openai:gpt-4o",
                "fallback": ["anthropic:claude-3-haiku"],
                "system_prompt": "Be terse",
                "max_tokens": 256,
                "temperature": 0.3,
                "retry": {"max_attempts": 2},
                "metadata": {"team": "docs"},
            },
            "capped": {
                "model": "openai:gpt-4o-mini",
                "cost_caps": {"max_tokens_per_execution": 120},
            },
        }
    )
    return runtime


class TestLookup:
    def test_lookup(self, policy_runtime: Runtime) -> None:
        assert has_policy("summarize", runtime=policy_runtime)
        assert not has_policy("missing", runtime=policy_runtime)
        assert list_policies(runtime=policy_runtime) == ["summarize", "capped"]
        assert get_policy("summarize", runtime=policy_runtime).model == "openai:gpt-4o"
        assert get_policy("missing", runtime=policy_runtime) is None


class TestInterpolate:
    def test_replaces_known_variables(self) -> None:
        assert interpolate("Hi {{name}} and {{ name }}", {"name": "Ada"}) == "Hi Ada and Ada"

    def test_leaves_unknown_placeholders(self) -> None:
        assert interpolate("Hi {{ name }} {{ other }}", {"name": "Ada"}) == "Hi Ada {{ other }}"

    def test_values_are_stringified(self) -> None:
        assert interpolate("n={{ n }}", {"n": 3}) == "n=3"


class TestExecute:
    @pytest.mark.asyncio
    async def test_primary_model_answers(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        mock_adapter.set_response("gpt-4o", "short summary")

        result = await execute(
            "summarize", "Summarize {{ text }}", {"text": "the doc"}, runtime=policy_runtime
        )

        assert result.success
        assert result.output == "short summary"
        assert result.model == "openai:gpt-4o"
        assert not result.used_fallback
        assert result.policy_id == "summarize"
        assert result.run_id.startswith("run_")

        request = mock_adapter.calls[0]
        assert request.prompt == "Be terse\n\nSummarize the doc"
        assert request.metadata["policy_id"] == "summarize"
        assert request.metadata["team"] == "docs"
        assert request.metadata["max_tokens"] == 256
        assert request.metadata["temperature"] == 0.3
        assert request.retry.max_retries == 2

    @pytest.mark.asyncio
    async def test_unresolved_placeholders_reach_the_model_verbatim(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        result = await execute(
            "summarize",
            "Fill {{ missing }}",
            system_prompt="Override {{ x }}",
            runtime=policy_runtime,
        )

        assert result.success
        assert mock_adapter.calls[0].prompt == "Override {{ x }}\n\nFill {{ missing }}"

    @pytest.mark.asyncio
    async def test_schema_is_forwarded(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        schema = {"type": "object", "properties": {"title": {"type": "string"}}}
        await execute("summarize", "x", schema=schema, runtime=policy_runtime)
        assert mock_adapter.calls[0].output_schema == schema

    @pytest.mark.asyncio
    async def test_fallback_model_answers(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        mock_adapter.fail("gpt-4o", "overloaded")
        mock_adapter.set_response("claude-3-haiku", "from fallback")

        result = await execute("summarize", "x", runtime=policy_runtime)

        assert result.success
        assert result.output == "from fallback"
        assert result.model == "anthropic:claude-3-haiku"
        assert result.used_fallback

    @pytest.mark.asyncio
    async def test_every_model_fails(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        mock_adapter.fail("gpt-4o", "overloaded")
        mock_adapter.fail("claude-3-haiku", "also overloaded")

        result = await execute("summarize", "x", runtime=policy_runtime)

        assert not result.success
        assert result.error == "also overloaded"
        assert result.output is None

    @pytest.mark.asyncio
    async def test_usage_is_reported(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        mock_adapter.set_response(
            "gpt-4o-mini", AdapterResult(success=True, output="ok", tokens_in=40, tokens_out=30)
        )

        result = await execute("capped", "x", runtime=policy_runtime)

        assert result.success
        assert result.usage.prompt_tokens == 40
        assert result.usage.completion_tokens == 30
        assert result.usage.total_tokens == 70

    @pytest.mark.asyncio
    async def test_token_cap(self, policy_runtime: Runtime, mock_adapter: MockAdapter) -> None:
        mock_adapter.set_response(
            "gpt-4o-mini", AdapterResult(success=True, output="long", tokens_in=100, tokens_out=50)
        )

        result = await execute("capped", "x", runtime=policy_runtime)

        assert not result.success
        assert result.error == "Token cap exceeded: 150 > 120"

    @pytest.mark.asyncio
    async def test_unknown_policy(self, policy_runtime: Runtime) -> None:
        with pytest.raises(PolicyNotFoundError, match="summarize, capped"):
            await execute("missing", "x", runtime=policy_runtime)

    @pytest.mark.asyncio
    async def test_unconfigured_primary_provider(
        self, policy_runtime: Runtime, mock_adapter: MockAdapter
    ) -> None:
        policy_runtime.store.configure(policies={"gemini": {"model": "google:gemini-pro"}})

        with pytest.raises(ProviderNotConfiguredError, match="GOOGLE_API_KEY"):
            await execute("gemini", "x", runtime=policy_runtime)
        assert mock_adapter.calls == []

    @pytest.mark.asyncio
    async def test_run_is_reported_to_telemetry(
        self, policy_runtime: Runtime, reporter: MemoryReporter
    ) -> None:
        result = await execute("summarize", "x", runtime=policy_runtime)

        [record] = reporter.runs
        assert record.run_id == result.run_id
        assert record.workflow_name == "policy-summarize"
