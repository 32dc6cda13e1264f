"""Tests for the fluent workflow builder."""

import pytest

from relayplane.builder import (
    AwaitingParams,
    BoundAIStep,
    BoundToolStep,
    PendingStep,
    WorkflowBuilder,
    workflow,
)
from relayplane.exceptions import (
    DuplicateStepError,
    IncompleteStepError,
    InvalidTargetError,
    ReservedStepNameError,
    UnknownDependencyError,
)
from relayplane.models import StepConfig, StepKind
from relayplane.scheduler import topological_order


class TestChainStates:
    def test_workflow_returns_builder(self) -> None:
        builder = workflow("invoice")
        assert isinstance(builder, WorkflowBuilder)
        assert builder.name == "invoice"
        assert builder.step_names == []

    def test_step_returns_pending(self) -> None:
        assert isinstance(workflow("wf").step("extract"), PendingStep)

    def test_with_model_binds_ai_step(self) -> None:
        chain = workflow("wf").step("extract").with_model("openai:gpt-4o")
        assert isinstance(chain, BoundAIStep)

        step = chain.graph.steps[0]
        assert step.kind == StepKind.AI
        assert step.target == "openai:gpt-4o"
        assert step.is_ai

    def test_mcp_then_params_binds_tool_step(self) -> None:
        awaiting = workflow("wf").step("create").mcp("crm:create_contact")
        assert isinstance(awaiting, AwaitingParams)

        chain = awaiting.params({"name": "Acme"})
        assert isinstance(chain, BoundToolStep)
        step = chain.graph.steps[0]
        assert step.kind == StepKind.TOOL
        assert step.target == "crm:create_contact"
        assert step.params == {"name": "Acme"}

    def test_config_dict_is_validated(self) -> None:
        chain = (
            workflow("wf")
            .step("extract", {"schema": {"type": "object"}, "temperature": 0.2})
            .with_model("openai:gpt-4o")
        )
        config = chain.graph.steps[0].config
        assert config.output_schema == {"type": "object"}
        assert config.extras() == {"temperature": 0.2}

    def test_config_model_is_kept(self) -> None:
        config = StepConfig(system_prompt="Be brief")
        chain = workflow("wf").step("a", config).with_model("openai:gpt-4o")
        assert chain.graph.steps[0].config is config


class TestRefinements:
    def test_prompt_sets_system_prompt(self) -> None:
        chain = workflow("wf").step("a").with_model("openai:gpt-4o").prompt("Summarize")
        assert chain.graph.steps[0].config.system_prompt == "Summarize"

    def test_prompt_keeps_chain_type(self) -> None:
        chain = workflow("wf").step("a").with_model("openai:gpt-4o").prompt("x")
        assert isinstance(chain, BoundAIStep)

    def test_tool_steps_take_no_prompt(self) -> None:
        chain = workflow("wf").step("a").mcp("crm:search").params({})
        assert isinstance(chain, BoundToolStep)
        assert not hasattr(chain, "prompt")
        assert not hasattr(chain.depends(), "prompt")

    def test_fallback_appends_in_order(self) -> None:
        chain = (
            workflow("wf")
            .step("a")
            .with_model("openai:gpt-4o")
            .fallback("anthropic:claude-3-haiku")
            .fallback("google:gemini-pro")
        )
        assert chain.graph.steps[0].fallback_models == (
            "anthropic:claude-3-haiku",
            "google:gemini-pro",
        )

    def test_depends_on_earlier_step(self) -> None:
        chain = (
            workflow("wf")
            .step("a").with_model("openai:gpt-4o")
            .step("b").with_model("openai:gpt-4o").depends("a")
        )
        assert chain.graph.get("b").depends_on == ("a",)

    def test_depends_removes_duplicates(self) -> None:
        chain = (
            workflow("wf")
            .step("a").with_model("openai:gpt-4o")
            .step("b").with_model("openai:gpt-4o").depends("a", "a")
        )
        assert chain.graph.get("b").depends_on == ("a",)

    def test_tool_step_can_depend(self) -> None:
        chain = (
            workflow("wf")
            .step("a").with_model("openai:gpt-4o")
            .step("b").mcp("crm:create").params({}).depends("a")
        )
        assert chain.graph.get("b").depends_on == ("a",)

    def test_webhook_and_schedule_are_recorded(self) -> None:
        chain = (
            workflow("wf")
            .step("a").with_model("openai:gpt-4o")
            .webhook("https://example.com/hook", headers={"X-Token": "t"})
            .schedule("0 9 * * *", timezone="UTC")
        )
        features = chain.graph.features
        assert features.webhook.endpoint == "https://example.com/hook"
        assert features.webhook.method == "POST"
        assert features.schedule.cron == "0 9 * * *"
        assert features.names() == ["webhooks", "schedules"]


class TestConstructionErrors:
    def test_duplicate_step_rejected_at_second_step(self) -> None:
        chain = workflow("wf").step("a").with_model("openai:gpt-4o")
        with pytest.raises(DuplicateStepError, match="'a'"):
            chain.step("a")

    @pytest.mark.parametrize("name", ["input", "steps"])
    def test_template_variable_names_rejected(self, name: str) -> None:
        with pytest.raises(ReservedStepNameError, match=f"'{name}'"):
            workflow("wf").step(name)

    def test_depends_on_undeclared_step(self) -> None:
        chain = workflow("wf").step("c").with_model("openai:gpt-4o")
        with pytest.raises(UnknownDependencyError) as exc_info:
            chain.depends("z")
        assert exc_info.value.dependency == "z"
        assert exc_info.value.step_name == "c"

    def test_depends_on_itself(self) -> None:
        chain = workflow("wf").step("a").with_model("openai:gpt-4o")
        with pytest.raises(UnknownDependencyError):
            chain.depends("a")

    @pytest.mark.parametrize("target", ["gpt-4o", "openai:", ":gpt-4o", "a:b:c", ""])
    def test_invalid_model_target(self, target: str) -> None:
        with pytest.raises(InvalidTargetError):
            workflow("wf").step("a").with_model(target)

    def test_invalid_tool_target(self) -> None:
        with pytest.raises(InvalidTargetError, match="server:tool"):
            workflow("wf").step("a").mcp("crm")

    def test_invalid_fallback_target(self) -> None:
        chain = workflow("wf").step("a").with_model("openai:gpt-4o")
        with pytest.raises(InvalidTargetError):
            chain.fallback("claude")

    def test_pending_step_cannot_start_another(self) -> None:
        with pytest.raises(IncompleteStepError, match="with_model"):
            workflow("wf").step("a").step("b")

    def test_awaiting_params_cannot_start_another(self) -> None:
        with pytest.raises(IncompleteStepError, match="params"):
            workflow("wf").step("a").mcp("crm:search").step("b")

    @pytest.mark.asyncio
    async def test_pending_step_cannot_run(self) -> None:
        with pytest.raises(IncompleteStepError):
            await workflow("wf").step("a").run()

    def test_awaiting_params_cannot_run_sync(self) -> None:
        with pytest.raises(IncompleteStepError):
            workflow("wf").step("a").mcp("crm:search").run_sync()

    def test_builder_has_no_run(self) -> None:
        assert not hasattr(workflow("wf"), "run")


class TestImmutability:
    def test_earlier_builder_is_unchanged(self) -> None:
        base = workflow("wf").step("a").with_model("openai:gpt-4o")
        extended = base.step("b").with_model("openai:gpt-4o")

        assert base.step_names == ["a"]
        assert extended.step_names == ["a", "b"]

    def test_refinement_does_not_alias_previous_value(self) -> None:
        base = workflow("wf").step("a").with_model("openai:gpt-4o")
        prompted = base.prompt("Hello")

        assert base.graph.steps[0].config.system_prompt is None
        assert prompted.graph.steps[0].config.system_prompt == "Hello"

    def test_branches_from_shared_history(self) -> None:
        base = workflow("wf").step("a").with_model("openai:gpt-4o")
        left = base.step("b").with_model("openai:gpt-4o").depends("a")
        right = base.step("b").mcp("crm:search").params({})

        assert left.graph.get("b").kind == StepKind.AI
        assert right.graph.get("b").kind == StepKind.TOOL
        assert left.graph.steps[0] is right.graph.steps[0]

    def test_same_chain_twice_schedules_identically(self) -> None:
        def build():
            return (
                workflow("wf")
                .step("a").with_model("openai:gpt-4o")
                .step("b").with_model("openai:gpt-4o").depends("a")
                .step("c").mcp("crm:create").params({"x": 1}).depends("a", "b")
            )

        first, second = build().graph, build().graph
        assert first == second
        assert [s.name for s in topological_order(first.steps)] == [
            s.name for s in topological_order(second.steps)
        ]
