"""Fluent workflow builder.

Usage:
    import relayplane as relay

    result = await (
        relay.workflow("invoice-processor")
        .step("extract").with_model("openai:gpt-4o").prompt("Extract: {{ input.text }}")
        .step("summarize").with_model("anthropic:claude-3-5-sonnet-20241022")
        .depends("extract")
        .run({"text": "..."})
    )

Each call returns a new builder; earlier builder values never change.
Only complete states (a step bound to a model, or to a tool with its
params) can run or start another step. Half-configured states raise
IncompleteStepError if asked to, and depends() only accepts names of
steps declared earlier, so a built chain is always a valid DAG.
"""

import asyncio
import logging
from typing import Any, TypeVar

from relayplane.assembler import ResultAssembler, build_run_record
from relayplane.config import is_cloud_enabled
from relayplane.container import Runtime, RuntimeContainer
from relayplane.context import RESERVED_STEP_NAMES, ExecutionContext
from relayplane.dispatcher import StepDispatcher
from relayplane.exceptions import (
    DuplicateStepError,
    GraphValidationError,
    IncompleteStepError,
    ReservedStepNameError,
    UnknownDependencyError,
)
from relayplane.models import (
    CloudFeatures,
    RunOptions,
    ScheduleConfig,
    StepConfig,
    StepDefinition,
    StepKind,
    WebhookConfig,
    WorkflowGraph,
    WorkflowResult,
)
from relayplane.scheduler import topological_order
from relayplane.validation import split_model, split_tool, validate_graph

logger = logging.getLogger(__name__)

ChainT = TypeVar("ChainT", bound="_Chain")


async def execute_graph(
    graph: WorkflowGraph,
    input: Any = None,
    options: RunOptions | None = None,
    runtime: Runtime | None = None,
    context: ExecutionContext | None = None,
) -> WorkflowResult:
    """Validate, schedule, dispatch and assemble one run.

    Never raises for runtime conditions: every failure ends up in
    result.error. The telemetry record is enqueued, never awaited.
    Pass a context to inspect the per-step logs afterwards.
    """
    options = options or RunOptions()
    runtime = runtime or RuntimeContainer.runtime()
    context = context or ExecutionContext(graph.name, input)
    assembler = ResultAssembler(options.metadata)

    features = graph.features.names()
    if features and not is_cloud_enabled(runtime.store):
        logger.info(
            "Workflow '%s' uses %s, which only run on RelayPlane Cloud; executing locally",
            graph.name,
            " and ".join(features),
        )

    try:
        validate_graph(graph)
        ordered = topological_order(graph.steps)
    except GraphValidationError as e:
        logger.warning("Workflow '%s' is invalid: %s", graph.name, e.message)
        result = assembler.failure(context, None, e, context.started_at)
    else:
        outcome = await StepDispatcher(runtime).dispatch(graph, ordered, context, options)
        if outcome.completed:
            result = assembler.success(context, ordered, context.started_at)
        else:
            assert outcome.error is not None
            result = assembler.failure(context, outcome.failed_step, outcome.error, context.started_at)

    try:
        runtime.telemetry.enqueue(build_run_record(result, context))
    except Exception as e:
        logger.warning("Could not enqueue telemetry for run %s: %s", context.run_id, e)

    return result


def _coerce_options(options: RunOptions | dict[str, Any] | None, overrides: dict[str, Any]) -> RunOptions:
    if options is None:
        return RunOptions.model_validate(overrides)
    if isinstance(options, dict):
        return RunOptions.model_validate({**options, **overrides})
    if overrides:
        return RunOptions.model_validate({**dict(options), **overrides})
    return options


class _Chain:
    """Shared state of every builder value."""

    def __init__(
        self,
        name: str,
        steps: tuple[StepDefinition, ...] = (),
        features: CloudFeatures | None = None,
        runtime: Runtime | None = None,
    ) -> None:
        self._name = name
        self._steps = steps
        self._features = features or CloudFeatures()
        self._runtime = runtime

    @property
    def name(self) -> str:
        return self._name

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def _derive(
        self,
        cls: type[ChainT],
        steps: tuple[StepDefinition, ...] | None = None,
        features: CloudFeatures | None = None,
    ) -> ChainT:
        return cls(
            self._name,
            self._steps if steps is None else steps,
            features or self._features,
            self._runtime,
        )

    def _new_step(self, name: str, config: StepConfig | dict[str, Any] | None) -> "PendingStep":
        if name in self.step_names:
            raise DuplicateStepError(name)
        if name in RESERVED_STEP_NAMES:
            raise ReservedStepNameError(name)
        if config is None:
            config = StepConfig()
        elif not isinstance(config, StepConfig):
            config = StepConfig.model_validate(config)
        pending = self._derive(PendingStep)
        pending._pending = (name, config)
        return pending

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r}, steps={self.step_names})"


class WorkflowBuilder(_Chain):
    """Entry point of a workflow chain. Only step() is available."""

    def __init__(
        self,
        name: str,
        steps: tuple[StepDefinition, ...] = (),
        features: CloudFeatures | None = None,
        runtime: Runtime | None = None,
    ) -> None:
        super().__init__(name, steps, features, runtime)

    def with_runtime(self, runtime: Runtime) -> "WorkflowBuilder":
        """Run this workflow with explicit collaborators instead of the container's."""
        return WorkflowBuilder(self._name, self._steps, self._features, runtime)

    def step(self, name: str, config: StepConfig | dict[str, Any] | None = None) -> "PendingStep":
        """Declare a step.

        Raises:
            DuplicateStepError: If the name is already used in this workflow
        """
        return self._new_step(name, config)


class _Incomplete(_Chain):
    """A declared step that is not bound yet."""

    _pending: tuple[str, StepConfig]
    _missing = ""

    def _fail(self) -> IncompleteStepError:
        return IncompleteStepError(self._pending[0], self._missing)

    def step(self, name: str, config: StepConfig | dict[str, Any] | None = None) -> "PendingStep":
        raise self._fail()

    async def run(self, input: Any = None, options: Any = None, **kwargs: Any) -> WorkflowResult:
        raise self._fail()

    def run_sync(self, input: Any = None, options: Any = None, **kwargs: Any) -> WorkflowResult:
        raise self._fail()


class PendingStep(_Incomplete):
    """Step declared but not bound to a model or tool."""

    _missing = "call .with_model('provider:model') or .mcp('server:tool')"

    def with_model(self, target: str) -> "BoundAIStep":
        """Bind the step to a model.

        Raises:
            InvalidTargetError: Unless target is "provider:model"
        """
        split_model(target)
        name, config = self._pending
        step = StepDefinition(name=name, kind=StepKind.AI, target=target, config=config)
        return self._derive(BoundAIStep, steps=(*self._steps, step))

    def mcp(self, target: str) -> "AwaitingParams":
        """Bind the step to a tool. Params must follow.

        Raises:
            InvalidTargetError: Unless target is "server:tool"
        """
        split_tool(target)
        awaiting = self._derive(AwaitingParams)
        awaiting._pending = self._pending
        awaiting._target = target
        return awaiting


class AwaitingParams(_Incomplete):
    """Tool step waiting for its params."""

    _missing = "call .params({...}) after .mcp()"
    _target: str

    def params(self, params: dict[str, Any]) -> "BoundToolStep":
        """Supply tool params. Values may contain template placeholders."""
        name, config = self._pending
        step = StepDefinition(
            name=name,
            kind=StepKind.TOOL,
            target=self._target,
            params=dict(params),
            config=config,
        )
        return self._derive(BoundToolStep, steps=(*self._steps, step))


class CompletedStep(_Chain):
    """A chain whose most recent step is fully configured."""

    def _replace_last(self: ChainT, **update: Any) -> ChainT:
        last = self._steps[-1].model_copy(update=update)
        return self._derive(type(self), steps=(*self._steps[:-1], last))

    @property
    def graph(self) -> WorkflowGraph:
        """The workflow definition built so far."""
        return WorkflowGraph(name=self._name, steps=self._steps, features=self._features)

    def step(self, name: str, config: StepConfig | dict[str, Any] | None = None) -> "PendingStep":
        """Declare the next step.

        Raises:
            DuplicateStepError: If the name is already used in this workflow
        """
        return self._new_step(name, config)

    def webhook(
        self: ChainT,
        endpoint: str,
        method: str = "POST",
        headers: dict[str, str] | None = None,
    ) -> ChainT:
        """Record a webhook trigger. Only acted on by RelayPlane Cloud."""
        webhook = WebhookConfig(endpoint=endpoint, method=method, headers=headers or {})
        features = self._features.model_copy(update={"webhook": webhook})
        return self._derive(type(self), features=features)

    def schedule(self: ChainT, cron: str, timezone: str | None = None) -> ChainT:
        """Record a cron schedule. Only acted on by RelayPlane Cloud."""
        schedule = ScheduleConfig(cron=cron, timezone=timezone)
        features = self._features.model_copy(update={"schedule": schedule})
        return self._derive(type(self), features=features)

    def with_runtime(self: ChainT, runtime: Runtime) -> ChainT:
        """Run this workflow with explicit collaborators instead of the container's."""
        return type(self)(self._name, self._steps, self._features, runtime)

    async def run(
        self,
        input: Any = None,
        options: RunOptions | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> WorkflowResult:
        """Execute the workflow.

        Keyword arguments are merged into the run options, e.g.
        run(data, timeout_ms=30_000, providers={...}).
        """
        return await execute_graph(
            self.graph,
            input,
            _coerce_options(options, kwargs),
            self._runtime,
        )

    def run_sync(
        self,
        input: Any = None,
        options: RunOptions | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> WorkflowResult:
        """Execute the workflow from synchronous code."""
        return asyncio.run(self.run(input, options, **kwargs))


class _Dependent(CompletedStep):
    def depends(self: ChainT, *names: str) -> ChainT:
        """Set the steps the most recent step depends on.

        Raises:
            UnknownDependencyError: If a name is not a step declared earlier
        """
        current = self._steps[-1]
        earlier = [step.name for step in self._steps[:-1]]
        for dependency in names:
            if dependency not in earlier:
                raise UnknownDependencyError(current.name, dependency, earlier)
        return self._replace_last(depends_on=tuple(dict.fromkeys(names)))


class BoundAIStep(_Dependent):
    """AI step bound to a model."""

    def prompt(self, text: str) -> "BoundAIStep":
        """Set the system prompt of the most recent step."""
        last = self._steps[-1]
        config = last.config.model_copy(update={"system_prompt": text})
        return self._replace_last(config=config)

    def fallback(self, target: str) -> "BoundAIStep":
        """Add a fallback model, tried in order if the primary fails.

        Raises:
            InvalidTargetError: Unless target is "provider:model"
        """
        split_model(target)
        current = self._steps[-1]
        return self._replace_last(fallback_models=(*current.fallback_models, target))


class BoundToolStep(_Dependent):
    """Tool step bound to a server, tool and params."""


def workflow(name: str, runtime: Runtime | None = None) -> WorkflowBuilder:
    """Start a workflow chain."""
    return WorkflowBuilder(name, runtime=runtime)
