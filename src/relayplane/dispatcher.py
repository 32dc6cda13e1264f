"""Step dispatcher.

Runs scheduled steps one at a time, routing AI steps to the adapter
executor and tool steps to the tool executor. The first failure stops
the run; the dispatcher knows which step it was executing, so the
failing step is reported directly.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from relayplane.assembler import classify_error
from relayplane.container import Runtime
from relayplane.context import ExecutionContext
from relayplane.drivers.tools import ToolServerRegistry
from relayplane.exceptions import (
    ErrorType,
    RelayError,
    StepExecutionError,
    WorkflowCancelledError,
    WorkflowTimeoutError,
)
from relayplane.models import RunOptions, StepDefinition, StepKind, StepLog, StepStatus, WorkflowGraph
from relayplane.protocols.adapter import AdapterRequest, AdapterResult
from relayplane.protocols.tools import ToolExecutionContext
from relayplane.templates import build_prompt, render_text, render_value
from relayplane.validation import split_model, split_tool

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    """How dispatch ended.

    Attributes:
        completed: Whether every step succeeded
        failed_step: Step that was executing when the run failed, if any
        error: The failure
    """

    completed: bool
    failed_step: str | None = None
    error: BaseException | None = None


@dataclass
class _StepOutput:
    value: Any
    model: str | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepDispatcher:
    """Executes an ordered list of steps against a runtime."""

    def __init__(self, runtime: Runtime) -> None:
        self.runtime = runtime

    async def dispatch(
        self,
        graph: WorkflowGraph,
        ordered: list[StepDefinition],
        context: ExecutionContext,
        options: RunOptions | None = None,
    ) -> DispatchOutcome:
        """Run every step in order, stopping at the first failure.

        The workflow-level timeout bounds the whole dispatch; when it
        expires, the step that was executing is reported as failed.
        """
        options = options or RunOptions()
        servers = ToolServerRegistry.from_config(self.runtime.store.get().mcp.servers)

        if options.timeout_ms is None:
            return await self._run_steps(graph, ordered, context, options, servers)

        try:
            return await asyncio.wait_for(
                self._run_steps(graph, ordered, context, options, servers),
                timeout=options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            error = WorkflowTimeoutError(graph.name, options.timeout_ms)
            step_name = context.current_step
            if step_name is not None:
                self._record_failure(
                    context, step_name, context.step_started_at or context.started_at, error
                )
            logger.warning("Workflow '%s' timed out during step %s", graph.name, step_name)
            return DispatchOutcome(completed=False, failed_step=step_name, error=error)

    async def _run_steps(
        self,
        graph: WorkflowGraph,
        ordered: list[StepDefinition],
        context: ExecutionContext,
        options: RunOptions,
        servers: ToolServerRegistry,
    ) -> DispatchOutcome:
        for step in ordered:
            if options.signal is not None and options.signal.is_set():
                logger.info("Workflow '%s' cancelled before step '%s'", graph.name, step.name)
                return DispatchOutcome(
                    completed=False, error=WorkflowCancelledError(graph.name)
                )

            context.current_step = step.name
            context.step_started_at = _now()
            logger.debug("Executing step '%s' (%s %s)", step.name, step.kind.value, step.target)

            try:
                if step.kind == StepKind.AI:
                    result = await self._execute_ai(step, context, options)
                else:
                    result = await self._execute_tool(step, context, servers)
            except Exception as e:
                logger.warning("Step '%s' failed: %s", step.name, e)
                self._record_failure(context, step.name, context.step_started_at, e)
                self.runtime.logger.print(f"[red]✗[/red] {step.name}: {e}")
                return DispatchOutcome(completed=False, failed_step=step.name, error=e)

            completed_at = _now()
            context.record_output(step.name, result.value)
            context.add_log(
                StepLog(
                    step_name=step.name,
                    status=StepStatus.SUCCESS,
                    started_at=context.step_started_at,
                    completed_at=completed_at,
                    output=result.value,
                    model=result.model,
                    tokens_in=result.tokens_in,
                    tokens_out=result.tokens_out,
                    duration_ms=(completed_at - context.step_started_at).total_seconds() * 1000,
                )
            )
            logger.debug("Step '%s' completed", step.name)
            self.runtime.logger.print(f"[green]✓[/green] {step.name}")

        context.current_step = None
        return DispatchOutcome(completed=True)

    def _record_failure(
        self,
        context: ExecutionContext,
        step_name: str,
        started_at: datetime,
        error: BaseException,
    ) -> None:
        completed_at = _now()
        context.add_log(
            StepLog(
                step_name=step_name,
                status=StepStatus.FAILED,
                started_at=started_at,
                completed_at=completed_at,
                error_type=classify_error(error),
                error_message=str(error) or type(error).__name__,
                duration_ms=(completed_at - started_at).total_seconds() * 1000,
            )
        )

    async def _execute_ai(
        self,
        step: StepDefinition,
        context: ExecutionContext,
        options: RunOptions,
    ) -> _StepOutput:
        variables = context.template_context()
        config = step.config
        system_prompt = render_text(config.system_prompt, variables) if config.system_prompt else None
        user_prompt = render_text(config.user_prompt, variables) if config.user_prompt else None
        prompt = build_prompt(system_prompt, user_prompt)

        last_error: RelayError | None = None
        for target in (step.target, *step.fallback_models):
            provider, model = split_model(target)
            try:
                credential = self.runtime.resolver.require(provider, options.providers)
            except RelayError as e:
                logger.warning("Step '%s' cannot use %s: %s", step.name, target, e)
                last_error = e
                continue

            request = AdapterRequest(
                provider=provider,
                model=model,
                input={"input": context.input, "steps": context.step_outputs},
                prompt=prompt,
                output_schema=config.output_schema,
                api_key=credential.api_key,
                base_url=credential.base_url,
                retry=config.retry,
                step_name=step.name,
                metadata={
                    **config.metadata,
                    **config.extras(),
                    "provider": provider,
                    "workflow_name": context.workflow_name,
                    "run_id": context.run_id,
                },
            )
            result: AdapterResult = await self.runtime.adapters.execute(request)
            if result.success:
                if target != step.target:
                    logger.info("Step '%s' answered by fallback %s", step.name, target)
                return _StepOutput(
                    value=result.output,
                    model=target,
                    tokens_in=result.tokens_in,
                    tokens_out=result.tokens_out,
                )

            error = result.error
            last_error = StepExecutionError(
                step.name,
                error.message if error else f"Step {step.name} failed",
                error.type if error else ErrorType.PROVIDER,
                details={"model": target, "recoverable": error.recoverable if error else False},
            )
            logger.warning("Step '%s' failed on %s: %s", step.name, target, last_error.message)

        assert last_error is not None
        raise last_error

    async def _execute_tool(
        self,
        step: StepDefinition,
        context: ExecutionContext,
        servers: ToolServerRegistry,
    ) -> _StepOutput:
        server_name, tool = split_tool(step.target)
        server = servers.require(server_name)
        params = render_value(step.params, context.template_context())

        tool_context = ToolExecutionContext(
            workflow_name=context.workflow_name,
            step_name=step.name,
            run_id=context.run_id,
            input=context.input,
            previous_steps=context.step_outputs,
        )
        result = await self.runtime.tools.execute(server, tool, params, tool_context)
        if not result.success:
            raise StepExecutionError(
                step.name,
                f"Tool {step.target} failed: {result.error}",
                ErrorType.TOOL,
                details={"server": server_name, "tool": tool},
            )
        return _StepOutput(value=result.output)
