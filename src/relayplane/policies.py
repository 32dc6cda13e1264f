"""Policy execution.

A policy is a named model configuration (primary model, fallbacks,
system prompt, sampling options, retry) registered via configure().
Executing a policy runs a one-step workflow built from it.

Usage:
    relay.configure(policies={
        "summarize": {"model": "openai:gpt-4o-mini", "fallback": ["anthropic:claude-3-haiku"]},
    })
    result = await relay.execute("summarize", "Summarize: {{ text }}", variables={"text": doc})
"""

import re
import time
from typing import Any

from pydantic import BaseModel, Field

from relayplane.builder import execute_graph, workflow
from relayplane.container import Runtime, RuntimeContainer
from relayplane.context import ExecutionContext, new_run_id
from relayplane.exceptions import PolicyNotFoundError
from relayplane.models import Policy, RetryPolicy, RunOptions, StepConfig, StepStatus
from relayplane.templates import escape_placeholders
from relayplane.validation import split_model

POLICY_STEP = "execute"


class PolicyUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0


class PolicyExecuteResult(BaseModel):
    """Outcome of executing a policy."""

    success: bool
    output: Any = None
    error: str | None = None
    model: str = Field(..., description="Model that answered (primary or fallback)")
    used_fallback: bool = False
    policy_id: str
    usage: PolicyUsage = Field(default_factory=PolicyUsage)
    duration_ms: float = 0.0
    run_id: str


def _runtime(runtime: Runtime | None) -> Runtime:
    return runtime or RuntimeContainer.runtime()


def get_policy(policy_id: str, runtime: Runtime | None = None) -> Policy | None:
    return _runtime(runtime).store.get().policies.get(policy_id)


def list_policies(runtime: Runtime | None = None) -> list[str]:
    return list(_runtime(runtime).store.get().policies)


def has_policy(policy_id: str, runtime: Runtime | None = None) -> bool:
    return policy_id in _runtime(runtime).store.get().policies


def interpolate(prompt: str, variables: dict[str, Any]) -> str:
    """Replace {{ key }} placeholders with variable values.

    Placeholders without a matching variable are left as they are.
    """
    for key, value in variables.items():
        prompt = re.sub(r"\{\{\s*" + re.escape(key) + r"\s*\}\}", lambda _: str(value), prompt)
    return prompt


def _step_config(
    policy: Policy,
    user_prompt: str,
    schema: dict[str, Any] | None,
    system_prompt: str | None,
) -> StepConfig:
    fields: dict[str, Any] = {"user_prompt": escape_placeholders(user_prompt)}
    if schema is not None:
        fields["schema"] = schema
    if system_prompt:
        fields["system_prompt"] = escape_placeholders(system_prompt)
    if policy.max_tokens:
        fields["max_tokens"] = policy.max_tokens
    if policy.temperature is not None:
        fields["temperature"] = policy.temperature
    if policy.retry is not None:
        fields["retry"] = RetryPolicy(
            max_retries=policy.retry.max_attempts or 3,
            backoff_ms=policy.retry.delay_ms,
        )
    fields["metadata"] = {**policy.metadata, "policy_id": policy.id}
    return StepConfig.model_validate(fields)


async def execute(
    policy_id: str,
    prompt: str,
    variables: dict[str, Any] | None = None,
    schema: dict[str, Any] | None = None,
    system_prompt: str | None = None,
    runtime: Runtime | None = None,
) -> PolicyExecuteResult:
    """Execute a configured policy.

    Execution failures are reported in the result; a missing policy or
    an unconfigured primary provider raises before anything runs.

    Raises:
        PolicyNotFoundError: If no policy has this ID
        ProviderNotConfiguredError: If the primary provider has no credential
    """
    started = time.perf_counter()
    runtime = _runtime(runtime)

    policy = runtime.store.get().policies.get(policy_id)
    if policy is None:
        raise PolicyNotFoundError(policy_id, list(runtime.store.get().policies))

    provider, _ = split_model(policy.model)
    runtime.resolver.require(provider)

    user_prompt = interpolate(prompt, variables or {})
    config = _step_config(policy, user_prompt, schema, system_prompt or policy.system_prompt)

    run_id = new_run_id()
    chain = workflow(f"policy-{policy_id}", runtime=runtime).step(POLICY_STEP, config).with_model(
        policy.model
    )
    for fallback in policy.fallback:
        chain = chain.fallback(fallback)
    graph = chain.graph

    context = ExecutionContext(graph.name, {}, run_id=run_id)
    result = await execute_graph(graph, {}, RunOptions(), runtime, context=context)
    duration_ms = (time.perf_counter() - started) * 1000

    log = next((log for log in context.step_logs if log.step_name == POLICY_STEP), None)
    model = (log.model if log and log.model else None) or policy.model
    usage = PolicyUsage()
    if log and log.tokens_in is not None and log.tokens_out is not None:
        usage = PolicyUsage(
            prompt_tokens=log.tokens_in,
            completion_tokens=log.tokens_out,
            total_tokens=log.tokens_in + log.tokens_out,
        )

    base = {
        "model": model,
        "used_fallback": model != policy.model,
        "policy_id": policy_id,
        "usage": usage,
        "duration_ms": duration_ms,
        "run_id": run_id,
    }

    if not result.success or log is None or log.status != StepStatus.SUCCESS:
        error = result.error.message if result.error else "Unknown execution error"
        return PolicyExecuteResult(success=False, error=error, **base)

    caps = policy.cost_caps
    if caps and caps.max_tokens_per_execution is not None:
        if usage.total_tokens > caps.max_tokens_per_execution:
            return PolicyExecuteResult(
                success=False,
                error=f"Token cap exceeded: {usage.total_tokens} > {caps.max_tokens_per_execution}",
                **base,
            )

    return PolicyExecuteResult(success=True, output=result.steps[POLICY_STEP], **base)
