"""Workflow definition files.

Declares a workflow in YAML or JSON instead of code. The file is turned
into a builder chain, so the same construction checks apply.

Example (invoice.yaml):
    name: invoice-processor
    steps:
      - name: extract
        model: openai:gpt-4o
        prompt: "Extract vendor and total from {{ input.text }}"
      - name: create
        mcp: crm:create_contact
        params:
          vendor: "{{ steps.extract.vendor }}"
        depends: [extract]
    schedule:
      cron: "0 9 * * *"
"""

import json
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from relayplane.builder import CompletedStep, workflow
from relayplane.container import Runtime
from relayplane.exceptions import WorkflowDefinitionError


class StepSpec(BaseModel):
    """One step entry in a definition file."""

    name: str
    model: str | None = None
    mcp: str | None = None
    prompt: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)
    depends: list[str] = Field(default_factory=list)
    fallback: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_target(self) -> "StepSpec":
        if (self.model is None) == (self.mcp is None):
            raise ValueError(f"step '{self.name}' needs exactly one of 'model' or 'mcp'")
        if self.mcp is not None and (self.prompt or self.fallback):
            raise ValueError(f"tool step '{self.name}' cannot have 'prompt' or 'fallback'")
        return self


class WebhookSpec(BaseModel):
    endpoint: str
    method: Literal["POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)


class ScheduleSpec(BaseModel):
    cron: str
    timezone: str | None = None


class WorkflowSpec(BaseModel):
    """Top level of a definition file."""

    name: str
    steps: list[StepSpec] = Field(..., min_length=1)
    webhook: WebhookSpec | None = None
    schedule: ScheduleSpec | None = None


def workflow_from_dict(
    data: dict[str, Any],
    runtime: Runtime | None = None,
    source: str = "<dict>",
) -> CompletedStep:
    """Build a workflow chain from a parsed definition.

    Raises:
        WorkflowDefinitionError: If the structure is malformed
        GraphValidationError: If the steps do not form a valid workflow
    """
    try:
        spec = WorkflowSpec.model_validate(data)
    except ValidationError as e:
        raise WorkflowDefinitionError(source, str(e)) from e

    chain: Any = workflow(spec.name, runtime=runtime)
    for step in spec.steps:
        pending = chain.step(step.name, step.config or None)
        if step.model is not None:
            chain = pending.with_model(step.model)
            for fallback in step.fallback:
                chain = chain.fallback(fallback)
            if step.prompt is not None:
                chain = chain.prompt(step.prompt)
        else:
            chain = pending.mcp(step.mcp).params(step.params)
        if step.depends:
            chain = chain.depends(*step.depends)

    if spec.webhook is not None:
        chain = chain.webhook(spec.webhook.endpoint, spec.webhook.method, spec.webhook.headers)
    if spec.schedule is not None:
        chain = chain.schedule(spec.schedule.cron, spec.schedule.timezone)
    return chain


def load_workflow(path: Path | str, runtime: Runtime | None = None) -> CompletedStep:
    """Load a workflow chain from a .yaml, .yml or .json file.

    Raises:
        WorkflowDefinitionError: If the file cannot be read or parsed
        GraphValidationError: If the steps do not form a valid workflow
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise WorkflowDefinitionError(str(path), str(e)) from e

    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise WorkflowDefinitionError(str(path), f"cannot parse file: {e}") from e

    if not isinstance(data, dict):
        raise WorkflowDefinitionError(str(path), "top level must be a mapping")
    return workflow_from_dict(data, runtime=runtime, source=str(path))
