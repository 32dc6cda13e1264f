"""Graph validation.

A workflow graph is checked once before scheduling. The builder already
rejects most mistakes as they are made, but graphs can also come from
definition files or be assembled by hand, so the same rules are applied
again here.

Rules:
- The workflow has a name and at least one step
- Step names are unique
- Step names do not shadow the "input" and "steps" template variables
- AI targets are "provider:model", tool targets are "server:tool"
- Fallback models are "provider:model"
- A step depends only on steps declared before it
"""

from collections.abc import Iterator

from pydantic import BaseModel, Field
from rich.console import Console

from relayplane.context import RESERVED_STEP_NAMES
from relayplane.exceptions import (
    DuplicateStepError,
    EmptyWorkflowError,
    GraphValidationError,
    InvalidTargetError,
    ReservedStepNameError,
    UnknownDependencyError,
)
from relayplane.models import StepKind, WorkflowGraph

MODEL_FORMAT = ("provider:model", "openai:gpt-4o")
TOOL_FORMAT = ("server:tool", "crm:create_contact")


def parse_target(target: str, expected: str, example: str) -> tuple[str, str]:
    """Split a target into its two halves.

    Raises:
        InvalidTargetError: Unless there is exactly one ':' with text on both sides
    """
    parts = target.split(":")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidTargetError(target, expected, example)
    return parts[0], parts[1]


def split_model(target: str) -> tuple[str, str]:
    """Split "provider:model"."""
    return parse_target(target, *MODEL_FORMAT)


def split_tool(target: str) -> tuple[str, str]:
    """Split "server:tool"."""
    return parse_target(target, *TOOL_FORMAT)


def _problems(graph: WorkflowGraph) -> Iterator[GraphValidationError]:
    if not graph.name or not graph.name.strip():
        yield EmptyWorkflowError("workflow name must not be empty")
    if not graph.steps:
        yield EmptyWorkflowError(f"workflow '{graph.name}' has no steps")

    declared: list[str] = []
    for step in graph.steps:
        if step.name in declared:
            yield DuplicateStepError(step.name)
        if step.name in RESERVED_STEP_NAMES:
            yield ReservedStepNameError(step.name)

        try:
            if step.kind == StepKind.AI:
                split_model(step.target)
            else:
                split_tool(step.target)
        except InvalidTargetError as e:
            yield e

        for fallback in step.fallback_models:
            try:
                split_model(fallback)
            except InvalidTargetError as e:
                yield e

        for dependency in step.depends_on:
            if dependency not in declared:
                yield UnknownDependencyError(step.name, dependency, list(declared))

        if step.name not in declared:
            declared.append(step.name)


def validate_graph(graph: WorkflowGraph) -> None:
    """Raise the first problem found in a graph.

    Raises:
        GraphValidationError: If the graph breaks any rule
    """
    for problem in _problems(graph):
        raise problem


class ValidationReport(BaseModel):
    """Every problem found in a graph, for display.

    Attributes:
        success: Whether the graph is valid
        errors: Problems that prevent execution
        warnings: Things that run but probably don't do what was meant
    """

    success: bool = Field(..., description="Whether validation passed")
    errors: list[str] = Field(default_factory=list, description="Errors that must be fixed")
    warnings: list[str] = Field(
        default_factory=list, description="Warnings that should be addressed"
    )

    def format(self) -> str:
        """Format the report for a Rich console."""
        lines: list[str] = []

        if self.success:
            lines.append("[green]✓[/green] Workflow is valid")
        else:
            lines.append("[red]✗[/red] Workflow is invalid")

        if self.errors:
            lines.append("\n[red bold]Errors:[/red bold]")
            for error in self.errors:
                lines.append(f"  [red]•[/red] {error}")

        if self.warnings:
            lines.append("\n[yellow bold]Warnings:[/yellow bold]")
            for warning in self.warnings:
                lines.append(f"  [yellow]•[/yellow] {warning}")

        return "\n".join(lines)

    def print(self, console: Console | None = None) -> None:
        (console or Console()).print(self.format())


def check_graph(graph: WorkflowGraph) -> ValidationReport:
    """Collect every problem in a graph instead of stopping at the first."""
    errors = [problem.message for problem in _problems(graph)]

    warnings = []
    for step in graph.steps:
        if len(set(step.depends_on)) != len(step.depends_on):
            warnings.append(f"Step '{step.name}' lists the same dependency more than once")
        if step.kind == StepKind.AI and not (step.config.system_prompt or step.config.user_prompt):
            warnings.append(f"Step '{step.name}' has no prompt; only the run input is sent")
    feature_names = graph.features.names()
    if feature_names:
        warnings.append(
            f"{' and '.join(feature_names).capitalize()} are recorded but only run on RelayPlane Cloud"
        )

    return ValidationReport(success=not errors, errors=errors, warnings=warnings)
