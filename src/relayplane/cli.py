"""RelayPlane CLI.

Commands:
- check: Show which providers have a credential
- validate: Check a workflow definition file and show its execution order
- run: Execute a workflow definition file
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from relayplane import __version__
from relayplane.config import (
    PROVIDER_ENV_VARS,
    ConfigStore,
    GlobalConfig,
    McpConfig,
    ToolServerConfig,
    env_var_for,
)
from relayplane.console import console, print_error, print_info, print_success
from relayplane.container import Runtime
from relayplane.drivers.adapters import KEYLESS_PROVIDERS, AdapterRegistry
from relayplane.drivers.mocks import MockAdapter, MockToolExecutor
from relayplane.drivers.telemetry import NullReporter
from relayplane.exceptions import GraphValidationError
from relayplane.loader import load_workflow
from relayplane.models import ProviderConfig, WorkflowGraph
from relayplane.scheduler import topological_order
from relayplane.validation import check_graph, split_tool

app = typer.Typer(
    help="RelayPlane - build and run multi-step AI workflows.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"relayplane {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """RelayPlane - build and run multi-step AI workflows."""
    pass


def _credential_source(runtime: Runtime, provider: str) -> str:
    if runtime.store.get().providers.get(provider):
        return "configure()"
    if runtime.resolver.secrets.has_secret(env_var_for(provider)):
        return env_var_for(provider)
    if provider in KEYLESS_PROVIDERS:
        return "not required"
    return ""


@app.command()
def check(
    provider: Annotated[
        Optional[list[str]],
        typer.Option("--provider", "-p", help="Only check these providers"),
    ] = None,
) -> None:
    """Show which providers resolve a credential.

    Exits with status 1 if any provider given with --provider has none.

    Examples:
        relayplane check
        relayplane check -p openai -p anthropic
    """
    runtime = Runtime.build(telemetry=NullReporter())
    providers = provider or [*PROVIDER_ENV_VARS, *sorted(KEYLESS_PROVIDERS)]

    table = Table(title="Provider credentials")
    table.add_column("Provider", style="cyan")
    table.add_column("Env var")
    table.add_column("Status")
    table.add_column("Source", style="dim")

    missing = []
    for name in providers:
        configured = runtime.resolver.is_configured(name)
        if not configured:
            missing.append(name)
        table.add_row(
            name,
            "-" if name in KEYLESS_PROVIDERS else env_var_for(name),
            "[green]configured[/]" if configured else "[red]missing[/]",
            _credential_source(runtime, name),
        )
    console.print(table)

    if provider and missing:
        print_error(f"Missing credentials: {', '.join(missing)}")
        raise typer.Exit(1)


@app.command()
def validate(
    file: Annotated[Path, typer.Argument(help="Workflow definition (.yaml, .yml or .json)")],
) -> None:
    """Validate a workflow definition file and show its execution order.

    Examples:
        relayplane validate invoice.yaml
    """
    try:
        chain = load_workflow(file)
    except GraphValidationError as e:
        print_error(e.message)
        raise typer.Exit(1) from e

    graph = chain.graph
    report = check_graph(graph)
    report.print(console)
    if not report.success:
        raise typer.Exit(1)

    try:
        ordered = topological_order(graph.steps)
    except GraphValidationError as e:
        print_error(e.message)
        raise typer.Exit(1) from e

    console.print()
    console.print("[bold]Execution order:[/]")
    for index, step in enumerate(ordered, 1):
        depends = f" [dim](after {', '.join(step.depends_on)})[/]" if step.depends_on else ""
        console.print(f"  [cyan]{index}[/]) {step.name} [dim]{step.target}[/]{depends}")


def _dry_run_runtime(graph: WorkflowGraph) -> Runtime:
    servers = {split_tool(step.target)[0] for step in graph.steps if not step.is_ai}
    store = ConfigStore(
        GlobalConfig(
            providers={name: ProviderConfig(api_key="dry-run") for name in PROVIDER_ENV_VARS},
            mcp=McpConfig(servers={name: ToolServerConfig() for name in servers}),
        )
    )
    adapter = MockAdapter()
    registry = AdapterRegistry()
    for name in [*PROVIDER_ENV_VARS, *KEYLESS_PROVIDERS]:
        registry.register(name, adapter)
    return Runtime.build(
        store=store, adapters=registry, tools=MockToolExecutor(), telemetry=NullReporter()
    )


@app.command()
def run(
    file: Annotated[Path, typer.Argument(help="Workflow definition (.yaml, .yml or .json)")],
    input: Annotated[
        Optional[str], typer.Option("--input", "-i", help="Run input as JSON")
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Use mock adapters and tools instead of real providers"),
    ] = False,
    timeout_ms: Annotated[
        Optional[int], typer.Option("--timeout-ms", help="Workflow-level timeout")
    ] = None,
) -> None:
    """Execute a workflow definition file and print its result as JSON.

    Examples:
        relayplane run invoice.yaml --input '{"text": "..."}'
        relayplane run invoice.yaml --dry-run
    """
    try:
        run_input = json.loads(input) if input else None
    except json.JSONDecodeError as e:
        print_error(f"--input is not valid JSON: {e}")
        raise typer.Exit(1) from e

    try:
        chain = load_workflow(file)
    except GraphValidationError as e:
        print_error(e.message)
        raise typer.Exit(1) from e

    if dry_run:
        print_info("Dry run: model and tool calls are mocked")
        chain = chain.with_runtime(_dry_run_runtime(chain.graph))

    result = chain.run_sync(run_input, timeout_ms=timeout_ms)
    console.print_json(result.model_dump_json())

    if result.success:
        print_success(f"{chain.name} completed in {result.metadata.duration_ms:.0f}ms")
    else:
        assert result.error is not None
        where = f" at step '{result.error.step_name}'" if result.error.step_name else ""
        print_error(f"{chain.name} failed{where}: {result.error.message}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
