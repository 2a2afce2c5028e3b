#!/usr/bin/env python3
"""
IdLE Control CLI - Command Line Interface for the IdLE Engine.

Provides commands for validating workflows, building and exporting plans,
and running plans against the providers configured in the settings file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from ..audit import AuditLogger
from ..config import EngineSettings, load_settings
from ..engine.executor import PlanExecutor
from ..engine.plan_builder import PlanBuilder
from ..engine.plan_export import export_plan
from ..errors import PLAN_BUILD_ERRORS
from ..models import ExecutionResult, Plan, StepStatus
from ..providers.factory import build_provider_registry
from ..workflows import validate_workflow

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    StepStatus.COMPLETED: "green",
    StepStatus.FAILED: "red",
    StepStatus.NOT_APPLICABLE: "yellow",
}


class IdleController:
    """Main controller for IdLE Engine operations."""

    def __init__(self, config_path: Optional[str] = None, verbose: bool = False):
        """Initialize the controller from a settings file."""
        self.settings: EngineSettings = load_settings(config_path)

        logging.basicConfig(
            level=logging.DEBUG if verbose else getattr(logging, self.settings.log_level.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        )

        self.providers = build_provider_registry(self.settings)
        self.builder = PlanBuilder()
        self.executor = PlanExecutor(retry_policy=self.settings.retry)
        self.audit_logger = AuditLogger(self.settings.audit_dir) if self.settings.audit_dir else None

    def build_plan(self, workflow_file: str, request_file: str) -> Plan:
        return self.builder.build(workflow_file, load_document(request_file), self.providers)

    def run(self, workflow_file: str, request_file: str) -> ExecutionResult:
        plan = self.build_plan(workflow_file, request_file)
        return self.executor.execute(plan, self.providers, event_sink=self.audit_logger)


def load_document(path: str) -> Dict[str, Any]:
    """Load a YAML or JSON mapping from disk."""
    with open(path, encoding="utf-8") as f:
        if Path(path).suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise click.ClickException(f"{path} must contain a mapping")
    return data


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False), help='Path to settings file')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config, verbose):
    """IdLE Engine Control CLI - Identity Lifecycle Automation"""
    ctx.ensure_object(dict)
    ctx.obj['controller'] = IdleController(config, verbose)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
def validate(workflow_file):
    """Validate a workflow definition file."""
    errors = validate_workflow(workflow_file)
    if errors:
        console.print(f"[red]✗ Workflow {workflow_file} is invalid:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise SystemExit(1)

    console.print(f"[green]✓ Workflow {workflow_file} is valid[/green]")


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('request_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the plan export to this file')
@click.pass_context
def plan(ctx, workflow_file, request_file, output):
    """Build a plan and print or export it as canonical JSON."""
    controller = ctx.obj['controller']

    try:
        built = controller.build_plan(workflow_file, request_file)
    except PLAN_BUILD_ERRORS as e:
        console.print(f"[red]✗ Plan could not be built: {e}[/red]")
        raise SystemExit(1)

    if not output:
        click.echo(export_plan(built), nl=False)
        return

    export_plan(built, output)
    console.print(f"[green]✓ Plan exported to {output}[/green]")

    table = Table(title=f"Plan for {built.workflow_name}")
    table.add_column("#", style="cyan")
    table.add_column("Step", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("Status", style="yellow")
    for index, step in enumerate(built.steps):
        table.add_row(str(index), step.name, step.type, step.status.value)
    console.print(table)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('request_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--json', 'as_json', is_flag=True, help='Print the execution result as JSON')
@click.pass_context
def run(ctx, workflow_file, request_file, as_json):
    """Build and execute a plan."""
    controller = ctx.obj['controller']

    try:
        result = controller.run(workflow_file, request_file)
    except PLAN_BUILD_ERRORS as e:
        console.print(f"[red]✗ Plan could not be built: {e}[/red]")
        raise SystemExit(1)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        display_execution_result(result)

    if not result.success:
        raise SystemExit(2)


@cli.command()
@click.option('--port', default=8000, help='Port to run the API server on')
@click.option('--host', default='127.0.0.1', help='Host to bind the API server to')
def serve(port, host):
    """Start the IdLE Engine API server."""
    from ..api.server import start_server

    console.print(f"[green]Starting IdLE Engine API server on {host}:{port}[/green]")
    console.print("[blue]Press Ctrl+C to stop[/blue]")

    try:
        start_server(host=host, port=port, reload=False)
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped[/yellow]")


def display_execution_result(result: ExecutionResult):
    """Display execution results."""
    if result.success:
        console.print("[green]✓ Run completed successfully[/green]")
    else:
        console.print("[red]✗ Run failed[/red]")

    table = Table(title=f"Run {result.correlation_id}")
    table.add_column("#", style="cyan")
    table.add_column("Step", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("Status")
    table.add_column("Changed")
    table.add_column("Attempts")
    table.add_column("Error", style="red")

    for step in result.steps:
        style = STATUS_STYLES.get(step.status, "white")
        table.add_row(
            str(step.index),
            step.name,
            step.type,
            f"[{style}]{step.status.value}[/{style}]",
            "yes" if step.changed else "no",
            str(step.attempts),
            step.error or "",
        )

    console.print(table)

    if result.on_failure.steps:
        console.print(f"On-failure steps: {result.on_failure.status.value}")
        for step in result.on_failure.steps:
            console.print(f"  - {step.name}: {step.status.value}{' (' + step.error + ')' if step.error else ''}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
