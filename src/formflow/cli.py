"""
formflow developer CLI.

Commands:
- check: load and link a configuration file
- graph: show dependency edges and closures
- simulate: run value updates (and optionally submit) through the engine
"""

from __future__ import annotations

import json
import logging
import platform
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from formflow._version import get_version
from formflow.core.errors import ConfigurationError, FormflowError
from formflow.core.ir import FormConfig
from formflow.core.linker import link_config
from formflow.core.loader import load_config_file
from formflow.core.settings import get_settings
from formflow.forms import (
    DependencyGraph,
    FormEngine,
    FunctionRegistry,
    RecordingNavigator,
)

logger = logging.getLogger(__name__)

console = Console()


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        typer.echo(f"formflow {get_version()}")
        typer.echo(f"Python {platform.python_version()} ({platform.python_implementation()})")
        raise typer.Exit()


app = typer.Typer(
    help="""formflow - reactive form engine tooling

Commands:
  • check     Validate a configuration file (JSON or YAML)
  • graph     Show dependency edges and closures
  • simulate  Apply value updates and print the resulting snapshot
""",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and environment information",
        ),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """formflow CLI main callback for global options."""
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load(path: Path) -> FormConfig:
    try:
        return load_config_file(path)
    except ConfigurationError as e:
        _report_configuration_error(e)
        raise typer.Exit(code=1) from e


def _report_configuration_error(error: ConfigurationError) -> None:
    console.print(f"[red]✗[/red] {escape(error.message)}")
    if error.context:
        console.print(f"  [dim]{escape(error.context.format())}[/dim]")
    for problem in error.problems:
        console.print(f"  • {escape(problem)}")


def _parse_assignment(raw: str) -> tuple[str, Any]:
    """``id=value``; the value is JSON when it parses, else a plain string."""
    element_id, sep, text = raw.partition("=")
    if not sep or not element_id:
        raise typer.BadParameter(f"Expected ID=VALUE, got {raw!r}")
    try:
        return element_id, json.loads(text)
    except json.JSONDecodeError:
        return element_id, text


@app.command()
def check(
    path: Annotated[Path, typer.Argument(help="Configuration file", exists=True, dir_okay=False)],
) -> None:
    """Load a configuration and run every load-time check."""
    config = _load(path)
    try:
        warnings = link_config(config, functions=FunctionRegistry().names(), source=str(path))
        DependencyGraph.from_config(config).check_bounds(get_settings().max_dependency_depth)
    except ConfigurationError as e:
        _report_configuration_error(e)
        raise typer.Exit(code=1) from e

    for warning in warnings:
        console.print(f"[yellow]![/yellow] {escape(warning)}")

    components = len(config.all_components())
    sections = len(config.all_sections())
    console.print(
        f"[green]✓[/green] {path.name}: {len(config.pages)} page(s), "
        f"{sections} section(s), {components} component(s)"
    )


@app.command()
def graph(
    path: Annotated[Path, typer.Argument(help="Configuration file", exists=True, dir_okay=False)],
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show, for every element, what it triggers and its full closure."""
    config = _load(path)
    dependency_graph = DependencyGraph.from_config(config)

    rows = {
        element_id: {
            "dependents": dependency_graph.dependents(element_id),
            "closure": dependency_graph.closure(element_id),
        }
        for element_id in config.element_ids()
    }

    if output_json:
        console.print_json(json.dumps(rows))
        return

    table = Table(title=f"Dependencies of {config.id}")
    table.add_column("Element")
    table.add_column("Dependents")
    table.add_column("Closure", style="dim")
    for element_id, row in rows.items():
        table.add_row(element_id, ", ".join(row["dependents"]), ", ".join(row["closure"]))
    console.print(table)


@app.command()
def simulate(
    path: Annotated[Path, typer.Argument(help="Configuration file", exists=True, dir_okay=False)],
    assignments: Annotated[
        list[str] | None,
        typer.Option("--set", "-s", help="ID=VALUE update, applied in order (repeatable)"),
    ] = None,
    submit: Annotated[bool, typer.Option("--submit", help="Dispatch submit at the end")] = False,
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Run value updates through the engine and print the final snapshot."""
    config = _load(path)
    updates = [_parse_assignment(raw) for raw in assignments or []]

    navigator = RecordingNavigator()
    try:
        engine = FormEngine(config, navigator=navigator)
    except ConfigurationError as e:
        _report_configuration_error(e)
        raise typer.Exit(code=1) from e

    with engine:
        try:
            for element_id, value in updates:
                engine.update_value(element_id, value)
            result = engine.dispatch_action("submit") if submit else None
        except FormflowError as e:
            console.print(f"[red]✗[/red] {escape(e.message)}")
            raise typer.Exit(code=1) from e
        engine.wait_for_pending()
        snapshot = engine.snapshot()

    if output_json:
        data = snapshot.to_dict()
        if result is not None:
            data["submit"] = result.outcome.value
        console.print_json(json.dumps(data, default=str))
        return

    table = Table(title=f"{config.id} @ version {snapshot.version}")
    table.add_column("Element")
    table.add_column("Value")
    table.add_column("Visible")
    table.add_column("Enabled")
    table.add_column("Errors")
    for element_id in config.all_components():
        errors = snapshot.errors_for(element_id)
        table.add_row(
            element_id,
            repr(snapshot.value_of(element_id)),
            "yes" if engine.is_visible(element_id) else "[dim]no[/dim]",
            "yes" if snapshot.is_enabled(element_id) else "[dim]no[/dim]",
            "\n".join(f"[red]{type(e).__name__}[/red]: {escape(e.message)}" for e in errors),
        )
    console.print(table)

    if result is not None:
        console.print(f"submit: [bold]{result.outcome.value}[/bold]")
        for request, target in navigator.requests:
            console.print(f"  → {request} {target or ''}".rstrip())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
