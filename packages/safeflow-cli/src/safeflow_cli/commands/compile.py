"""Workflow commands: compile, permissions, tools, validate."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from safeflow_core import SafeflowConfig, SafeflowError, setup_logging
from safeflow_outputs import SafeOutputsCompiler, parse_workflow_file
from safeflow_outputs.dispatch import DispatchValidator

console = Console()
err_console = Console(stderr=True)


def _build_compiler(fail_fast: bool = False) -> SafeOutputsCompiler:
    """Compiler configured from safeflow.toml in the current directory."""
    config = SafeflowConfig.load()
    setup_logging(config.logging.level, config.logging.json)
    if fail_fast and not config.compiler.fail_fast:
        config = replace(config, compiler=replace(config.compiler, fail_fast=True))
    return SafeOutputsCompiler(config)


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _compile(path: Path, fail_fast: bool = False):
    try:
        return _build_compiler(fail_fast).compile(path)
    except (FileNotFoundError, SafeflowError) as exc:
        _fail(str(exc))


def compile_command(
    path: Path = typer.Argument(..., help="Workflow markdown file"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the jobs YAML to this file"
    ),
    fail_fast: bool = typer.Option(
        False, "--fail-fast", help="Stop at the first validation error"
    ),
) -> None:
    """Compile a workflow's safe-outputs into jobs YAML."""
    result = _compile(path, fail_fast)
    if not result.enabled:
        console.print(f"[yellow]No safe-outputs configured in {path}.[/yellow]")
        raise typer.Exit(0)

    text = result.to_yaml()
    if output is not None:
        output.write_text(text, encoding="utf-8")
        console.print(
            f"[green]Wrote {len(result.jobs)} job(s) to[/green] {output}"
        )
        return
    console.print(Syntax(text, "yaml", theme="monokai", word_wrap=True))


def permissions_command(
    path: Path = typer.Argument(..., help="Workflow markdown file"),
) -> None:
    """Show the minimal permissions the safe-outputs require."""
    result = _compile(path)
    rendered = result.permissions.to_yaml_value()
    if not isinstance(rendered, dict) or not rendered:
        console.print("[yellow]No permissions required.[/yellow]")
        return

    table = Table(
        title=f"Permissions: {result.workflow.name}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Scope", style="bold")
    table.add_column("Level", justify="center")
    for scope, level in rendered.items():
        style = "red" if level == "write" else "green"
        table.add_row(scope, f"[{style}]{level}[/{style}]")
    console.print(table)


def tools_command(
    path: Path = typer.Argument(..., help="Workflow markdown file"),
) -> None:
    """Print the agent tool catalog as JSON."""
    result = _compile(path)
    # plain print keeps the JSON machine-readable
    typer.echo(result.to_json())


def validate_command(
    path: Path = typer.Argument(..., help="Workflow markdown file"),
    fail_fast: bool = typer.Option(
        False, "--fail-fast", help="Stop at the first validation error"
    ),
) -> None:
    """Validate dispatch-workflow targets; exits 1 on errors."""
    compiler = _build_compiler(fail_fast)
    try:
        data = parse_workflow_file(path)
        config = compiler.resolve_config(data)
    except (FileNotFoundError, SafeflowError) as exc:
        _fail(str(exc))

    errors = DispatchValidator(compiler.settings.fail_fast).validate(config, path)
    if errors:
        console.print(Panel(
            "\n\n".join(errors),
            title=f"{len(errors)} validation error(s)",
            border_style="red",
        ))
        raise typer.Exit(1)
    console.print(f"[green]{path} is valid.[/green]")
