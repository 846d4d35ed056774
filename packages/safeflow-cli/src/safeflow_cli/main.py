from __future__ import annotations

import typer

from safeflow_cli.commands.compile import (
    compile_command,
    permissions_command,
    tools_command,
    validate_command,
)
from safeflow_cli.commands.kinds import kinds_command

app = typer.Typer(
    name="safeflow",
    help="Safeflow: compile workflow safe-outputs into jobs and agent tools",
    no_args_is_help=True,
)

app.command("compile")(compile_command)
app.command("permissions")(permissions_command)
app.command("tools")(tools_command)
app.command("validate")(validate_command)
app.command("kinds")(kinds_command)


@app.command()
def version() -> None:
    """Show the Safeflow version."""
    from rich.console import Console
    from safeflow_core import __version__
    Console().print(f"safeflow {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
