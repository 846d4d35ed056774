"""List the known safe-output capability kinds."""
from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table
from safeflow_outputs import KINDS, CapabilityKind, get_kind

console = Console()


def _max_label(default_max: int, unlimited: bool, cap: int | None) -> str:
    label = str(default_max)
    if unlimited:
        label += " (0 = unlimited)"
    if cap is not None:
        label += f" (cap {cap})"
    return label


def _permissions_label(kind: CapabilityKind) -> str:
    """Scopes a kind's job needs, including installation-only scopes."""
    scopes = kind.permissions(kind.parse({})).effective_scopes()
    if not scopes:
        return "-"
    return ", ".join(
        f"{scope.value}:{level.value}"
        for scope, level in sorted(scopes.items(), key=lambda item: item[0].value)
    )


def kinds_command(
    name: str | None = typer.Argument(None, help="Show a single kind"),
) -> None:
    """Show capability kinds with their default max and permissions."""
    if name is not None:
        try:
            kinds = [get_kind(name)]
        except KeyError:
            console.print(f"[red]Unknown kind:[/red] '{name}'")
            raise typer.Exit(1) from None
    else:
        kinds = list(KINDS.values())

    table = Table(
        title="Safe-Output Kinds",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Key", style="bold")
    table.add_column("Tool")
    table.add_column("Default max", justify="center")
    table.add_column("Permissions")
    table.add_column("Auto", justify="center")

    for kind in kinds:
        table.add_row(
            kind.key,
            kind.name if kind.static_tool else "[dim]per target[/dim]",
            _max_label(kind.default_max, kind.unlimited_max, kind.max_cap),
            _permissions_label(kind),
            "yes" if kind.auto_enable else "",
        )

    console.print(table)
    console.print(f"\n[dim]{len(kinds)} kind(s).[/dim]")
