"""``auroradeps check`` — verify build files, manifest and store agree."""

from __future__ import annotations

import typer
from rich.markup import escape
from rich.panel import Panel

from auroradeps.cli.runtime import build_orchestrator, console, reporting_errors


def check_cmd(ctx: typer.Context) -> None:
    """Report inconsistencies. Exits with code 2 when any are found."""
    with reporting_errors("check"):
        report = build_orchestrator(ctx).check()

    summary = (
        f"[bold]Mode:[/bold]       {report.mode.value}\n"
        f"[bold]Direct:[/bold]     {escape(', '.join(report.direct)) or '[dim]none[/dim]'}\n"
        f"[bold]Artifacts:[/bold]  {report.artifacts}"
    )
    if report.ok:
        console.print(
            Panel(summary + "\n\n[green]Project is consistent.[/green]",
                  title="[bold]auroradeps check[/bold]", border_style="green")
        )
        return

    problems = "\n".join(f"  [red]x[/red] {escape(p)}" for p in report.problems)
    console.print(
        Panel(
            f"{summary}\n\n[bold red]{len(report.problems)} problem(s):[/bold red]\n{problems}",
            title="[bold]auroradeps check[/bold]",
            border_style="red",
        )
    )
    raise typer.Exit(code=2)
