"""Rich rendering of operation summaries."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from auroradeps.models.reports import OperationReport


def _items(values: list[str], empty: str = "[dim]none[/dim]") -> str:
    return ", ".join(escape(v) for v in values) if values else empty


def render_report(console: Console, report: OperationReport) -> None:
    """Print the end-of-operation summary, then conflicts and gaps."""
    border = "yellow" if report.has_warnings else "green"
    lines = [
        f"[bold]Mode:[/bold]       {report.mode.value}",
        f"[bold]Direct:[/bold]     {_items(report.direct)}",
    ]
    if report.arches:
        lines.append(f"[bold]Arches:[/bold]     {_items(report.arches)}")
    if report.closure:
        lines.append(f"[bold]Packages:[/bold]   {len(report.closure)}")
    if report.installed or report.reused:
        lines.append(
            f"[bold]Installed:[/bold]  {len(report.installed)} new, {len(report.reused)} reused"
        )
    if report.reclaimed:
        lines.append(f"[bold]Reclaimed:[/bold]  {_items(report.reclaimed)}")
    lines.append(f"[bold]Changed:[/bold]    {_items(report.changed_files, '[dim]nothing[/dim]')}")

    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold]auroradeps {escape(report.action)}[/bold]",
            border_style=border,
            padding=(1, 2),
        )
    )

    if report.closure:
        table = Table(title="Resolved packages")
        table.add_column("Package", style="cyan")
        table.add_column("Version", style="green")
        for ref in report.closure:
            name, _, version = ref.partition("/")
            table.add_row(escape(name), escape(version))
        console.print(table)

    if report.conflicts:
        table = Table(title="Version conflicts (first requirement wins)", border_style="yellow")
        table.add_column("Package", style="cyan")
        table.add_column("Kept", style="green")
        table.add_column("Rejected", style="red")
        table.add_column("Required by")
        for c in report.conflicts:
            table.add_row(c.name, c.kept_version, escape(c.rejected_version), c.required_by)
        console.print(table)

    if report.missing:
        table = Table(title="Missing architecture artifacts", border_style="yellow")
        table.add_column("Package", style="cyan")
        table.add_column("Version")
        table.add_column("Arch", style="red")
        table.add_column("Available")
        for m in report.missing:
            table.add_row(m.package, m.version, m.arch, _items(m.available))
        console.print(table)
