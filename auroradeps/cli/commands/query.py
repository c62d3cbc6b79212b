"""``auroradeps search`` / ``deps`` / ``download`` — read-only remote queries.

These commands never touch the project, so they work outside an
initialized tree.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from auroradeps.cli.runtime import build_orchestrator, console, reporting_errors
from auroradeps.models.packages import DependencyGraph


def search_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Package name."),
    limit: int = typer.Option(0, "--limit", "-n", help="Show at most N versions (0: all)."),
) -> None:
    """List published versions of a package, newest first."""
    with reporting_errors("search"):
        versions = build_orchestrator(ctx).search(name)
    if limit > 0:
        versions = versions[:limit]

    table = Table(title=f"Versions of {escape(name)}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Version", style="green")
    for index, version in enumerate(versions, start=1):
        table.add_row(str(index), escape(version))
    console.print(table)


def _tree(graph: DependencyGraph, name: str, branch: Tree, path: tuple[str, ...]) -> None:
    for dependency in sorted(graph.nodes[name].dependencies):
        node = graph.nodes.get(dependency)
        if node is None:
            continue
        child = branch.add(f"[cyan]{escape(node.name)}[/cyan] {escape(node.version)}")
        if dependency not in path:
            _tree(graph, dependency, child, path + (dependency,))


def deps_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Package name."),
    version: str = typer.Argument(..., help="Package version."),
    flat: bool = typer.Option(False, "--flat", help="Print name/version lines instead of a tree."),
) -> None:
    """Show the resolved dependency closure of a package version."""
    with reporting_errors("deps"):
        graph = build_orchestrator(ctx).deps(name, version)

    if flat:
        for ref in graph.refs():
            if ref.name != name:
                console.print(escape(str(ref)), highlight=False)
        return

    root = graph.nodes[name]
    tree = Tree(f"[bold cyan]{escape(root.name)}[/bold cyan] {escape(root.version)}")
    _tree(graph, name, tree, (name,))
    console.print(tree)
    if len(graph) == 1:
        console.print("[dim]No dependencies.[/dim]")


def download_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Package name."),
    version: str = typer.Argument(..., help="Package version."),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Destination directory."),
    arch: Optional[str] = typer.Option(
        None, "--arch", "-a", help="Only this architecture (header-only fallback)."
    ),
) -> None:
    """Download the package archives without installing them."""
    with reporting_errors("download"):
        saved = build_orchestrator(ctx).download(name, version, output, arch)

    table = Table(title=f"Downloaded {escape(name)}/{escape(version)}")
    table.add_column("Variant", style="cyan")
    table.add_column("File")
    for variant, path in saved:
        table.add_row(escape(variant), escape(str(path)))
    console.print(table)
