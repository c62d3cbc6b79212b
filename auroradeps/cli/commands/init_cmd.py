"""``auroradeps init`` / ``init-clear`` / ``deinit`` — switch the project mode.

``init`` hands dependency resolution to an installed Conan (managed mode).
``init-clear`` vendors packages into the project store (clear mode).
``deinit`` strips every managed block and removes generated state.
"""

from __future__ import annotations

import typer

from auroradeps.cli.render import render_report
from auroradeps.cli.runtime import build_orchestrator, console, reporting_errors


def init_cmd(ctx: typer.Context) -> None:
    """Initialize the project in managed mode."""
    with reporting_errors("init"):
        report = build_orchestrator(ctx).init_managed()
    render_report(console, report)


def init_clear_cmd(ctx: typer.Context) -> None:
    """Initialize the project in clear mode with an empty store."""
    with reporting_errors("init-clear"):
        report = build_orchestrator(ctx).init_clear()
    render_report(console, report)


def deinit_cmd(
    ctx: typer.Context,
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """Remove auroradeps blocks, conanfile.py and the package store."""
    if not yes:
        typer.confirm(
            "Remove every auroradeps block and the vendored package store?",
            abort=True,
        )
    with reporting_errors("deinit"):
        report = build_orchestrator(ctx).deinit()
    render_report(console, report)
