"""``auroradeps add`` / ``remove`` / ``sync`` — change the dependency set."""

from __future__ import annotations

from typing import Optional

import typer

from auroradeps.cli.render import render_report
from auroradeps.cli.runtime import build_orchestrator, console, reporting_errors

_ARCH_HELP = (
    "Target architecture (armv7, armv8, x86_64 or an alias such as aarch64). "
    "Defaults to AURORADEPS_ARCH / RPM_ARCH, else every supported one."
)
_STRICT_HELP = (
    "Fail when a package has no artifact for a target architecture. "
    "Default: strict only when an architecture was given."
)


def add_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Package name, e.g. onnxruntime."),
    version: Optional[str] = typer.Argument(
        None,
        help="Exact version, wildcard (1.2.*), family (family:lts) or omit for latest.",
    ),
    arch: Optional[str] = typer.Option(None, "--arch", "-a", help=_ARCH_HELP),
    strict: Optional[bool] = typer.Option(None, "--strict/--lenient", help=_STRICT_HELP),
) -> None:
    """Add a direct dependency (or change its version) and update the project."""
    with reporting_errors("add"):
        report = build_orchestrator(ctx, arch=arch, strict=strict).add(name, version)
    render_report(console, report)


def remove_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Direct dependency to remove."),
    arch: Optional[str] = typer.Option(None, "--arch", "-a", help=_ARCH_HELP),
    strict: Optional[bool] = typer.Option(None, "--strict/--lenient", help=_STRICT_HELP),
) -> None:
    """Remove a direct dependency and reclaim packages nothing needs anymore."""
    with reporting_errors("remove"):
        report = build_orchestrator(ctx, arch=arch, strict=strict).remove(name)
    render_report(console, report)


def sync_cmd(
    ctx: typer.Context,
    arch: Optional[str] = typer.Option(None, "--arch", "-a", help=_ARCH_HELP),
    strict: Optional[bool] = typer.Option(None, "--strict/--lenient", help=_STRICT_HELP),
) -> None:
    """Re-resolve the recorded dependencies and regenerate every managed file."""
    with reporting_errors("sync"):
        report = build_orchestrator(ctx, arch=arch, strict=strict).sync()
    render_report(console, report)
