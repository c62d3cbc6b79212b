"""Main Typer application — imports and registers all CLI commands.

Entry point: ``auroradeps`` (configured via pyproject.toml scripts).

Commands: init, init-clear, deinit, add, remove, sync, check, search,
deps, download.
"""

from __future__ import annotations

from pathlib import Path

import typer

from auroradeps.cli.commands.check import check_cmd
from auroradeps.cli.commands.deps_cmd import add_cmd, remove_cmd, sync_cmd
from auroradeps.cli.commands.init_cmd import deinit_cmd, init_clear_cmd, init_cmd
from auroradeps.cli.commands.query import deps_cmd, download_cmd, search_cmd
from auroradeps.cli.runtime import CliState, setup_logging
from auroradeps.config import EngineConfig

app = typer.Typer(
    name="auroradeps",
    help="auroradeps: third-party dependency manager for Aurora OS CMake/RPM projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    project: Path = typer.Option(
        Path("."),
        "--project",
        "-C",
        help="Project root (directory with CMakeLists.txt and rpm/).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Manage Aurora OS package dependencies in managed or clear mode."""
    setup_logging(EngineConfig().log_level, verbose)
    ctx.obj = CliState(project=project, verbose=verbose)


# Register subcommands
app.command(name="init", help="Initialize the project in managed (Conan) mode.")(init_cmd)
app.command(name="init-clear", help="Initialize the project in clear (vendored) mode.")(init_clear_cmd)
app.command(name="deinit", help="Remove all auroradeps changes from the project.")(deinit_cmd)
app.command(name="add", help="Add a dependency or change its version.")(add_cmd)
app.command(name="remove", help="Remove a direct dependency.")(remove_cmd)
app.command(name="sync", help="Regenerate the project from recorded dependencies.")(sync_cmd)
app.command(name="check", help="Verify build files, lock manifest and store.")(check_cmd)
app.command(name="search", help="List published versions of a package.")(search_cmd)
app.command(name="deps", help="Show the dependency tree of a package version.")(deps_cmd)
app.command(name="download", help="Download package archives.")(download_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
