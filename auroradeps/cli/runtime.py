"""Shared CLI plumbing: configuration, collaborators and error reporting."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from auroradeps.config import EngineConfig
from auroradeps.core.errors import AurodepsError
from auroradeps.core.interfaces import (
    ArchiveFetcher,
    EnvironmentRunner,
    MetadataProvider,
    StaticFamilies,
)
from auroradeps.core.managed import SubprocessEnvironmentRunner
from auroradeps.core.orchestrator import Orchestrator
from auroradeps.remote.http import HttpClient
from auroradeps.remote.provider import RemoteMetadataProvider

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


@dataclass
class CliState:
    """Global options shared by every command (stored on ``ctx.obj``)."""

    project: Path = Path(".")
    verbose: bool = False


def setup_logging(level: str, verbose: bool) -> None:
    """Route ``logging`` through Rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=False)],
        force=True,
    )


def make_collaborators(
    config: EngineConfig,
) -> tuple[MetadataProvider, ArchiveFetcher, EnvironmentRunner]:
    """Network provider, archive fetcher and Conan runner from *config*."""
    http = HttpClient(
        user_agent=config.user_agent,
        timeout=config.request_timeout,
        retry_max=config.retry_max,
        retry_backoff=config.retry_backoff,
    )
    provider = RemoteMetadataProvider(
        http,
        portal_url=config.portal_url,
        remote_url=config.remote_url,
        user=config.package_user,
        families=StaticFamilies(config.families),
    )
    runner = SubprocessEnvironmentRunner(config.managed_command, config.managed_timeout)
    return provider, provider, runner


def build_orchestrator(
    ctx: typer.Context,
    *,
    arch: str | None = None,
    strict: bool | None = None,
) -> Orchestrator:
    """Orchestrator for the project selected with ``--project``.

    Command-line ``--arch``/``--strict`` win over configuration.
    """
    state: CliState = ctx.obj or CliState()
    config = EngineConfig()
    provider, fetcher, runner = make_collaborators(config)
    return Orchestrator(
        state.project,
        provider=provider,
        fetcher=fetcher,
        runner=runner,
        store_root=config.store_dir,
        target_arch=arch or config.target_arch,
        strict=strict if strict is not None else config.strict_arch,
        max_workers=config.max_workers,
        fail_on_conflict=config.fail_on_conflict,
        package_user=config.package_user,
    )


@contextmanager
def reporting_errors(operation: str) -> Iterator[None]:
    """Print engine errors and exit with their exit code."""
    try:
        yield
    except AurodepsError as exc:
        logger.debug("%s failed", operation, exc_info=True)
        err_console.print(f"[bold red]{escape(operation)} failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=exc.exit_code) from exc
