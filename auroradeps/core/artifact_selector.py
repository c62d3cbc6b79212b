"""Artifact selection — picks and installs one archive per (package, arch).

For every node of the closure and every target architecture the selector:

1. Reuses the artifact already in the store if it still verifies.
2. Otherwise fetches the variant built for that architecture.
3. Otherwise falls back to the header-only variant.
4. Otherwise reports the package as missing for that architecture.

Strict runs abort on the first missing artifact. Lenient runs collect them
for the summary, but a package with no artifact for any target
architecture is still fatal.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock

from auroradeps.core.artifact_store import PackageStore
from auroradeps.core.errors import (
    MissingArchitectureArtifactError,
    UnsupportedArchitectureError,
)
from auroradeps.core.interfaces import ArchiveFetcher, MetadataProvider
from auroradeps.models.packages import (
    HEADER_ONLY_VARIANT,
    ArchitectureArtifact,
    DependencyGraph,
    DependencyNode,
)
from auroradeps.models.reports import InstallReport, MissingArtifact

logger = logging.getLogger(__name__)

SUPPORTED_ARCHES: tuple[str, ...] = ("armv7", "armv8", "x86_64")

ARCH_ALIASES: dict[str, str] = {
    "aarch64": "armv8",
    "arm64": "armv8",
    "armv7hl": "armv7",
    "amd64": "x86_64",
}


def normalize_arch(value: str) -> str:
    """Map an architecture name or alias to its canonical store name.

    Examples
    --------
    >>> normalize_arch("aarch64")
    'armv8'
    >>> normalize_arch(" X86_64 ")
    'x86_64'
    """
    arch = value.strip().lower()
    arch = ARCH_ALIASES.get(arch, arch)
    if arch not in SUPPORTED_ARCHES and arch != HEADER_ONLY_VARIANT:
        raise UnsupportedArchitectureError(value)
    return arch


def resolve_target_arches(
    explicit: str | None = None, strict: bool | None = None
) -> tuple[list[str], bool]:
    """Decide which architectures to install and whether gaps are fatal.

    An explicit architecture selects that one tree and defaults to strict.
    Without one every supported architecture is installed leniently.
    """
    if explicit and explicit.strip():
        arch = normalize_arch(explicit)
        if arch == HEADER_ONLY_VARIANT:
            raise UnsupportedArchitectureError(explicit)
        return [arch], True if strict is None else strict
    return list(SUPPORTED_ARCHES), False if strict is None else strict


class ArtifactSelector:
    """Installs the artifacts of a resolved closure into a ``PackageStore``.

    Parameters
    ----------
    provider:
        Answers which architecture variants a package version offers.
    fetcher:
        Downloads and unpacks archives.
    store:
        Destination store.
    max_workers:
        Concurrent installs. Different keys never wait on each other.
    """

    def __init__(
        self,
        provider: MetadataProvider,
        fetcher: ArchiveFetcher,
        store: PackageStore,
        *,
        max_workers: int = 4,
    ) -> None:
        self._provider = provider
        self._fetcher = fetcher
        self._store = store
        self._max_workers = max(1, max_workers)
        self._variants: dict[tuple[str, str], set[str]] = {}
        self._variants_lock = Lock()

    def variants(self, name: str, version: str) -> set[str]:
        """Architecture variants offered for ``name/version`` (cached)."""
        key = (name, version)
        with self._variants_lock:
            cached = self._variants.get(key)
        if cached is not None:
            return cached
        offered: set[str] = set()
        for raw in self._provider.list_architecture_variants(name, version):
            try:
                offered.add(normalize_arch(raw))
            except UnsupportedArchitectureError:
                logger.debug("Skipping unknown variant %s of %s/%s", raw, name, version)
        with self._variants_lock:
            self._variants[key] = offered
        return offered

    def ensure_installed(
        self, node: DependencyNode, arch: str
    ) -> tuple[ArchitectureArtifact, bool]:
        """Make sure ``node`` is materialized for ``arch``.

        Returns the artifact and whether it was freshly installed.
        Raises ``MissingArchitectureArtifactError`` when neither the arch
        variant nor a header-only variant exists.
        """
        with self._store.locked(node.name, node.version, arch):
            existing = self._store.artifact_for(node.name, node.version, arch)
            if existing is not None:
                problems = self._store.verify(existing)
                if not problems:
                    logger.debug("Reusing %s/%s for %s", node.name, node.version, arch)
                    return existing, False
                logger.warning(
                    "Reinstalling %s/%s for %s: %s",
                    node.name, node.version, arch, "; ".join(problems),
                )

            offered = self.variants(node.name, node.version)
            if arch in offered:
                variant, header_only = arch, False
            elif HEADER_ONLY_VARIANT in offered:
                variant, header_only = HEADER_ONLY_VARIANT, True
            else:
                raise MissingArchitectureArtifactError(
                    node.name, node.version, arch, sorted(offered)
                )

            data = self._fetcher.fetch(node.name, node.version, variant)
            artifact = self._store.install(
                node.name,
                node.version,
                arch,
                data,
                self._fetcher.unpack,
                header_only=header_only,
            )
            return artifact, True

    def install_closure(
        self, graph: DependencyGraph, arches: list[str], *, strict: bool
    ) -> InstallReport:
        """Install every node of *graph* for every arch in *arches*."""
        tasks = [
            (graph.nodes[name], arch)
            for name in graph.topological_order()
            for arch in arches
        ]
        artifacts: list[ArchitectureArtifact] = []
        installed: list[str] = []
        reused: list[str] = []
        missing: list[MissingArtifact] = []

        if not tasks:
            return InstallReport()

        workers = min(self._max_workers, len(tasks))
        futures: list[Future[tuple[ArchitectureArtifact, bool]]] = []
        try:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self.ensure_installed, node, arch) for node, arch in tasks]
                try:
                    for (node, arch), future in zip(tasks, futures):
                        try:
                            artifact, fresh = future.result()
                        except MissingArchitectureArtifactError as exc:
                            if strict:
                                raise
                            logger.warning("%s", exc)
                            missing.append(
                                MissingArtifact(
                                    package=node.name,
                                    version=node.version,
                                    arch=arch,
                                    available=exc.available,
                                )
                            )
                            continue
                        artifacts.append(artifact)
                        label = f"{node.name}/{node.version} [{arch}]"
                        (installed if fresh else reused).append(label)
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise
            _fail_if_unavailable(missing, arches)
        except BaseException:
            self._discard_fresh(futures)
            raise
        return InstallReport(
            artifacts=sorted(artifacts, key=lambda a: a.key),
            installed=installed,
            reused=reused,
            missing=missing,
        )

    def _discard_fresh(
        self, futures: list[Future[tuple[ArchitectureArtifact, bool]]]
    ) -> None:
        """Remove the artifacts this aborted run freshly unpacked."""
        for future in futures:
            if not future.done() or future.cancelled() or future.exception() is not None:
                continue
            artifact, fresh = future.result()
            if not fresh:
                continue
            logger.info(
                "Discarding %s/%s for %s after aborted install",
                artifact.package, artifact.version, artifact.arch,
            )
            with self._store.locked(*artifact.key):
                self._store.remove(*artifact.key)


def _fail_if_unavailable(missing: list[MissingArtifact], arches: list[str]) -> None:
    """Raise for the first package that is missing on every target arch."""
    by_package: dict[tuple[str, str], list[MissingArtifact]] = {}
    for item in missing:
        by_package.setdefault((item.package, item.version), []).append(item)
    for (name, version), items in by_package.items():
        if len(items) == len(arches):
            raise MissingArchitectureArtifactError(
                name, version, ", ".join(arches), items[0].available
            )
