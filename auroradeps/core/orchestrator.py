"""Operation orchestrator — the central coordinator for project commands.

The Orchestrator wires together the ModeMachine, VersionResolver,
DependencyGraphBuilder, ArtifactSelector, PackageStore, BlockPatcher and
the lock manifest into the user-facing operations.

Every mutating operation runs under the project lock and follows one order:

1. Resolve (no writes; resolution errors leave the project untouched).
2. Install into the store (new unpack roots only).
3. Stage descriptors, build files, marker and manifest in a transaction.
4. Commit the transaction (manifest last).
5. Reclaim store artifacts that left the closure.
"""

from __future__ import annotations

import logging
from pathlib import Path

from auroradeps.core import block_patcher, lock_manifest
from auroradeps.core.artifact_selector import ArtifactSelector, resolve_target_arches
from auroradeps.core.artifact_store import PackageStore
from auroradeps.core.block_patcher import BlockPatcher
from auroradeps.core.dependency_graph import DependencyGraphBuilder
from auroradeps.core.errors import (
    DependencyNotFoundError,
    MissingArchitectureArtifactError,
    ProjectNotInitializedError,
    StoreIOError,
    VersionNotFoundError,
)
from auroradeps.core.interfaces import ArchiveFetcher, EnvironmentRunner, MetadataProvider
from auroradeps.core.link_metadata import discover_lib_names, generate_descriptor, render_pkg_config
from auroradeps.core.managed import (
    CONANFILE,
    ManagedFlow,
    read_requires,
    render_conanfile,
)
from auroradeps.core.mode_machine import MODE_FILE, ModeMachine, load_state
from auroradeps.core.project import ProjectLayout
from auroradeps.core.templates import cmake_blocks, rpm_blocks
from auroradeps.core.transaction import FileTransaction, atomic_write_text, project_lock
from auroradeps.core.version_resolver import VersionResolver, version_key
from auroradeps.models.manifest import DirectDependency, LockManifest
from auroradeps.models.mode import ProjectMode
from auroradeps.models.packages import (
    HEADER_ONLY_VARIANT,
    ArchitectureArtifact,
    DependencyGraph,
    PackageRef,
)
from auroradeps.models.reports import CheckReport, OperationReport

logger = logging.getLogger(__name__)


def recorded_store_root(project_root: Path, configured: str) -> str:
    """Store root of an initialized project, else *configured*."""
    state = load_state(project_root)
    if state is None or state.store_root == configured:
        return configured
    logger.info(
        "Using store %s recorded in %s (configured: %s)",
        state.store_root, MODE_FILE, configured,
    )
    return state.store_root


class Orchestrator:
    """Runs auroradeps operations against one project.

    Parameters
    ----------
    project_root:
        Directory with CMakeLists.txt and ``rpm/<name>.spec``.
    provider:
        Remote metadata source.
    fetcher:
        Archive download and unpack.
    runner:
        Managed-mode graph info. Only needed for managed projects with
        dependencies.
    store_root:
        Store directory, relative to the project root. Once the project has
        a mode marker, the store recorded there is used instead.
    target_arch:
        Explicit target architecture. None installs every supported one.
    strict:
        Override the strictness implied by ``target_arch``.
    max_workers:
        Concurrency for metadata fetches and installs.
    fail_on_conflict:
        Treat version conflicts as fatal.
    package_user:
        Conan reference user written into ``conanfile.py``.
    """

    def __init__(
        self,
        project_root: Path,
        *,
        provider: MetadataProvider,
        fetcher: ArchiveFetcher,
        runner: EnvironmentRunner | None = None,
        store_root: str = "thirdparty/aurora",
        target_arch: str | None = None,
        strict: bool | None = None,
        max_workers: int = 4,
        fail_on_conflict: bool = False,
        package_user: str = "aurora",
    ) -> None:
        self.root = Path(project_root).resolve()
        self.store_root = recorded_store_root(self.root, store_root)
        self.target_arch = target_arch
        self.strict = strict
        self.package_user = package_user

        self.provider = provider
        self.fetcher = fetcher
        self.runner = runner
        self.resolver = VersionResolver(provider)
        self.builder = DependencyGraphBuilder(
            provider,
            self.resolver,
            max_workers=max_workers,
            fail_on_conflict=fail_on_conflict,
        )
        self.store = PackageStore(self.root / self.store_root, project_root=self.root)
        self.selector = ArtifactSelector(provider, fetcher, self.store, max_workers=max_workers)
        self.modes = ModeMachine(self.root, self.store_root)
        self.managed = ManagedFlow(self.resolver, runner)
        self.patcher = BlockPatcher()
        self._layout: ProjectLayout | None = None

    # ------------------------------------------------------------------
    # Project state
    # ------------------------------------------------------------------

    @property
    def layout(self) -> ProjectLayout:
        if self._layout is None:
            self._layout = ProjectLayout.discover(self.root, self.store_root)
        return self._layout

    @property
    def mode(self) -> ProjectMode:
        return self.modes.current

    @property
    def manifest_path(self) -> Path:
        return lock_manifest.manifest_path(self.store.root)

    def load_manifest(self) -> LockManifest:
        return lock_manifest.load(self.manifest_path)

    # ------------------------------------------------------------------
    # Mode transitions
    # ------------------------------------------------------------------

    def init_managed(self) -> OperationReport:
        """Switch the project to managed mode (``init``)."""
        layout = self.layout
        with project_lock(self.root):
            previous = self.modes.check_transition(ProjectMode.MANAGED)
            refs = read_requires(self.root)
            tx = FileTransaction()
            conanfile = self.root / CONANFILE
            if not conanfile.exists():
                tx.stage(conanfile, render_conanfile([], self.package_user))
            modules, patterns = self._managed_metadata(refs)
            self._stage_build_files(tx, layout, ProjectMode.MANAGED, modules, patterns)
            tx.stage(self.modes.marker_path, self.modes.marker_text(ProjectMode.MANAGED))
            changed = tx.commit()
            if previous is ProjectMode.CLEAR:
                self.store.remove_all()
                logger.info("Removed clear-mode store %s", self.store.root)

        logger.info("Project initialized in managed mode (was %s)", previous.value)
        return OperationReport(
            action="init",
            mode=ProjectMode.MANAGED,
            direct=[r.name for r in refs],
            closure=[str(r) for r in refs],
            changed_files=self._relative(changed),
        )

    def init_clear(self) -> OperationReport:
        """Switch the project to clear mode (``init-clear``)."""
        layout = self.layout
        with project_lock(self.root):
            previous = self.modes.check_transition(ProjectMode.CLEAR)
            self.store.ensure_layout()
            tx = FileTransaction()
            if previous is ProjectMode.MANAGED:
                tx.stage_delete(self.root / CONANFILE)
            self._stage_build_files(tx, layout, ProjectMode.CLEAR, [], [])
            tx.stage(self.modes.marker_path, self.modes.marker_text(ProjectMode.CLEAR))
            tx.stage(self.manifest_path, lock_manifest.dumps(LockManifest()), last=True)
            changed = tx.commit()

        logger.info("Project initialized in clear mode (was %s)", previous.value)
        return OperationReport(
            action="init-clear",
            mode=ProjectMode.CLEAR,
            changed_files=self._relative(changed),
        )

    def deinit(self) -> OperationReport:
        """Remove every managed block, the marker, conanfile and the store."""
        layout = self.layout
        with project_lock(self.root):
            previous = self.modes.check_transition(ProjectMode.UNINITIALIZED)
            tx = FileTransaction()
            for path in layout.build_files:
                fmt = self.patcher.format_for(path)
                tx.stage(path, block_patcher.remove_foreign(tx.read(path), ProjectMode.UNINITIALIZED, fmt))
            tx.stage_delete(self.modes.marker_path)
            tx.stage_delete(self.root / CONANFILE)
            changed = tx.commit()
            reclaimed = self.store.installed()
            self.store.remove_all()

        logger.info("Project reverted to uninitialized (was %s)", previous.value)
        return OperationReport(
            action="deinit",
            mode=ProjectMode.UNINITIALIZED,
            reclaimed=sorted({f"{a.package}/{a.version}" for a in reclaimed}),
            changed_files=self._relative(changed),
        )

    # ------------------------------------------------------------------
    # Dependency operations
    # ------------------------------------------------------------------

    def add(self, name: str, spec: str | None = None) -> OperationReport:
        """Add or re-pin a direct dependency and recompute the project."""
        layout = self.layout
        with project_lock(self.root):
            mode = self.modes.require_initialized("add a dependency")
            if mode is ProjectMode.MANAGED:
                return self._managed_add(layout, name, spec)
            manifest = self.load_manifest()
            existing = manifest.find_direct(name)
            direct = [d for d in manifest.direct_dependencies if d.name != name]
            direct.append(DirectDependency(name=name, spec=spec))
            pins = manifest.pins()
            if existing is not None and existing.spec != spec:
                pins.pop(name, None)
            return self._clear_apply(layout, "add", direct, pins)

    def remove(self, name: str) -> OperationReport:
        """Drop a direct dependency and reclaim what is no longer reachable."""
        layout = self.layout
        with project_lock(self.root):
            mode = self.modes.require_initialized("remove a dependency")
            if mode is ProjectMode.MANAGED:
                return self._managed_remove(layout, name)
            manifest = self.load_manifest()
            if manifest.find_direct(name) is None:
                raise DependencyNotFoundError(name, "the lock manifest")
            direct = [d for d in manifest.direct_dependencies if d.name != name]
            pins = manifest.pins()
            pins.pop(name, None)
            return self._clear_apply(layout, "remove", direct, pins)

    def sync(self) -> OperationReport:
        """Recompute the project from its recorded direct dependencies."""
        layout = self.layout
        with project_lock(self.root):
            mode = self.modes.require_initialized("sync")
            if mode is ProjectMode.MANAGED:
                refs = read_requires(self.root)
                return self._managed_apply(layout, "sync", refs)
            manifest = self.load_manifest()
            return self._clear_apply(
                layout, "sync", list(manifest.direct_dependencies), manifest.pins()
            )

    def check(self) -> CheckReport:
        """Verify build files, manifest and store against each other."""
        mode = self.mode
        if mode is ProjectMode.UNINITIALIZED:
            raise ProjectNotInitializedError("check")
        layout = self.layout
        problems: list[str] = []

        for path in layout.build_files:
            text = path.read_text(encoding="utf-8")
            fmt = self.patcher.format_for(path)
            keys = block_patcher.block_keys(text, fmt)
            foreign = sorted({f"{m}:{k}" for m, k in keys if m != mode.value})
            if foreign:
                problems.append(f"{layout.relative(path)}: blocks of another mode: {', '.join(foreign)}")
            if not any(m == mode.value for m, _ in keys):
                problems.append(f"{layout.relative(path)}: no {mode.value}-mode blocks; run `auroradeps sync`")

        if mode is ProjectMode.MANAGED:
            refs = read_requires(self.root)
            if not (self.root / CONANFILE).exists():
                problems.append(f"{CONANFILE} is missing")
            return CheckReport(mode=mode, direct=[r.name for r in refs], problems=problems)

        if not self.manifest_path.exists():
            problems.append(f"{layout.relative(self.manifest_path)} is missing")
        manifest = self.load_manifest()
        problems.extend(lock_manifest.verify(manifest, self.store))
        return CheckReport(
            mode=mode,
            direct=manifest.direct_names(),
            artifacts=len(manifest.installed_artifacts),
            problems=problems,
        )

    # ------------------------------------------------------------------
    # Queries (no project needed)
    # ------------------------------------------------------------------

    def search(self, name: str) -> list[str]:
        """Published versions of *name*, newest first."""
        versions = self.provider.list_versions(name)
        if not versions:
            raise VersionNotFoundError(name, "latest", [])
        return sorted(versions, key=version_key, reverse=True)

    def deps(self, name: str, version: str) -> DependencyGraph:
        """Full dependency closure of ``name/version``."""
        resolution = self.builder.build([DirectDependency(name=name, spec=version)])
        return resolution.graph

    def download(
        self, name: str, version: str, destination: Path, arch: str | None = None
    ) -> list[tuple[str, Path]]:
        """Save the archives of ``name/version`` into *destination*.

        Downloads every offered variant, or only *arch* (with header-only
        fallback) when given. Returns ``(variant, path)`` pairs.
        """
        if version not in self.provider.list_versions(name):
            raise VersionNotFoundError(name, version, self.provider.list_versions(name))
        variants = sorted(self.selector.variants(name, version))
        if arch is not None:
            targets, _ = resolve_target_arches(arch, True)
            wanted = targets[0]
            variants = [wanted] if wanted in variants else [v for v in variants if v == HEADER_ONLY_VARIANT]
            if not variants:
                raise MissingArchitectureArtifactError(
                    name, version, wanted, sorted(self.selector.variants(name, version))
                )

        destination = Path(destination)
        saved: list[tuple[str, Path]] = []
        for variant in variants:
            data = self.fetcher.fetch(name, version, variant)
            path = destination / f"{name}-{version}-{variant}.tgz"
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
            except OSError as exc:
                raise StoreIOError(f"Cannot save {path}: {exc}") from exc
            logger.info("Saved %s", path)
            saved.append((variant, path))
        return saved

    # ------------------------------------------------------------------
    # Clear mode
    # ------------------------------------------------------------------

    def _clear_apply(
        self,
        layout: ProjectLayout,
        action: str,
        direct: list[DirectDependency],
        pins: dict[str, str],
    ) -> OperationReport:
        # 1. Resolve
        resolution = self.builder.build(direct, pins)
        graph = resolution.graph
        arches, strict = resolve_target_arches(self.target_arch, self.strict)
        logger.info("Target architectures: %s (%s)", ", ".join(arches), "strict" if strict else "lenient")

        # 2. Install
        self.store.ensure_layout()
        install = self.selector.install_closure(graph, arches, strict=strict)

        # 3. Stage
        keep = {(node.name, node.version) for node in graph.nodes.values()}
        artifacts = [a for a in self.store.installed() if (a.package, a.version) in keep]
        tx = FileTransaction()
        self._stage_descriptors(tx, graph, artifacts)
        modules = sorted(d.name for d in direct)
        patterns = self._clear_lib_patterns(artifacts)
        self._stage_build_files(tx, layout, ProjectMode.CLEAR, modules, patterns)
        tx.stage(self.modes.marker_path, self.modes.marker_text(ProjectMode.CLEAR))
        manifest = LockManifest.from_state(direct, graph, artifacts)
        tx.stage(self.manifest_path, lock_manifest.dumps(manifest), last=True)

        # 4. Commit
        changed = tx.commit()

        # 5. Reclaim
        reclaimed = self.store.reclaim(keep)

        logger.info(
            "%s: %d packages, %d installed, %d reclaimed",
            action, len(graph), len(install.installed), len(reclaimed),
        )
        return OperationReport(
            action=action,
            mode=ProjectMode.CLEAR,
            direct=modules,
            closure=[str(ref) for ref in graph.refs()],
            arches=arches,
            installed=install.installed,
            reused=install.reused,
            reclaimed=sorted({f"{a.package}/{a.version} [{a.arch}]" for a in reclaimed}),
            missing=install.missing,
            conflicts=resolution.conflicts,
            changed_files=self._relative(changed),
        )

    def _stage_descriptors(
        self,
        tx: FileTransaction,
        graph: DependencyGraph,
        artifacts: list[ArchitectureArtifact],
    ) -> None:
        by_arch: dict[str, dict[str, ArchitectureArtifact]] = {}
        for artifact in artifacts:
            by_arch.setdefault(artifact.arch, {})[artifact.package] = artifact

        for arch in sorted(set(by_arch) | set(self.store.arches())):
            present = by_arch.get(arch, {})
            for name, artifact in sorted(present.items()):
                node = graph.nodes[name]
                requires = [d for d in node.dependencies if d in present]
                descriptor = generate_descriptor(
                    node, self.store.resolve(artifact.unpack_root), requires
                )
                tx.stage(self.store.descriptor_path(name, arch), render_pkg_config(descriptor))
            for stale in self.store.stale_descriptors(arch, set(present)):
                tx.stage_delete(stale)

    def _clear_lib_patterns(self, artifacts: list[ArchitectureArtifact]) -> list[str]:
        patterns: set[str] = set()
        for artifact in artifacts:
            for lib in discover_lib_names(self.store.resolve(artifact.unpack_root)):
                patterns.add(f"lib{lib}.*")
        return sorted(patterns)

    # ------------------------------------------------------------------
    # Managed mode
    # ------------------------------------------------------------------

    def _managed_metadata(self, refs: list[PackageRef]) -> tuple[list[str], list[str]]:
        return self.managed.link_metadata(self.root, refs)

    def _managed_add(self, layout: ProjectLayout, name: str, spec: str | None) -> OperationReport:
        ref = self.managed.resolve_direct(name, spec)
        refs = [r for r in read_requires(self.root) if r.name != name]
        refs.append(ref)
        return self._managed_apply(layout, "add", refs)

    def _managed_remove(self, layout: ProjectLayout, name: str) -> OperationReport:
        current = read_requires(self.root)
        refs = [r for r in current if r.name != name]
        if len(refs) == len(current):
            raise DependencyNotFoundError(name, CONANFILE)
        return self._managed_apply(layout, "remove", refs)

    def _managed_apply(
        self, layout: ProjectLayout, action: str, refs: list[PackageRef]
    ) -> OperationReport:
        conanfile = self.root / CONANFILE
        previous = conanfile.read_text(encoding="utf-8") if conanfile.exists() else None
        updated = render_conanfile(refs, self.package_user)

        # graph info reads conanfile.py from disk, so it goes first
        if updated != previous:
            atomic_write_text(conanfile, updated)
        try:
            modules, patterns = self._managed_metadata(refs)
        except Exception:
            if previous is None:
                conanfile.unlink(missing_ok=True)
            elif updated != previous:
                atomic_write_text(conanfile, previous)
            raise

        tx = FileTransaction()
        self._stage_build_files(tx, layout, ProjectMode.MANAGED, modules, patterns)
        tx.stage(self.modes.marker_path, self.modes.marker_text(ProjectMode.MANAGED))
        changed = tx.commit()
        if updated != previous:
            changed.insert(0, conanfile)

        return OperationReport(
            action=action,
            mode=ProjectMode.MANAGED,
            direct=sorted(r.name for r in refs),
            closure=sorted(str(r) for r in refs),
            changed_files=self._relative(changed),
        )

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _stage_build_files(
        self,
        tx: FileTransaction,
        layout: ProjectLayout,
        mode: ProjectMode,
        modules: list[str],
        patterns: list[str],
    ) -> None:
        """Drop foreign blocks, then upsert the blocks of *mode*."""
        plans = {
            layout.cmake_file: cmake_blocks(mode, modules, self.store_root),
            layout.spec_file: rpm_blocks(mode, patterns, self.store_root),
        }
        for path, blocks in plans.items():
            fmt = self.patcher.format_for(path)
            text = block_patcher.remove_foreign(tx.read(path), mode, fmt)
            tx.stage(path, self.patcher.apply(path, text, blocks))

    def _relative(self, paths: list[Path]) -> list[str]:
        return [self.layout.relative(p) for p in paths]
