"""Dependency graph builder — expands direct dependencies into their closure.

The graph enforces:
- One version per package. The first requirement to reach a package wins;
  a later requirement that resolves to a different version is recorded as a
  ``VersionConflict`` (or raised, with ``fail_on_conflict``).
- No cycles. A cycle fails the whole resolution with the cycle named.
- Every unresolvable requirement is reported at once, not one at a time.

Expansion is breadth-first, one level at a time. Metadata for a level is
fetched concurrently, then merged serially in discovery order so the
result does not depend on network timing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Lock

from auroradeps.core.errors import (
    CyclicDependencyError,
    UnresolvedDependenciesError,
    VersionConflictError,
)
from auroradeps.core.interfaces import MetadataProvider
from auroradeps.core.version_resolver import VersionResolver, parse_spec, satisfies
from auroradeps.models.manifest import DirectDependency
from auroradeps.models.packages import (
    UNRESOLVED_VERSION,
    DependencyGraph,
    DependencyNode,
    Requirement,
    VersionConflict,
)

logger = logging.getLogger(__name__)


@dataclass
class GraphResolution:
    """A resolved graph plus the conflicts tolerated while building it."""

    graph: DependencyGraph
    conflicts: list[VersionConflict] = field(default_factory=list)


@dataclass
class _Draft:
    name: str
    version: str
    direct: bool = False
    required_by: set[str] = field(default_factory=set)
    dependencies: list[str] = field(default_factory=list)


class DependencyGraphBuilder:
    """Builds a ``DependencyGraph`` from remote metadata.

    Parameters
    ----------
    provider:
        Metadata source for versions and requirements.
    resolver:
        Version resolver. Defaults to one over the same provider.
    max_workers:
        Upper bound on concurrent metadata requests per level.
    fail_on_conflict:
        Raise ``VersionConflictError`` instead of recording conflicts.
    """

    def __init__(
        self,
        provider: MetadataProvider,
        resolver: VersionResolver | None = None,
        *,
        max_workers: int = 4,
        fail_on_conflict: bool = False,
    ) -> None:
        self._provider = provider
        self._resolver = resolver or VersionResolver(provider)
        self._max_workers = max(1, max_workers)
        self._fail_on_conflict = fail_on_conflict
        self._versions: dict[str, list[str]] = {}
        self._versions_lock = Lock()

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def build(
        self,
        direct: list[DirectDependency],
        pins: dict[str, str] | None = None,
    ) -> GraphResolution:
        """Resolve *direct* and everything it transitively requires.

        *pins* maps direct dependency names to previously locked versions.
        A pin that still satisfies the requested spec is kept as-is.
        """
        pins = pins or {}
        drafts: dict[str, _Draft] = {}
        conflicts: list[VersionConflict] = []
        unresolved: list[tuple[str, str, str]] = []

        level: list[str] = []
        for dep in direct:
            spec = parse_spec(dep.spec)
            pinned = pins.get(dep.name)
            if pinned is not None and satisfies(pinned, spec):
                version = pinned
            else:
                version = self._resolver.resolve(dep.name, spec, self._list_versions(dep.name))
            drafts[dep.name] = _Draft(name=dep.name, version=version, direct=True)
            level.append(dep.name)

        while level:
            requirements = self._fetch_level(
                [(name, drafts[name].version) for name in level]
            )
            next_level: list[str] = []
            for parent, reqs in zip(level, requirements):
                parent_draft = drafts[parent]
                for req in reqs:
                    if req.name not in parent_draft.dependencies:
                        parent_draft.dependencies.append(req.name)
                    if req.name in drafts:
                        self._merge_existing(drafts[req.name], parent, req, conflicts, unresolved)
                        continue
                    version, reason = self._resolver.try_resolve(
                        req.name, parse_spec(req.spec), self._list_versions(req.name)
                    )
                    if version == UNRESOLVED_VERSION:
                        unresolved.append((req.name, parent, reason))
                    drafts[req.name] = _Draft(
                        name=req.name, version=version, required_by={parent}
                    )
                    if version != UNRESOLVED_VERSION:
                        next_level.append(req.name)
            level = next_level

        if unresolved:
            raise UnresolvedDependenciesError(unresolved)

        _check_acyclic(drafts)

        graph = DependencyGraph(
            nodes={
                name: DependencyNode(
                    name=name,
                    version=draft.version,
                    direct=draft.direct,
                    required_by=sorted(draft.required_by),
                    dependencies=sorted(draft.dependencies),
                )
                for name, draft in sorted(drafts.items())
            }
        )
        logger.info(
            "Resolved %d packages (%d direct, %d conflicts)",
            len(graph), len(direct), len(conflicts),
        )
        return GraphResolution(graph=graph, conflicts=conflicts)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _merge_existing(
        self,
        existing: _Draft,
        parent: str,
        req: Requirement,
        conflicts: list[VersionConflict],
        unresolved: list[tuple[str, str, str]],
    ) -> None:
        """Unify *req* with an already discovered node or record a conflict.

        The requirement is resolved on its own; only the resulting version is
        compared with the kept one.
        """
        existing.required_by.add(parent)
        if existing.version == UNRESOLVED_VERSION:
            return
        wanted, reason = self._resolver.try_resolve(
            req.name, parse_spec(req.spec), self._list_versions(req.name)
        )
        if wanted == UNRESOLVED_VERSION:
            unresolved.append((req.name, parent, reason))
            return
        if wanted == existing.version:
            return
        if self._fail_on_conflict:
            raise VersionConflictError(req.name, existing.version, wanted, parent)
        conflict = VersionConflict(
            name=req.name,
            kept_version=existing.version,
            rejected_version=wanted,
            required_by=parent,
        )
        logger.warning("Version conflict, first requirement wins: %s", conflict)
        conflicts.append(conflict)

    def _fetch_level(self, refs: list[tuple[str, str]]) -> list[list[Requirement]]:
        if len(refs) == 1 or self._max_workers == 1:
            return [self._provider.list_dependencies(n, v) for n, v in refs]
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(refs))) as pool:
            return list(pool.map(lambda ref: self._provider.list_dependencies(*ref), refs))

    def _list_versions(self, name: str) -> list[str]:
        with self._versions_lock:
            cached = self._versions.get(name)
        if cached is not None:
            return cached
        versions = self._provider.list_versions(name)
        with self._versions_lock:
            self._versions[name] = versions
        return versions


def _check_acyclic(drafts: dict[str, _Draft]) -> None:
    """Depth-first search for a back edge; raises with the cycle spelled out."""
    visiting: list[str] = []
    on_path: set[str] = set()
    done: set[str] = set()

    def visit(name: str) -> None:
        visiting.append(name)
        on_path.add(name)
        for child in drafts[name].dependencies:
            if child not in drafts or child in done:
                continue
            if child in on_path:
                start = visiting.index(child)
                raise CyclicDependencyError(visiting[start:] + [child])
            visit(child)
        on_path.discard(name)
        visiting.pop()
        done.add(name)

    for name in sorted(drafts):
        if name not in done:
            visit(name)
