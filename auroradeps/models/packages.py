"""Package, graph and artifact models.

Everything here is frozen. The dependency graph is rebuilt from scratch on
every ``add``/``remove``, so nothing needs to mutate a node in place.
"""

from __future__ import annotations

from collections import deque
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# Reserved version marker for a requirement no version could be found for.
UNRESOLVED_VERSION = "<unresolved>"

# Variant name the remote uses for packages that ship no architecture.
HEADER_ONLY_VARIANT = "package"


class SpecKind(str, Enum):
    """How a requested version string selects from the available versions."""

    EXACT = "exact"
    WILDCARD = "wildcard"
    FAMILY = "family"
    LATEST = "latest"


class VersionSpec(BaseModel):
    """A parsed version request. Build with ``parse_spec``."""

    model_config = ConfigDict(frozen=True)

    raw: str | None = None
    kind: SpecKind = SpecKind.LATEST
    prefix: tuple[str, ...] = ()  # fixed leading components of a wildcard
    family: str = ""  # family tag for SpecKind.FAMILY

    def __str__(self) -> str:
        return self.raw or "latest"


class PackageRef(BaseModel):
    """A concrete ``name/version`` pair."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}/{self.version}"


class Requirement(BaseModel):
    """An edge reported by the metadata provider: a name plus a spec string."""

    model_config = ConfigDict(frozen=True)

    name: str
    spec: str | None = None


class DependencyNode(BaseModel):
    """One resolved package in the dependency closure."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    direct: bool = False
    required_by: list[str] = Field(default_factory=list)  # non-owning back refs
    dependencies: list[str] = Field(default_factory=list)

    @property
    def ref(self) -> PackageRef:
        return PackageRef(name=self.name, version=self.version)


class DependencyGraph(BaseModel):
    """Mapping of package name to node. Acyclic by construction."""

    model_config = ConfigDict(frozen=True)

    nodes: dict[str, DependencyNode] = Field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, name: str) -> DependencyNode | None:
        return self.nodes.get(name)

    @property
    def direct_names(self) -> list[str]:
        return sorted(n.name for n in self.nodes.values() if n.direct)

    def refs(self) -> list[PackageRef]:
        """Return every node as a ``PackageRef``, sorted by name."""
        return [self.nodes[name].ref for name in sorted(self.nodes)]

    def closure(self, roots: list[str]) -> set[str]:
        """Return every name reachable from *roots* by dependency edges."""
        seen: set[str] = set()
        queue = deque(r for r in roots if r in self.nodes)
        while queue:
            name = queue.popleft()
            if name in seen:
                continue
            seen.add(name)
            queue.extend(self.nodes[name].dependencies)
        return seen

    def dependents(self, name: str) -> list[str]:
        """Return the names that directly require *name*."""
        node = self.nodes.get(name)
        return list(node.required_by) if node else []

    def topological_order(self) -> list[str]:
        """Dependencies before dependents, ties broken by name."""
        remaining = {
            name: len([d for d in node.dependencies if d in self.nodes])
            for name, node in self.nodes.items()
        }
        ready = sorted(name for name, count in remaining.items() if count == 0)
        order: list[str] = []
        while ready:
            name = ready.pop(0)
            order.append(name)
            for dependent in sorted(self.nodes[name].required_by):
                if dependent not in remaining:
                    continue
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)
            ready.sort()
        return order


class VersionConflict(BaseModel):
    """A requirement that asked for a different version than the one kept."""

    model_config = ConfigDict(frozen=True)

    name: str
    kept_version: str
    rejected_version: str
    required_by: str

    def __str__(self) -> str:
        return (
            f"{self.name}: kept {self.kept_version}, "
            f"{self.required_by} wanted {self.rejected_version}"
        )


class ArchitectureArtifact(BaseModel):
    """One materialized package tree in the store.

    Identity is ``(package, version, arch)``; ``arch`` is the store tree the
    artifact lives in, so a header-only package is still materialized once
    per target architecture.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    version: str
    arch: str
    header_only: bool = False
    archive_location: str
    unpack_root: str
    archive_sha256: str = ""

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.package, self.version, self.arch)


class PackageDescriptor(BaseModel):
    """Link metadata for one package, rendered as a pkg-config file."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    include_paths: list[str] = Field(default_factory=list)
    library_search_paths: list[str] = Field(default_factory=list)
    library_names: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)

    @property
    def header_only(self) -> bool:
        return not self.library_names
