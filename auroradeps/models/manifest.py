"""Lock manifest models — the persisted state of a clear-mode project."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from auroradeps.models.packages import (
    ArchitectureArtifact,
    DependencyGraph,
    DependencyNode,
)


class DirectDependency(BaseModel):
    """A package the project asked for, with the spec string it asked for."""

    model_config = ConfigDict(frozen=True)

    name: str
    spec: str | None = None


class LockedNode(BaseModel):
    """Serialized form of a ``DependencyNode``."""

    model_config = ConfigDict(frozen=True)

    version: str
    direct: bool = False
    required_by: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)


class LockManifest(BaseModel):
    """Direct dependencies, the resolved graph and the installed artifacts.

    The single source of truth for clear mode. ``add`` and ``remove``
    recompute it in full and rewrite it together with the build files.
    """

    model_config = ConfigDict(frozen=True)

    version: int = 1
    direct_dependencies: list[DirectDependency] = Field(default_factory=list)
    resolved_graph: dict[str, LockedNode] = Field(default_factory=dict)
    installed_artifacts: list[ArchitectureArtifact] = Field(default_factory=list)

    def direct_names(self) -> list[str]:
        return [d.name for d in self.direct_dependencies]

    def find_direct(self, name: str) -> DirectDependency | None:
        for dep in self.direct_dependencies:
            if dep.name == name:
                return dep
        return None

    def graph(self) -> DependencyGraph:
        """Rebuild the ``DependencyGraph`` recorded in this manifest."""
        return DependencyGraph(
            nodes={
                name: DependencyNode(
                    name=name,
                    version=locked.version,
                    direct=locked.direct,
                    required_by=list(locked.required_by),
                    dependencies=list(locked.dependencies),
                )
                for name, locked in self.resolved_graph.items()
            }
        )

    def pins(self) -> dict[str, str]:
        """Locked versions of direct dependencies, keyed by name."""
        return {
            d.name: self.resolved_graph[d.name].version
            for d in self.direct_dependencies
            if d.name in self.resolved_graph
        }

    @classmethod
    def from_state(
        cls,
        direct: list[DirectDependency],
        graph: DependencyGraph,
        artifacts: list[ArchitectureArtifact],
    ) -> LockManifest:
        return cls(
            direct_dependencies=sorted(direct, key=lambda d: d.name),
            resolved_graph={
                name: LockedNode(
                    version=node.version,
                    direct=node.direct,
                    required_by=sorted(node.required_by),
                    dependencies=sorted(node.dependencies),
                )
                for name, node in sorted(graph.nodes.items())
            },
            installed_artifacts=sorted(artifacts, key=lambda a: a.key),
        )
