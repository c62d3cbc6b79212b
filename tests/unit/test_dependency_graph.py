"""Tests for DependencyGraphBuilder — closure, conflicts, cycles, pins."""

from __future__ import annotations

import pytest

from auroradeps.core.dependency_graph import DependencyGraphBuilder
from auroradeps.core.errors import (
    CyclicDependencyError,
    UnresolvedDependenciesError,
    VersionConflictError,
    VersionNotFoundError,
)
from auroradeps.models.manifest import DirectDependency


def direct(*names: str) -> list[DirectDependency]:
    return [DirectDependency(name=n) for n in names]


class TestDependencyGraphBuilder:
    def test_single_package(self, registry):
        registry.publish("fmt", "10.2.1")
        result = DependencyGraphBuilder(registry).build(direct("fmt"))
        assert [str(r) for r in result.graph.refs()] == ["fmt/10.2.1"]
        assert result.graph.nodes["fmt"].direct is True
        assert result.conflicts == []

    def test_transitive_closure(self, registry):
        registry.publish("onnxruntime", "1.18.1", [("protobuf", "3.21.*")])
        registry.publish("protobuf", "3.21.12", [("zlib", None)])
        registry.publish("protobuf", "4.0.0")
        registry.publish("zlib", "1.3.1")

        graph = DependencyGraphBuilder(registry).build(direct("onnxruntime")).graph

        assert graph.nodes["protobuf"].version == "3.21.12"
        assert graph.nodes["protobuf"].direct is False
        assert graph.nodes["protobuf"].required_by == ["onnxruntime"]
        assert graph.nodes["onnxruntime"].dependencies == ["protobuf"]
        assert graph.closure(["onnxruntime"]) == {"onnxruntime", "protobuf", "zlib"}

    def test_shared_dependency_has_both_parents(self, registry):
        registry.publish("a", "1.0", [("b", None)])
        registry.publish("c", "1.0", [("b", None)])
        registry.publish("b", "1.0")

        graph = DependencyGraphBuilder(registry).build(direct("a", "c")).graph

        assert len(graph) == 3
        assert graph.nodes["b"].required_by == ["a", "c"]
        assert graph.dependents("b") == ["a", "c"]

    def test_first_requirement_wins(self, registry):
        registry.publish("a", "1.0", [("z", "1.0")])
        registry.publish("b", "1.0", [("z", "2.0")])
        registry.publish("z", "1.0")
        registry.publish("z", "2.0")

        result = DependencyGraphBuilder(registry).build(direct("a", "b"))

        assert result.graph.nodes["z"].version == "1.0"
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert (conflict.name, conflict.kept_version, conflict.rejected_version) == ("z", "1.0", "2.0")
        assert conflict.required_by == "b"

    def test_conflict_can_be_fatal(self, registry):
        registry.publish("a", "1.0", [("z", "1.0")])
        registry.publish("b", "1.0", [("z", "2.0")])
        registry.publish("z", "1.0")
        registry.publish("z", "2.0")

        builder = DependencyGraphBuilder(registry, fail_on_conflict=True)
        with pytest.raises(VersionConflictError):
            builder.build(direct("a", "b"))

    def test_cycle_is_rejected_with_path(self, registry):
        registry.publish("x", "1.0", [("y", None)])
        registry.publish("y", "1.0", [("x", None)])

        with pytest.raises(CyclicDependencyError) as excinfo:
            DependencyGraphBuilder(registry).build(direct("x"))
        assert excinfo.value.cycle == ["x", "y", "x"]

    def test_all_unresolved_reported_together(self, registry):
        registry.publish("a", "1.0", [("ghost", None), ("phantom", "1.0")])

        with pytest.raises(UnresolvedDependenciesError) as excinfo:
            DependencyGraphBuilder(registry).build(direct("a"))
        names = sorted(name for name, _, _ in excinfo.value.unresolved)
        assert names == ["ghost", "phantom"]
        assert all(parent == "a" for _, parent, _ in excinfo.value.unresolved)

    def test_unknown_direct_version_fails_immediately(self, registry):
        registry.publish("fmt", "10.2.1")
        with pytest.raises(VersionNotFoundError):
            DependencyGraphBuilder(registry).build([DirectDependency(name="fmt", spec="8.0.0")])

    def test_pin_is_kept_when_still_satisfied(self, registry):
        registry.publish("fmt", "9.1.0")
        registry.publish("fmt", "10.2.1")

        graph = DependencyGraphBuilder(registry).build(direct("fmt"), {"fmt": "9.1.0"}).graph
        assert graph.nodes["fmt"].version == "9.1.0"

    def test_pin_ignored_when_spec_changed(self, registry):
        registry.publish("fmt", "9.1.0")
        registry.publish("fmt", "10.2.1")

        deps = [DirectDependency(name="fmt", spec="10.*")]
        graph = DependencyGraphBuilder(registry).build(deps, {"fmt": "9.1.0"}).graph
        assert graph.nodes["fmt"].version == "10.2.1"

    def test_topological_order_puts_dependencies_first(self, registry):
        registry.publish("app-core", "1.0", [("b", None), ("c", None)])
        registry.publish("b", "1.0", [("c", None)])
        registry.publish("c", "1.0")

        graph = DependencyGraphBuilder(registry, max_workers=1).build(direct("app-core")).graph
        assert graph.topological_order() == ["c", "b", "app-core"]


class TestMergeRule:
    """A repeated requirement is resolved first, then compared by version."""

    @pytest.fixture
    def z_versions(self, registry):
        for version in ("1.16.0", "1.16.5", "1.18.1"):
            registry.publish("z", version)

    def test_family_resolving_to_kept_version_unifies(self, registry, z_versions):
        registry.publish("a", "1.0", [("z", None)])
        registry.publish("b", "1.0", [("z", "family:lts")])

        result = DependencyGraphBuilder(registry).build(direct("a", "b"))

        assert result.graph.nodes["z"].version == "1.18.1"
        assert result.graph.nodes["z"].required_by == ["a", "b"]
        assert result.conflicts == []

    def test_family_resolving_elsewhere_conflicts(self, registry, z_versions):
        registry.publish("a", "1.0", [("z", "1.16.5")])
        registry.publish("b", "1.0", [("z", "family:lts")])

        result = DependencyGraphBuilder(registry).build(direct("a", "b"))

        assert [(c.kept_version, c.rejected_version) for c in result.conflicts] == [
            ("1.16.5", "1.18.1")
        ]

    def test_wildcard_and_latest_resolving_elsewhere_conflict(self, registry, z_versions):
        registry.publish("a", "1.0", [("z", "1.16.0")])
        registry.publish("b", "1.0", [("z", "1.16.*")])
        registry.publish("c", "1.0", [("z", None)])

        result = DependencyGraphBuilder(registry).build(direct("a", "b", "c"))

        assert result.graph.nodes["z"].version == "1.16.0"
        assert [(c.rejected_version, c.required_by) for c in result.conflicts] == [
            ("1.16.5", "b"),
            ("1.18.1", "c"),
        ]

    def test_latest_conflict_can_be_fatal(self, registry, z_versions):
        registry.publish("a", "1.0", [("z", "1.16.0")])
        registry.publish("b", "1.0", [("z", None)])

        builder = DependencyGraphBuilder(registry, fail_on_conflict=True)
        with pytest.raises(VersionConflictError):
            builder.build(direct("a", "b"))

    def test_unresolvable_repeat_is_collected(self, registry, z_versions):
        registry.publish("a", "1.0", [("z", None)])
        registry.publish("b", "1.0", [("z", "9.9")])

        with pytest.raises(UnresolvedDependenciesError) as excinfo:
            DependencyGraphBuilder(registry).build(direct("a", "b"))
        assert [(name, parent) for name, parent, _ in excinfo.value.unresolved] == [("z", "b")]
