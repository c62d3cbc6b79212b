"""End-to-end clear-mode tests — Orchestrator over a real project tree.

These tests exercise the Orchestrator, DependencyGraphBuilder,
ArtifactSelector, PackageStore, BlockPatcher and the lock manifest
working together against the in-memory remote.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from auroradeps.core import lock_manifest
from auroradeps.core.errors import (
    CyclicDependencyError,
    DependencyNotFoundError,
    InvalidModeTransitionError,
    ManifestCorruptError,
    MissingArchitectureArtifactError,
    ProjectNotInitializedError,
)
from auroradeps.core.mode_machine import MODE_FILE
from auroradeps.models.mode import ProjectMode

SPEC_PATH = "rpm/ru.auroraos.TestApp.spec"
STORE = "thirdparty/aurora"


def read(project: Path, relative: str) -> str:
    return (project / relative).read_text(encoding="utf-8")


def snapshot(project: Path) -> dict[str, str]:
    files = ["CMakeLists.txt", SPEC_PATH, f"{STORE}/manifest.lock.json"]
    return {name: read(project, name) for name in files}


@pytest.fixture
def orch(make_orchestrator, registry):
    """Clear-mode project with a small published package set."""
    registry.publish("app-core", "1.0", [("zlib", None)])
    registry.publish("image-kit", "2.1", [("zlib", "1.3.*")])
    registry.publish("zlib", "1.3.1")
    registry.publish("nlohmann_json", "3.11.3", header_only=True)
    orchestrator = make_orchestrator()
    orchestrator.init_clear()
    return orchestrator


class TestInitClear:
    def test_creates_marker_manifest_and_blocks(self, orch, project: Path):
        assert orch.mode is ProjectMode.CLEAR
        assert (project / MODE_FILE).is_file()
        assert orch.load_manifest().direct_dependencies == []

        cmake = read(project, "CMakeLists.txt")
        assert "# >>> auroradeps:clear:clear-arch >>>" in cmake
        assert "# No dependencies configured." in cmake
        spec = read(project, SPEC_PATH)
        assert "%define __requires_exclude ^$" in spec
        assert "# auroradeps-begin clear/build-snippet" in spec

    def test_dependency_commands_need_init(self, make_orchestrator):
        with pytest.raises(ProjectNotInitializedError):
            make_orchestrator().add("zlib")

    def test_reinit_is_rejected(self, orch):
        with pytest.raises(InvalidModeTransitionError):
            orch.init_clear()


class TestAddRemove:
    def test_add_installs_closure(self, orch, project: Path):
        report = orch.add("app-core")

        assert report.closure == ["app-core/1.0", "zlib/1.3.1"]
        assert report.arches == ["armv8"]
        assert sorted(report.installed) == ["app-core/1.0 [armv8]", "zlib/1.3.1 [armv8]"]

        pc = read(project, f"{STORE}/armv8/pkgconfig/app-core.pc")
        assert "Requires: zlib\n" in pc
        assert "Libs: -L${libdir} -lapp-core\n" in pc

        cmake = read(project, "CMakeLists.txt")
        assert "pkg_check_modules(APP_CORE REQUIRED IMPORTED_TARGET app-core)" in cmake
        assert "IMPORTED_TARGET zlib" not in cmake
        spec = read(project, SPEC_PATH)
        assert "%define __requires_exclude ^(libapp-core.*|libzlib.*)$" in spec

        manifest = orch.load_manifest()
        assert manifest.direct_names() == ["app-core"]
        assert sorted(manifest.resolved_graph) == ["app-core", "zlib"]
        assert len(manifest.installed_artifacts) == 2
        assert orch.check().ok

    def test_shared_dependency_survives_partial_removal(self, orch, project: Path):
        orch.add("app-core")
        orch.add("image-kit")
        zlib_root = project / STORE / "armv8/packages/zlib/1.3.1"

        report = orch.remove("image-kit")
        assert report.reclaimed == ["image-kit/2.1 [armv8]"]
        assert zlib_root.is_dir()
        assert not (project / STORE / "armv8/pkgconfig/image-kit.pc").exists()

        report = orch.remove("app-core")
        assert sorted(report.reclaimed) == ["app-core/1.0 [armv8]", "zlib/1.3.1 [armv8]"]
        assert not zlib_root.exists()
        assert list((project / STORE / "armv8/pkgconfig").glob("*.pc")) == []
        assert "# No dependencies configured." in read(project, "CMakeLists.txt")
        assert orch.load_manifest().resolved_graph == {}

    def test_add_is_idempotent(self, orch, registry):
        orch.add("app-core")
        fetches = len(registry.fetches)

        report = orch.add("app-core")

        assert report.changed_files == []
        assert report.installed == []
        assert len(report.reused) == 2
        assert len(registry.fetches) == fetches

    def test_locked_version_is_kept_until_spec_changes(self, orch, registry):
        orch.add("app-core")
        registry.publish("zlib", "1.3.2")
        registry.publish("app-core", "1.1", [("zlib", None)])

        orch.sync()
        assert orch.load_manifest().resolved_graph["app-core"].version == "1.0"

        report = orch.add("app-core", "1.1")
        assert "app-core/1.1" in report.closure
        assert "app-core/1.0 [armv8]" in report.reclaimed

    def test_remove_unknown(self, orch):
        with pytest.raises(DependencyNotFoundError):
            orch.remove("fmt")

    def test_header_only_package(self, orch, project: Path):
        orch.add("nlohmann_json")
        artifact = orch.load_manifest().installed_artifacts[0]
        assert artifact.header_only is True
        pc = read(project, f"{STORE}/armv8/pkgconfig/nlohmann_json.pc")
        assert pc.endswith("Libs:\n")


class TestFailuresLeaveProjectUntouched:
    def test_cycle(self, orch, registry, project: Path):
        orch.add("app-core")
        registry.publish("loop-a", "1.0", [("loop-b", None)])
        registry.publish("loop-b", "1.0", [("loop-a", None)])
        before = snapshot(project)

        with pytest.raises(CyclicDependencyError):
            orch.add("loop-a")

        assert snapshot(project) == before
        assert not (project / STORE / "armv8/packages/loop-a").exists()

    def test_strict_missing_architecture(self, orch, registry, project: Path):
        registry.publish("onnxruntime", "1.18.1", arches=("x86_64",))
        before = snapshot(project)

        with pytest.raises(MissingArchitectureArtifactError):
            orch.add("onnxruntime")

        assert snapshot(project) == before

    def test_strict_abort_leaves_store_unchanged(self, orch, registry):
        registry.publish("camera-kit", "1.0", [("zlib", None)], arches=("x86_64",))

        with pytest.raises(MissingArchitectureArtifactError):
            orch.add("camera-kit")

        assert orch.store.installed() == []
        assert orch.check().ok

    def test_corrupt_manifest(self, orch, project: Path):
        (project / STORE / "manifest.lock.json").write_text("{", encoding="utf-8")
        with pytest.raises(ManifestCorruptError):
            orch.add("zlib")
        with pytest.raises(ManifestCorruptError):
            orch.check()


class TestLenientMode:
    def test_all_arches_with_gaps(self, make_orchestrator, registry, project: Path):
        registry.publish("onnxruntime", "1.18.1", arches=("armv8", "x86_64"))
        orch = make_orchestrator(target_arch=None)
        orch.init_clear()

        report = orch.add("onnxruntime")

        assert report.arches == ["armv7", "armv8", "x86_64"]
        assert [(m.package, m.arch) for m in report.missing] == [("onnxruntime", "armv7")]
        assert (project / STORE / "armv8/pkgconfig/onnxruntime.pc").is_file()
        assert not (project / STORE / "armv7/pkgconfig/onnxruntime.pc").exists()

    def test_explicit_lenient_still_fails_without_any_artifact(self, make_orchestrator, registry):
        registry.publish("onnxruntime", "1.18.1", arches=("x86_64",))
        orch = make_orchestrator(strict=False)
        orch.init_clear()
        with pytest.raises(MissingArchitectureArtifactError):
            orch.add("onnxruntime")


class TestCheckAndRepair:
    def test_check_reports_and_sync_repairs(self, orch, project: Path):
        orch.add("app-core")
        (project / STORE / "armv8/archives/zlib-1.3.1.tgz").write_bytes(b"tampered")

        report = orch.check()
        assert not report.ok
        assert any("checksum mismatch" in p for p in report.problems)

        orch.sync()
        assert orch.check().ok

    def test_check_flags_untracked_store_artifacts(self, orch):
        node = orch.deps("zlib", "1.3.1").nodes["zlib"]
        orch.selector.ensure_installed(node, "armv8")

        problems = orch.check().problems
        assert any("in the store but not in the manifest" in p for p in problems)

        orch.sync()
        assert orch.check().ok

    def test_check_flags_foreign_blocks(self, orch, project: Path):
        cmake = project / "CMakeLists.txt"
        cmake.write_text(
            read(project, "CMakeLists.txt")
            + "\n# >>> auroradeps:managed:rpath >>>\n# <<< auroradeps:managed:rpath <<<\n",
            encoding="utf-8",
        )
        problems = orch.check().problems
        assert any("blocks of another mode" in p for p in problems)


class TestModeSwitching:
    def test_clear_to_managed_and_deinit(self, orch, project: Path):
        orch.add("app-core")

        orch.init_managed()

        assert orch.mode is ProjectMode.MANAGED
        assert not (project / STORE).exists()
        assert (project / "conanfile.py").is_file()
        assert "auroradeps:clear:" not in read(project, "CMakeLists.txt")
        assert "auroradeps-begin managed/buildrequires" in read(project, SPEC_PATH)

        orch.deinit()
        assert orch.mode is ProjectMode.UNINITIALIZED
        assert not (project / "conanfile.py").exists()

    def test_deinit_restores_build_files(self, make_orchestrator, registry, project: Path):
        registry.publish("zlib", "1.3.1")
        original = {name: read(project, name) for name in ("CMakeLists.txt", SPEC_PATH)}
        orch = make_orchestrator()
        orch.init_clear()
        orch.add("zlib")

        report = orch.deinit()

        assert {name: read(project, name) for name in original} == original
        assert report.reclaimed == ["zlib/1.3.1"]
        assert not (project / MODE_FILE).exists()
        assert not (project / STORE).exists()


class TestRecordedStoreRoot:
    def test_marker_store_wins_over_configured(self, make_orchestrator, registry, project: Path):
        registry.publish("zlib", "1.3.1")
        first = make_orchestrator(store_root="vendor/aurora")
        first.init_clear()
        first.add("zlib")

        later = make_orchestrator()

        assert later.store_root == "vendor/aurora"
        assert later.load_manifest().direct_names() == ["zlib"]
        report = later.sync()
        assert report.direct == ["zlib"]
        assert report.changed_files == []
        assert not (project / STORE).exists()
        assert "/vendor/aurora" in read(project, "CMakeLists.txt")

    def test_configured_store_applies_after_deinit(self, make_orchestrator):
        first = make_orchestrator(store_root="vendor/aurora")
        first.init_clear()
        first.deinit()

        assert make_orchestrator().store_root == STORE
